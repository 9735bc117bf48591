import math
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from bikebusters.core.errors import InvalidArgument, NotFound
from bikebusters.models.location import LocationSample
from bikebusters.services.registry import get_bike, get_location_history


def _sample_count(db) -> int:
    return db.scalar(select(func.count()).select_from(LocationSample))


def test_apply_position_records_sample_and_moves_bike(db, ingestor, make_bike):
    bike = make_bike()
    ts = datetime(2026, 4, 1, 8, 30, tzinfo=timezone.utc)

    updated = ingestor.apply_position(db, bike.id, (4.9041, 52.3676), ts)

    assert updated.coordinate == (4.9041, 52.3676)
    history = get_location_history(db, bike.id)
    assert len(history) == 1
    assert (history[0].longitude, history[0].latitude) == (4.9041, 52.3676)

    db.expire_all()
    fresh = get_bike(db, bike.id)
    assert fresh.coordinate == (4.9041, 52.3676)
    assert fresh.last_signal.replace(tzinfo=timezone.utc) == ts


def test_pending_bike_starts_investigation_on_first_fix(db, ingestor, make_bike):
    bike = make_bike()
    assert bike.status == "pending"

    ingestor.apply_position(db, bike.id, (5.0, 52.0))
    assert get_bike(db, bike.id).status == "investigating"

    ingestor.apply_position(db, bike.id, (5.1, 52.1))
    assert get_bike(db, bike.id).status == "investigating"


def test_failed_ingestion_leaves_pending_bike_untouched(db, ingestor, make_bike):
    bike = make_bike()
    with pytest.raises(InvalidArgument):
        ingestor.apply_position(db, bike.id, (200.0, 52.0))

    db.expire_all()
    fresh = get_bike(db, bike.id)
    assert fresh.status == "pending"
    assert fresh.coordinate is None
    assert _sample_count(db) == 0


@pytest.mark.parametrize(
    "coordinate,field",
    [
        ((180.5, 0.0), "longitude"),
        ((-180.01, 0.0), "longitude"),
        ((0.0, 90.5), "latitude"),
        ((0.0, -91), "latitude"),
        ((math.nan, 0.0), "longitude"),
        ((0.0, math.inf), "latitude"),
        (("4.9", 52.0), "longitude"),
        ((True, 52.0), "longitude"),
        ((1.0,), "coordinate"),
        (None, "coordinate"),
    ],
)
def test_invalid_coordinates_are_rejected(db, ingestor, make_bike, coordinate, field):
    bike = make_bike()
    with pytest.raises(InvalidArgument) as excinfo:
        ingestor.apply_position(db, bike.id, coordinate)
    assert excinfo.value.field == field
    assert _sample_count(db) == 0


def test_boundary_coordinates_are_accepted(db, ingestor, make_bike):
    bike = make_bike()
    ingestor.apply_position(db, bike.id, (-180, 90))
    ingestor.apply_position(db, bike.id, (180.0, -90.0))
    assert _sample_count(db) == 2


def test_unknown_bike_is_not_found(db, ingestor):
    with pytest.raises(NotFound):
        ingestor.apply_position(db, uuid.uuid4(), (5.0, 52.0))
    with pytest.raises(NotFound):
        ingestor.apply_position(db, "not-a-uuid", (5.0, 52.0))
    assert _sample_count(db) == 0


def test_history_keeps_chronological_order(db, ingestor, make_bike):
    bike = make_bike()
    start = datetime(2026, 4, 1, tzinfo=timezone.utc)
    coords = [(4.90 + i / 100, 52.30 + i / 100) for i in range(6)]
    for i, coord in enumerate(coords):
        ingestor.apply_position(db, bike.id, coord, start + timedelta(minutes=i))

    history = get_location_history(db, bike.id)
    assert [(s.longitude, s.latitude) for s in history] == coords


def test_history_interval_query(db, ingestor, make_bike):
    bike = make_bike()
    start = datetime(2026, 4, 1, tzinfo=timezone.utc)
    for i in range(5):
        ingestor.apply_position(db, bike.id, (5.0, 52.0 + i / 10), start + timedelta(hours=i))

    window = get_location_history(db, bike.id, start=start + timedelta(hours=1), end=start + timedelta(hours=3))
    assert [round(s.latitude, 1) for s in window] == [52.1, 52.2, 52.3]


def test_last_applied_update_wins(db, ingestor, make_bike):
    bike = make_bike()
    newer = datetime(2026, 4, 2, tzinfo=timezone.utc)
    older = datetime(2026, 4, 1, tzinfo=timezone.utc)
    ingestor.apply_position(db, bike.id, (5.0, 52.0), newer)
    ingestor.apply_position(db, bike.id, (6.0, 53.0), older)

    db.expire_all()
    fresh = get_bike(db, bike.id)
    assert fresh.coordinate == (6.0, 53.0)
    assert fresh.last_signal.replace(tzinfo=timezone.utc) == older


def test_replayed_update_records_duplicate_sample(db, ingestor, make_bike):
    bike = make_bike()
    ts = datetime(2026, 4, 1, tzinfo=timezone.utc)
    ingestor.apply_position(db, bike.id, (5.0, 52.0), ts)
    ingestor.apply_position(db, bike.id, (5.0, 52.0), ts)
    assert len(get_location_history(db, bike.id)) == 2
    assert get_bike(db, bike.id).coordinate == (5.0, 52.0)


def test_each_ingestion_publishes_one_event(db, ingestor, broadcaster, make_bike):
    bike = make_bike()
    ingestor.apply_position(db, bike.id, (5.0, 52.0))

    assert len(broadcaster.published) == 1
    event = broadcaster.published[0]
    assert event.coordinate == (5.0, 52.0)
    assert event.bike["id"] == str(bike.id)
    assert event.bike["status"] == "investigating"
    assert event.to_message()["type"] == "location.updated"


def test_failed_ingestion_publishes_nothing(db, ingestor, broadcaster, make_bike):
    bike = make_bike()
    with pytest.raises(InvalidArgument):
        ingestor.apply_position(db, bike.id, (0.0, 95.0))
    assert broadcaster.published == []


def test_terminal_bike_still_records_history(db, ingestor, make_bike):
    bike = make_bike(status="resolved")
    ingestor.apply_position(db, bike.id, (5.0, 52.0))
    assert get_bike(db, bike.id).status == "resolved"
    assert len(get_location_history(db, bike.id)) == 1
