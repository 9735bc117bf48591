import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from bikebusters.core.clock import ensure_utc
from bikebusters.db.session import SessionLocal
from bikebusters.models.pending_update import PendingUpdate
from bikebusters.services.poller import UpdatePoller
from bikebusters.services.registry import enqueue_update, get_bike, get_location_history

T0 = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


def _queue(db, bike_id, longitude, latitude, *, offset: int) -> PendingUpdate:
    update = PendingUpdate(
        bike_id=bike_id,
        longitude=longitude,
        latitude=latitude,
        reported_at=T0 + timedelta(minutes=offset),
        enqueued_at=T0 + timedelta(seconds=offset),
    )
    db.add(update)
    db.commit()
    return update


def _queued(db) -> int:
    return db.scalar(select(func.count()).select_from(PendingUpdate))


def test_empty_queue_is_a_no_op(ingestor):
    result = UpdatePoller(SessionLocal, ingestor).poll_once()
    assert (result.applied, result.dropped, result.skipped) == (0, 0, 0)


def test_malformed_update_is_dropped_and_the_rest_applied(db, ingestor, broadcaster, make_bike):
    bike = make_bike()
    _queue(db, bike.id, 5.0, 52.0, offset=1)
    _queue(db, bike.id, 500.0, 52.0, offset=2)
    _queue(db, bike.id, 5.2, 52.2, offset=3)

    result = UpdatePoller(SessionLocal, ingestor).poll_once()

    assert (result.applied, result.dropped) == (2, 1)
    assert _queued(db) == 0
    db.expire_all()
    history = get_location_history(db, bike.id)
    assert [(s.longitude, s.latitude) for s in history] == [(5.0, 52.0), (5.2, 52.2)]
    assert len(broadcaster.published) == 2


def test_update_for_unknown_bike_is_dropped(db, ingestor, make_bike):
    bike = make_bike()
    _queue(db, uuid.uuid4(), 5.0, 52.0, offset=1)
    _queue(db, bike.id, 5.1, 52.1, offset=2)

    result = UpdatePoller(SessionLocal, ingestor).poll_once()

    assert (result.applied, result.dropped) == (1, 1)
    assert _queued(db) == 0


def test_updates_apply_in_queue_order(db, ingestor, make_bike):
    bike = make_bike()
    for i in range(4):
        _queue(db, bike.id, 5.0 + i, 52.0, offset=i)

    UpdatePoller(SessionLocal, ingestor).poll_once()

    db.expire_all()
    fresh = get_bike(db, bike.id)
    assert fresh.coordinate == (8.0, 52.0)
    assert fresh.status == "investigating"
    assert [s.longitude for s in get_location_history(db, bike.id)] == [5.0, 6.0, 7.0, 8.0]


def test_applied_updates_are_not_applied_again(db, ingestor, make_bike):
    bike = make_bike()
    enqueue_update(db, bike.id, 5.0, 52.0)
    poller = UpdatePoller(SessionLocal, ingestor)

    assert poller.poll_once().applied == 1
    assert poller.poll_once().applied == 0
    assert len(get_location_history(db, bike.id)) == 1


def test_queued_offset_timestamp_is_stored_as_utc(db, ingestor, make_bike):
    bike = make_bike()
    cest = timezone(timedelta(hours=2))
    enqueue_update(db, bike.id, 5.0, 52.0, reported_at=datetime(2026, 5, 1, 14, 0, tzinfo=cest))

    UpdatePoller(SessionLocal, ingestor).poll_once()

    expected = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    db.expire_all()
    assert ensure_utc(get_location_history(db, bike.id)[0].ts) == expected
    assert ensure_utc(get_bike(db, bike.id).last_signal) == expected
