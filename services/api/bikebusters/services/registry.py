from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from bikebusters.core.clock import ensure_utc
from bikebusters.core.errors import InvalidArgument, NotFound
from bikebusters.models.bike import INVESTIGATING, TRACKER_ID_RE, Bike
from bikebusters.models.location import LocationSample
from bikebusters.models.pending_update import PendingUpdate
from bikebusters.models.recovery import Recovery, ReturnLocation
from bikebusters.models.report import MissingReport, Note

logger = logging.getLogger(__name__)


def validate_tracker_id(tracker_id: str | None) -> str | None:
    if tracker_id is None or tracker_id == "":
        return None
    if not TRACKER_ID_RE.match(tracker_id):
        raise InvalidArgument(f"{tracker_id!r} is not a valid tracker id", field="tracker_id")
    return tracker_id


def as_uuid(value: uuid.UUID | str, *, field: str) -> uuid.UUID:
    # A malformed id cannot reference anything, so it reads as not found.
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFound(f"{field} {value!r} not found", field=field) from None


def get_bike(db: Session, bike_id: uuid.UUID | str) -> Bike:
    bike_id = as_uuid(bike_id, field="bike_id")
    bike = db.get(Bike, bike_id)
    if bike is None:
        raise NotFound(f"Bike {bike_id} not found", field="bike_id")
    return bike


def list_bikes(db: Session, *, status: str | None = INVESTIGATING, makes: list[str] | None = None) -> list[Bike]:
    stmt = select(Bike)
    if status is not None:
        stmt = stmt.where(Bike.status == status)
    if makes is not None:
        stmt = stmt.where(Bike.make.in_(makes))
    return list(db.scalars(stmt.order_by(Bike.created_at)).all())


def register_bike(
    db: Session,
    *,
    make: str,
    model: str,
    serial_number: str,
    owner_id: str,
    tracker_id: str | None = None,
) -> Bike:
    bike = Bike(
        make=make,
        model=model,
        serial_number=serial_number,
        owner_id=owner_id,
        tracker_id=validate_tracker_id(tracker_id),
    )
    db.add(bike)
    db.commit()
    logger.info("Registered bike %s (%s %s)", bike.id, make, model)
    return bike


def report_stolen_bike(
    db: Session,
    *,
    make: str,
    model: str,
    serial_number: str,
    member_email: str,
    tracker_id: str | None = None,
    last_seen_on: datetime | None = None,
    missing_since: datetime | None = None,
) -> tuple[Bike, MissingReport]:
    """File a theft report: a new pending bike plus its missing report.

    The bike gets an anonymous owner reference; the reporter is reached
    through ``member_email`` once the bike is recovered.
    """
    bike = Bike(
        make=make,
        model=model,
        serial_number=serial_number,
        owner_id=uuid.uuid4().hex,
        tracker_id=validate_tracker_id(tracker_id),
    )
    db.add(bike)
    db.flush()

    report = MissingReport(
        bike_id=bike.id,
        make=make,
        model=model,
        serial_number=serial_number,
        member_email=member_email,
        last_seen_on=ensure_utc(last_seen_on) if last_seen_on else None,
        missing_since=ensure_utc(missing_since) if missing_since else None,
    )
    db.add(report)
    db.commit()
    logger.info("Stolen bike reported: bike=%s report=%s", bike.id, report.id)
    return bike, report


def get_missing_report(db: Session, bike_id: uuid.UUID) -> MissingReport | None:
    return db.scalar(select(MissingReport).where(MissingReport.bike_id == bike_id))


def get_location_history(
    db: Session,
    bike_id: uuid.UUID | str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[LocationSample]:
    """Samples for a bike in chronological order, optionally within [start, end]."""
    bike = get_bike(db, bike_id)
    stmt = select(LocationSample).where(LocationSample.bike_id == bike.id)
    if start is not None:
        stmt = stmt.where(LocationSample.ts >= ensure_utc(start))
    if end is not None:
        stmt = stmt.where(LocationSample.ts <= ensure_utc(end))
    # id breaks ties between samples with the same timestamp
    stmt = stmt.order_by(LocationSample.ts.asc(), LocationSample.id.asc())
    return list(db.scalars(stmt).all())


def enqueue_update(
    db: Session,
    bike_id: uuid.UUID | str,
    longitude: float,
    latitude: float,
    *,
    reported_at: datetime | None = None,
) -> PendingUpdate:
    bike = get_bike(db, bike_id)
    # SQLite drops the offset, so store UTC.
    if reported_at is not None:
        reported_at = ensure_utc(reported_at)
    update = PendingUpdate(bike_id=bike.id, longitude=longitude, latitude=latitude, reported_at=reported_at)
    db.add(update)
    db.commit()
    return update


def add_note(db: Session, bike_id: uuid.UUID | str, content: str) -> Note:
    bike = get_bike(db, bike_id)
    content = content.strip()
    if not content:
        raise InvalidArgument("content is required", field="content")
    note = Note(bike_id=bike.id, content=content)
    db.add(note)
    db.commit()
    return note


def list_notes(db: Session, bike_id: uuid.UUID | str) -> list[Note]:
    bike = get_bike(db, bike_id)
    stmt = select(Note).where(Note.bike_id == bike.id).order_by(Note.created_at.desc())
    return list(db.scalars(stmt).all())


def list_recoveries(db: Session, *, limit: int = 10) -> list[Recovery]:
    stmt = select(Recovery).order_by(Recovery.recovered_at.desc()).limit(limit)
    return list(db.scalars(stmt).all())


def list_return_locations(db: Session) -> list[ReturnLocation]:
    return list(db.scalars(select(ReturnLocation).order_by(ReturnLocation.name)).all())
