"""Bike status and attempt lifecycles.

Bike status:  pending -> investigating -> {resolved, lost}
Attempt:      open -> {successful, cancelled}

``resolved`` and ``lost`` are terminal. Every transition out of a terminal
state raises InvalidState, including re-applying the same one.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bikebusters.core.clock import utcnow
from bikebusters.core.errors import Conflict, InvalidArgument, InvalidState, NotFound
from bikebusters.models.attempt import CANCELLATION_REASONS, CANCELLED, OPEN, SUCCESSFUL, Attempt
from bikebusters.models.bike import INVESTIGATING, LOST, PENDING, RESOLVED, Bike
from bikebusters.models.recovery import Recovery, ReturnLocation
from bikebusters.services.notifications import NotificationDispatcher
from bikebusters.services.registry import as_uuid, get_bike

logger = logging.getLogger(__name__)


def _require_active(bike: Bike, action: str) -> None:
    if bike.is_terminal:
        raise InvalidState(f"Cannot {action}: bike {bike.id} is already {bike.status}", field="status")


def find_open_attempt(db: Session, bike_id: uuid.UUID) -> Attempt | None:
    return db.scalar(select(Attempt).where(Attempt.bike_id == bike_id, Attempt.status == OPEN))


class RecoveryStateMachine:
    def __init__(self, notifier: NotificationDispatcher | None = None) -> None:
        self._notifier = notifier or NotificationDispatcher()

    # -- bike status -------------------------------------------------------

    def begin_investigation(self, bike: Bike) -> None:
        """pending -> investigating. Does not commit; the caller owns the transaction."""
        if bike.status != PENDING:
            raise InvalidState(f"Bike {bike.id} is {bike.status}, not {PENDING}", field="status")
        bike.status = INVESTIGATING
        logger.info("Bike %s is now under investigation", bike.id)

    def start_investigation(self, db: Session, bike_id: uuid.UUID | str) -> Bike:
        bike = get_bike(db, bike_id)
        try:
            self.begin_investigation(bike)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return bike

    def mark_found(
        self,
        db: Session,
        bike_id: uuid.UUID | str,
        return_location_id: uuid.UUID | str,
        found_by: uuid.UUID,
        notes: str | None = None,
    ) -> Recovery:
        try:
            bike = get_bike(db, bike_id)
            location = self._get_return_location(db, return_location_id)
            recovery = self._resolve(db, bike, location, found_by, notes)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info("Bike %s resolved by %s at %s", bike.id, found_by, location.name)
        self._notifier.notify_resolved(db, [bike], location)
        return recovery

    def mark_found_many(
        self,
        db: Session,
        serial_numbers: list[str],
        return_location_id: uuid.UUID | str,
        found_by: uuid.UUID,
        notes: str | None = None,
    ) -> list[Recovery]:
        """Resolve a batch of scanned bikes together; all succeed or none do."""
        if not serial_numbers:
            raise InvalidArgument("serial_numbers must not be empty", field="serial_numbers")

        try:
            location = self._get_return_location(db, return_location_id)
            bikes: list[Bike] = []
            recoveries: list[Recovery] = []
            for serial in dict.fromkeys(serial_numbers):
                bike = self._get_active_by_serial(db, serial)
                recoveries.append(self._resolve(db, bike, location, found_by, notes))
                bikes.append(bike)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info("%d bikes resolved by %s at %s", len(bikes), found_by, location.name)
        self._notifier.notify_resolved(db, bikes, location)
        return recoveries

    def mark_lost(self, db: Session, bike_id: uuid.UUID | str) -> Bike:
        bike = get_bike(db, bike_id)
        _require_active(bike, "mark lost")
        bike.status = LOST
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Bike %s marked lost", bike.id)
        return bike

    # -- attempts ----------------------------------------------------------

    def start_attempt(self, db: Session, bike_id: uuid.UUID | str, user_id: uuid.UUID) -> Attempt:
        """Open an attempt, or hand back the one already open for this bike.

        Uniqueness is enforced by a partial unique index; the loser of a
        concurrent insert gets the winner's attempt.
        """
        bike = get_bike(db, bike_id)
        _require_active(bike, "start attempt")

        existing = find_open_attempt(db, bike.id)
        if existing is not None:
            return existing

        attempt = Attempt(bike_id=bike.id, user_id=user_id, status=OPEN, started_at=utcnow())
        db.add(attempt)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            winner = find_open_attempt(db, bike.id)
            if winner is None:
                raise Conflict(f"Could not open an attempt for bike {bike.id}", field="bike_id") from None
            logger.info("Attempt race on bike %s; returning %s", bike.id, winner.id)
            return winner

        logger.info("Attempt %s opened on bike %s by %s", attempt.id, bike.id, user_id)
        return attempt

    def cancel_attempt(self, db: Session, bike_id: uuid.UUID | str, reason: str) -> Attempt:
        if reason not in CANCELLATION_REASONS:
            raise InvalidArgument(
                f"reason must be one of {', '.join(CANCELLATION_REASONS)}", field="reason"
            )
        bike_uuid = as_uuid(bike_id, field="bike_id")
        attempt = find_open_attempt(db, bike_uuid)
        if attempt is None:
            raise NotFound(f"No open attempt for bike {bike_uuid}", field="bike_id")

        attempt.status = CANCELLED
        attempt.ended_at = utcnow()
        attempt.cancellation_reason = reason
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Attempt %s on bike %s cancelled: %s", attempt.id, bike_uuid, reason)
        return attempt

    # -- helpers -----------------------------------------------------------

    def _resolve(
        self,
        db: Session,
        bike: Bike,
        location: ReturnLocation,
        found_by: uuid.UUID,
        notes: str | None,
    ) -> Recovery:
        _require_active(bike, "mark found")
        now = utcnow()
        bike.status = RESOLVED
        bike.return_location_id = location.id

        attempt = find_open_attempt(db, bike.id)
        if attempt is not None:
            attempt.status = SUCCESSFUL
            attempt.ended_at = now

        recovery = Recovery(
            bike_id=bike.id,
            found_by=found_by,
            return_location_id=location.id,
            notes=notes,
            recovered_at=now,
        )
        db.add(recovery)
        db.flush()
        return recovery

    def _get_return_location(self, db: Session, location_id: uuid.UUID | str) -> ReturnLocation:
        location = db.get(ReturnLocation, as_uuid(location_id, field="return_location_id"))
        if location is None:
            raise NotFound(f"Return location {location_id} not found", field="return_location_id")
        return location

    def _get_active_by_serial(self, db: Session, serial_number: str) -> Bike:
        bikes = db.scalars(select(Bike).where(Bike.serial_number == serial_number)).all()
        if not bikes:
            raise NotFound(f"No bike with serial number {serial_number}", field="serial_numbers")
        active = [b for b in bikes if not b.is_terminal]
        if not active:
            _require_active(bikes[0], "mark found")
        return active[0]
