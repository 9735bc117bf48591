from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from numbers import Real
from typing import Any

from sqlalchemy.orm import Session

from bikebusters.core.clock import ensure_utc, utcnow
from bikebusters.core.errors import InvalidArgument
from bikebusters.models.bike import PENDING, Bike
from bikebusters.models.location import LocationSample
from bikebusters.schemas import bike_out
from bikebusters.services.recovery import RecoveryStateMachine
from bikebusters.services.registry import get_bike
from bikebusters.services.ws import LocationBroadcaster, LocationUpdated

logger = logging.getLogger(__name__)


def validate_coordinate(coordinate: Any) -> tuple[float, float]:
    """Return ``(longitude, latitude)`` as floats or raise InvalidArgument."""
    try:
        longitude, latitude = coordinate
    except (TypeError, ValueError):
        raise InvalidArgument("coordinate must be a (longitude, latitude) pair", field="coordinate") from None

    for name, value, bound in (("longitude", longitude, 180.0), ("latitude", latitude, 90.0)):
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidArgument(f"{name} must be a number", field=name)
        if not math.isfinite(value):
            raise InvalidArgument(f"{name} must be finite", field=name)
        if not -bound <= value <= bound:
            raise InvalidArgument(f"{name} must be within [-{bound:g}, {bound:g}]", field=name)
    return float(longitude), float(latitude)


class LocationIngestor:
    """Applies position fixes to bikes and tells live viewers about them."""

    def __init__(self, state_machine: RecoveryStateMachine, broadcaster: LocationBroadcaster) -> None:
        self._state_machine = state_machine
        self._broadcaster = broadcaster

    def apply_position(
        self,
        db: Session,
        bike_id: uuid.UUID | str,
        coordinate: Any,
        ts: datetime | None = None,
    ) -> Bike:
        """Record a fix, move the bike there and publish ``location.updated``.

        Everything is written in the caller's session and committed together,
        so a failure leaves neither a sample nor a bike update behind. Bike
        state is last-write-wins in application order; timestamps are not
        compared.
        """
        try:
            longitude, latitude = validate_coordinate(coordinate)
            ts = ensure_utc(ts) if ts is not None else utcnow()
            bike = get_bike(db, bike_id)

            db.add(LocationSample(bike_id=bike.id, longitude=longitude, latitude=latitude, ts=ts))
            bike.longitude = longitude
            bike.latitude = latitude
            bike.last_signal = ts
            if bike.status == PENDING:
                self._state_machine.begin_investigation(bike)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.debug("Bike %s at (%s, %s)", bike.id, longitude, latitude)
        self._broadcaster.publish(LocationUpdated(bike=bike_out(bike), coordinate=(longitude, latitude)))
        return bike
