from __future__ import annotations

import re
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bikebusters.core.clock import utcnow
from bikebusters.db.base import Base

PENDING = "pending"
INVESTIGATING = "investigating"
RESOLVED = "resolved"
LOST = "lost"

BIKE_STATUSES = (PENDING, INVESTIGATING, RESOLVED, LOST)
TERMINAL_STATUSES = frozenset({RESOLVED, LOST})

TRACKER_ID_RE = re.compile(r"^[a-f0-9]{8}$")


class Bike(Base):
    __tablename__ = "bikes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    make: Mapped[str] = mapped_column(String(128), index=True)
    model: Mapped[str] = mapped_column(String(128))
    serial_number: Mapped[str] = mapped_column(String(128), index=True)
    tracker_id: Mapped[str | None] = mapped_column(String(8), nullable=True)
    owner_id: Mapped[str] = mapped_column(String(64))

    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_signal: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(String(32), default=PENDING, index=True)
    return_location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("return_locations.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def coordinate(self) -> tuple[float, float] | None:
        if self.longitude is None or self.latitude is None:
            return None
        return (self.longitude, self.latitude)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
