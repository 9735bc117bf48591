from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bikebusters.core.clock import utcnow
from bikebusters.db.base import Base


class PendingUpdate(Base):
    """A simulated position report waiting for the poller."""

    __tablename__ = "pending_updates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Not a foreign key: reports for unknown bikes are dropped by the poller.
    bike_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    longitude: Mapped[float] = mapped_column(Float)
    latitude: Mapped[float] = mapped_column(Float)
    reported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    enqueued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
