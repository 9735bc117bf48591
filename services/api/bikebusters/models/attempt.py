from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from bikebusters.core.clock import utcnow
from bikebusters.db.base import Base

OPEN = "open"
SUCCESSFUL = "successful"
CANCELLED = "cancelled"

CANCELLATION_REASONS = ("bike-not-there", "bike-started-moving", "switched-target")


class Attempt(Base):
    __tablename__ = "attempts"
    __table_args__ = (
        # At most one open attempt per bike, enforced by the database.
        Index(
            "uq_attempts_open_bike_id",
            "bike_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bike_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("bikes.id"), index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"))
    status: Mapped[str] = mapped_column(String(32), default=OPEN)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
