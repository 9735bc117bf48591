from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bikebusters.core.clock import utcnow
from bikebusters.db.base import Base


class ReturnLocation(Base):
    __tablename__ = "return_locations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(256))
    address: Mapped[str] = mapped_column(String(512))


class Recovery(Base):
    __tablename__ = "recoveries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bike_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("bikes.id"), index=True)
    found_by: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"))
    return_location_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("return_locations.id"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recovered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
