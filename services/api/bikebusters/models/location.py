from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bikebusters.core.clock import utcnow
from bikebusters.db.base import Base


class LocationSample(Base):
    __tablename__ = "location_samples"
    __table_args__ = (Index("ix_location_samples_bike_id_ts", "bike_id", "ts"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bike_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("bikes.id"))
    longitude: Mapped[float] = mapped_column(Float)
    latitude: Mapped[float] = mapped_column(Float)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
