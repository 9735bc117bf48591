from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, validates

from bikebusters.core.clock import utcnow
from bikebusters.db.base import Base

ROLES = ("admin", "agent", "manufacturer", "owner")
# Roles allowed to drive the recovery state machine.
STAFF_ROLES = ("admin", "agent")


class User(Base):
    """An actor: staff work bikes, manufacturers and owners mostly read."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(32))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @validates("role")
    def _check_role(self, _key: str, role: str) -> str:
        if role not in ROLES:
            raise ValueError(f"unknown role {role!r}")
        return role

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
