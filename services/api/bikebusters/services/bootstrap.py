from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from bikebusters.core.config import settings
from bikebusters.core.security import hash_password
from bikebusters.models.user import User

logger = logging.getLogger(__name__)


def bootstrap_admin(db: Session) -> User | None:
    if not settings.bootstrap_admin_email or not settings.bootstrap_admin_password:
        return None

    existing = db.scalar(select(User).limit(1))
    if existing:
        return None

    user = User(
        email=settings.bootstrap_admin_email.strip().lower(),
        password_hash=hash_password(settings.bootstrap_admin_password),
        role="admin",
        is_active=True,
    )
    db.add(user)
    db.commit()
    logger.info("Bootstrapped admin user %s", user.email)
    return user
