from __future__ import annotations

import logging

from sqlalchemy import func, select, text

from bikebusters.core.config import settings
from bikebusters.db.session import SessionLocal
from bikebusters.models.pending_update import PendingUpdate
from bikebusters.services.bootstrap import bootstrap_admin

logger = logging.getLogger(__name__)


def on_startup() -> None:
    with SessionLocal() as db:
        db.execute(text("select 1"))
        db.commit()
        bootstrap_admin(db)

        backlog = db.scalar(select(func.count()).select_from(PendingUpdate)) or 0
        if backlog:
            logger.info("%d queued tracker update(s) waiting for the poller", backlog)

    if not settings.routing_url:
        logger.info("ROUTING_URL not set; agent priorities rely on client-supplied driving times")
    if not settings.tracker_api_key:
        logger.warning("TRACKER_API_KEY not set; position endpoints accept unauthenticated trackers")
