from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from bikebusters.models.pending_update import PendingUpdate
from bikebusters.services.ingestion import LocationIngestor

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    applied: int = 0
    dropped: int = 0
    skipped: int = 0


class UpdatePoller:
    """Drains queued simulated updates into the ingestion pipeline.

    Each update is claimed with ``DELETE ... RETURNING`` in the same
    transaction that applies it, so concurrent pollers never apply the same
    update twice. A failing update is dropped and the sweep moves on; there
    is no retry or dead-letter queue.
    """

    def __init__(self, session_factory: sessionmaker[Session], ingestor: LocationIngestor) -> None:
        self._session_factory = session_factory
        self._ingestor = ingestor

    def poll_once(self) -> PollResult:
        result = PollResult()
        with self._session_factory() as db:
            ids = list(db.scalars(select(PendingUpdate.id).order_by(PendingUpdate.enqueued_at, PendingUpdate.id)).all())
            db.rollback()
            if not ids:
                return result
            logger.info("Polling cycle: %d queued update(s)", len(ids))

            for update_id in ids:
                claimed = db.execute(
                    delete(PendingUpdate)
                    .where(PendingUpdate.id == update_id)
                    .returning(
                        PendingUpdate.bike_id,
                        PendingUpdate.longitude,
                        PendingUpdate.latitude,
                        PendingUpdate.reported_at,
                    )
                ).first()
                if claimed is None:
                    db.rollback()
                    result.skipped += 1
                    continue

                try:
                    self._ingestor.apply_position(
                        db,
                        claimed.bike_id,
                        (claimed.longitude, claimed.latitude),
                        claimed.reported_at,
                    )
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Dropping update %s for bike %s: %s", update_id, claimed.bike_id, exc)
                    self._drop(db, update_id)
                    result.dropped += 1
                    continue
                result.applied += 1

        logger.info(
            "Polling cycle completed: applied=%d dropped=%d skipped=%d",
            result.applied,
            result.dropped,
            result.skipped,
        )
        return result

    def _drop(self, db: Session, update_id) -> None:
        db.rollback()
        db.execute(delete(PendingUpdate).where(PendingUpdate.id == update_id))
        db.commit()

    async def run_forever(self, interval_seconds: float) -> None:
        logger.info("Polling service started (every %ss)", interval_seconds)
        while True:
            try:
                self.poll_once()
            except Exception:  # noqa: BLE001
                logger.exception("Error in polling cycle")
            await asyncio.sleep(interval_seconds)
