from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from bikebusters.core.clock import utcnow
from bikebusters.models.bike import BIKE_STATUSES, INVESTIGATING, RESOLVED, Bike


def bike_statistics(db: Session, now: datetime | None = None, *, top: int = 5) -> dict[str, Any]:
    now = now or utcnow()
    hour_ago = now - timedelta(hours=1)
    day_ago = now - timedelta(hours=24)

    counts = {status: 0 for status in BIKE_STATUSES}
    for status, n in db.execute(select(Bike.status, func.count()).group_by(Bike.status)).all():
        counts[status] = n

    def _count(*where) -> int:
        return int(db.scalar(select(func.count()).select_from(Bike).where(*where)) or 0)

    recent = _count(Bike.last_signal >= hour_ago)
    moderate = _count(Bike.last_signal < hour_ago, Bike.last_signal >= day_ago)
    old = _count(Bike.last_signal < day_ago)

    top_rows = db.execute(
        select(Bike.make, func.count().label("n")).group_by(Bike.make).order_by(desc("n"), Bike.make).limit(top)
    ).all()

    investigating = counts[INVESTIGATING]
    resolved = counts[RESOLVED]
    # Rate is relative to bikes still being worked plus those already back.
    denominator = investigating + resolved
    return {
        "total_bikes": sum(counts.values()),
        "status_counts": counts,
        "recovery_rate": round(resolved / denominator * 100, 1) if denominator else 0.0,
        "signal": {"recent": recent, "moderate": moderate, "old": old},
        "top_manufacturers": [{"name": make, "count": n} for make, n in top_rows],
    }
