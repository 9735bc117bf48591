from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from bikebusters.models.bike import Bike
from bikebusters.models.recovery import ReturnLocation
from bikebusters.models.report import Manufacturer, MissingReport

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


class LogMailer:
    """Writes outgoing mail to the log; delivery is left to the deployment."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Mail to %s: %s\n%s", to, subject, body)


@dataclass(frozen=True)
class Notification:
    channel: str  # "b2c" or "b2b"
    to: str
    subject: str
    body: str
    bike_ids: tuple[str, ...]


def group_by_make(bikes: Iterable[Bike]) -> dict[str, list[Bike]]:
    grouped: dict[str, list[Bike]] = defaultdict(list)
    for bike in bikes:
        grouped[bike.make].append(bike)
    return dict(grouped)


def _owner_notification(bike: Bike, report: MissingReport, location: ReturnLocation) -> Notification:
    body = (
        f"Great news! We've found your bike ({bike.make} {bike.model}).\n"
        f"You can pick it up at {location.name}, {location.address}.\n"
        "Thank you for using BikeBusters!"
    )
    return Notification(
        channel="b2c",
        to=report.member_email,
        subject="Your Bike Has Been Found!",
        body=body,
        bike_ids=(str(bike.id),),
    )


def _manufacturer_notification(make: str, contact: str, bikes: list[Bike], location: ReturnLocation) -> Notification:
    lines = [f"- {b.model} (serial {b.serial_number})" for b in bikes]
    body = (
        f"{len(bikes)} {make} bike(s) were recovered and can be collected at "
        f"{location.name}, {location.address}:\n" + "\n".join(lines)
    )
    return Notification(
        channel="b2b",
        to=contact,
        subject=f"{len(bikes)} {make} bike(s) recovered",
        body=body,
        bike_ids=tuple(str(b.id) for b in bikes),
    )


class NotificationDispatcher:
    def __init__(self, mailer: Mailer | None = None) -> None:
        self._mailer = mailer or LogMailer()

    def plan(self, db: Session, bikes: list[Bike], location: ReturnLocation) -> list[Notification]:
        """One B2C message per reported bike, one B2B message per remaining make."""
        if not bikes:
            return []
        reports = {
            r.bike_id: r
            for r in db.scalars(select(MissingReport).where(MissingReport.bike_id.in_([b.id for b in bikes]))).all()
        }

        out: list[Notification] = []
        fleet: list[Bike] = []
        for bike in bikes:
            report = reports.get(bike.id)
            if report is not None:
                out.append(_owner_notification(bike, report, location))
            else:
                fleet.append(bike)

        for make, group in group_by_make(fleet).items():
            manufacturer = db.scalar(select(Manufacturer).where(Manufacturer.name == make))
            if manufacturer is None or not manufacturer.contact_email:
                logger.warning("No contact registered for %s; %d recovered bike(s) not notified", make, len(group))
                continue
            out.append(_manufacturer_notification(make, manufacturer.contact_email, group, location))
        return out

    def notify_resolved(self, db: Session, bikes: list[Bike], location: ReturnLocation) -> list[Notification]:
        notifications = self.plan(db, bikes, location)
        for n in notifications:
            try:
                self._mailer.send(n.to, n.subject, n.body)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to send %s notification to %s", n.channel, n.to)
        return notifications
