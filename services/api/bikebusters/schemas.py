from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from bikebusters.core.clock import ensure_utc
from bikebusters.models.attempt import Attempt
from bikebusters.models.bike import Bike
from bikebusters.models.location import LocationSample
from bikebusters.models.recovery import Recovery, ReturnLocation
from bikebusters.models.report import MissingReport, Note


class LoginIn(BaseModel):
    email: str
    password: str


class RegisterBikeIn(BaseModel):
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    serial_number: str = Field(min_length=1)
    owner_id: str = Field(min_length=1, max_length=64)
    tracker_id: str | None = None


class ReportStolenBikeIn(BaseModel):
    manufacturer: str = Field(min_length=1)
    model: str = Field(min_length=1)
    serial_number: str = Field(min_length=1)
    member_email: str = Field(min_length=3)
    tracker_id: str | None = None
    last_seen_on: datetime | None = None
    missing_since: datetime | None = None


class PositionIn(BaseModel):
    latitude: float
    longitude: float
    timestamp: datetime | None = None


class CancelAttemptIn(BaseModel):
    reason: str


class FoundIn(BaseModel):
    return_location_id: str
    notes: str | None = None


class FoundManyIn(BaseModel):
    serial_numbers: list[str]
    return_location_id: str
    notes: str | None = None


class NoteIn(BaseModel):
    content: str


class PrioritiesIn(BaseModel):
    latitude: float
    longitude: float
    # bike id -> seconds; bikes missing here are looked up or treated as unreachable
    driving_times: dict[str, float | None] | None = None
    now: datetime | None = None


def _iso(value: datetime | None) -> str | None:
    return ensure_utc(value).isoformat() if value is not None else None


def bike_out(bike: Bike) -> dict[str, Any]:
    return {
        "id": str(bike.id),
        "make": bike.make,
        "model": bike.model,
        "serial_number": bike.serial_number,
        "tracker_id": bike.tracker_id,
        "owner_id": bike.owner_id,
        "status": bike.status,
        "longitude": bike.longitude,
        "latitude": bike.latitude,
        "last_signal": _iso(bike.last_signal),
        "return_location_id": str(bike.return_location_id) if bike.return_location_id else None,
        "created_at": _iso(bike.created_at),
    }


def sample_out(sample: LocationSample) -> dict[str, Any]:
    return {
        "id": str(sample.id),
        "bike_id": str(sample.bike_id),
        "longitude": sample.longitude,
        "latitude": sample.latitude,
        "ts": _iso(sample.ts),
    }


def attempt_out(attempt: Attempt) -> dict[str, Any]:
    return {
        "id": str(attempt.id),
        "bike_id": str(attempt.bike_id),
        "user_id": str(attempt.user_id),
        "status": attempt.status,
        "started_at": _iso(attempt.started_at),
        "ended_at": _iso(attempt.ended_at),
        "cancellation_reason": attempt.cancellation_reason,
    }


def recovery_out(recovery: Recovery) -> dict[str, Any]:
    return {
        "id": str(recovery.id),
        "bike_id": str(recovery.bike_id),
        "found_by": str(recovery.found_by),
        "return_location_id": str(recovery.return_location_id),
        "notes": recovery.notes,
        "recovered_at": _iso(recovery.recovered_at),
    }


def missing_report_out(report: MissingReport) -> dict[str, Any]:
    return {
        "id": str(report.id),
        "bike_id": str(report.bike_id),
        "make": report.make,
        "model": report.model,
        "serial_number": report.serial_number,
        "member_email": report.member_email,
        "last_seen_on": _iso(report.last_seen_on),
        "missing_since": _iso(report.missing_since),
        "created_at": _iso(report.created_at),
    }


def return_location_out(location: ReturnLocation) -> dict[str, Any]:
    return {"id": str(location.id), "name": location.name, "address": location.address}


def note_out(note: Note) -> dict[str, Any]:
    return {
        "id": str(note.id),
        "bike_id": str(note.bike_id),
        "content": note.content,
        "created_at": _iso(note.created_at),
    }
