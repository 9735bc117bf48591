from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from bikebusters.core.clock import utcnow
from bikebusters.core.config import settings
from bikebusters.core.errors import RecoveryError
from bikebusters.core.logging import setup_logging
from bikebusters.core.security import create_access_token, verify_password
from bikebusters.core.startup import on_startup
from bikebusters.db.session import SessionLocal
from bikebusters.models.bike import BIKE_STATUSES, INVESTIGATING
from bikebusters.models.user import STAFF_ROLES, User
from bikebusters.schemas import (
    CancelAttemptIn,
    FoundIn,
    FoundManyIn,
    LoginIn,
    NoteIn,
    PositionIn,
    PrioritiesIn,
    RegisterBikeIn,
    ReportStolenBikeIn,
    attempt_out,
    bike_out,
    missing_report_out,
    note_out,
    recovery_out,
    return_location_out,
    sample_out,
)
from bikebusters.services import registry
from bikebusters.services.auth import get_current_user, require_roles, require_tracker_key
from bikebusters.services.ingestion import LocationIngestor, validate_coordinate
from bikebusters.services.notifications import NotificationDispatcher
from bikebusters.services.poller import UpdatePoller
from bikebusters.services.prioritization import Candidate, explain
from bikebusters.services.recovery import RecoveryStateMachine
from bikebusters.services.routing import RoutingClient
from bikebusters.services.statistics import bike_statistics
from bikebusters.services.ws import LocationBroadcaster, forward_events

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

broadcaster = LocationBroadcaster()
state_machine = RecoveryStateMachine(NotificationDispatcher())
ingestor = LocationIngestor(state_machine, broadcaster)
poller = UpdatePoller(SessionLocal, ingestor)
routing = RoutingClient(settings.routing_url, timeout=settings.routing_timeout_seconds)


async def _parse(request: Request, schema: type[M]) -> M:
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from None
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise HTTPException(status_code=400, detail=f"{field}: {first.get('msg')}") from None


def _finite(value: float) -> float | None:
    return value if math.isfinite(value) else None


async def health(_: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def login(request: Request) -> JSONResponse:
    payload = await _parse(request, LoginIn)
    email = payload.email.strip().lower()
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail="email and password are required")

    with SessionLocal() as db:
        user = db.query(User).filter(User.email == email).first()
        if not user or not user.is_active:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        if not verify_password(payload.password, user.password_hash):
            raise HTTPException(status_code=401, detail="Invalid credentials")

        token = create_access_token(subject=str(user.id), role=user.role)
        return JSONResponse({"access_token": token, "token_type": "bearer"})


async def me(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        user = get_current_user(request, db)
        return JSONResponse(
            {
                "id": str(user.id),
                "email": user.email,
                "role": user.role,
                "is_active": user.is_active,
                "is_staff": user.is_staff,
            }
        )


async def report_stolen_bike(request: Request) -> JSONResponse:
    payload = await _parse(request, ReportStolenBikeIn)
    with SessionLocal() as db:
        bike, report = registry.report_stolen_bike(
            db,
            make=payload.manufacturer.strip(),
            model=payload.model.strip(),
            serial_number=payload.serial_number.strip(),
            member_email=payload.member_email.strip().lower(),
            tracker_id=payload.tracker_id,
            last_seen_on=payload.last_seen_on,
            missing_since=payload.missing_since,
        )
        return JSONResponse(
            {"ok": True, "bike_id": str(bike.id), "report_id": str(report.id), "owner_id": bike.owner_id},
            status_code=201,
        )


async def list_bikes(request: Request) -> JSONResponse:
    status = request.query_params.get("status", INVESTIGATING)
    if status != "all" and status not in BIKE_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of all, {', '.join(BIKE_STATUSES)}")
    make = request.query_params.get("make")
    with SessionLocal() as db:
        require_roles(request, db, *STAFF_ROLES, "manufacturer")
        bikes = registry.list_bikes(
            db,
            status=None if status == "all" else status,
            makes=[make] if make else None,
        )
        return JSONResponse([bike_out(b) for b in bikes])


async def register_bike(request: Request) -> JSONResponse:
    payload = await _parse(request, RegisterBikeIn)
    with SessionLocal() as db:
        require_roles(request, db, *STAFF_ROLES, "manufacturer")
        bike = registry.register_bike(
            db,
            make=payload.make.strip(),
            model=payload.model.strip(),
            serial_number=payload.serial_number.strip(),
            owner_id=payload.owner_id,
            tracker_id=payload.tracker_id,
        )
        return JSONResponse(bike_out(bike), status_code=201)


async def get_bike(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        get_current_user(request, db)
        bike = registry.get_bike(db, request.path_params["bike_id"])
        return JSONResponse(bike_out(bike))


async def missing_report(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        require_roles(request, db, *STAFF_ROLES)
        bike = registry.get_bike(db, request.path_params["bike_id"])
        report = registry.get_missing_report(db, bike.id)
        if report is None:
            raise HTTPException(status_code=404, detail="Missing report not found")
        return JSONResponse(missing_report_out(report))


async def location_history(request: Request) -> JSONResponse:
    start = _query_datetime(request, "start")
    end = _query_datetime(request, "end")
    with SessionLocal() as db:
        get_current_user(request, db)
        samples = registry.get_location_history(db, request.path_params["bike_id"], start=start, end=end)
        return JSONResponse([sample_out(s) for s in samples])


def _query_datetime(request: Request, name: str) -> datetime | None:
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}") from None


async def report_position(request: Request) -> JSONResponse:
    # Live tracker callback: applied immediately.
    require_tracker_key(request)
    payload = await _parse(request, PositionIn)
    with SessionLocal() as db:
        bike = ingestor.apply_position(
            db,
            request.path_params["bike_id"],
            (payload.longitude, payload.latitude),
            payload.timestamp,
        )
        return JSONResponse(bike_out(bike))


async def queue_simulated_update(request: Request) -> JSONResponse:
    require_tracker_key(request)
    payload = await _parse(request, PositionIn)
    with SessionLocal() as db:
        update = registry.enqueue_update(
            db,
            request.path_params["bike_id"],
            payload.longitude,
            payload.latitude,
            reported_at=payload.timestamp,
        )
        return JSONResponse({"ok": True, "id": str(update.id)}, status_code=202)


async def start_investigation(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        require_roles(request, db, *STAFF_ROLES)
        bike = state_machine.start_investigation(db, request.path_params["bike_id"])
        return JSONResponse(bike_out(bike))


async def start_attempt(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        user = require_roles(request, db, *STAFF_ROLES)
        attempt = state_machine.start_attempt(db, request.path_params["bike_id"], user.id)
        return JSONResponse(attempt_out(attempt))


async def cancel_attempt(request: Request) -> JSONResponse:
    payload = await _parse(request, CancelAttemptIn)
    with SessionLocal() as db:
        require_roles(request, db, *STAFF_ROLES)
        attempt = state_machine.cancel_attempt(db, request.path_params["bike_id"], payload.reason)
        return JSONResponse(attempt_out(attempt))


async def mark_found(request: Request) -> JSONResponse:
    payload = await _parse(request, FoundIn)
    with SessionLocal() as db:
        user = require_roles(request, db, *STAFF_ROLES)
        recovery = state_machine.mark_found(
            db, request.path_params["bike_id"], payload.return_location_id, user.id, payload.notes
        )
        bike = registry.get_bike(db, recovery.bike_id)
        return JSONResponse({"ok": True, "bike": bike_out(bike), "recovery": recovery_out(recovery)})


async def mark_many_found(request: Request) -> JSONResponse:
    payload = await _parse(request, FoundManyIn)
    with SessionLocal() as db:
        user = require_roles(request, db, *STAFF_ROLES)
        recoveries = state_machine.mark_found_many(
            db, payload.serial_numbers, payload.return_location_id, user.id, payload.notes
        )
        return JSONResponse({"ok": True, "recoveries": [recovery_out(r) for r in recoveries]})


async def mark_lost(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        require_roles(request, db, *STAFF_ROLES)
        bike = state_machine.mark_lost(db, request.path_params["bike_id"])
        return JSONResponse(bike_out(bike))


async def list_notes(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        get_current_user(request, db)
        notes = registry.list_notes(db, request.path_params["bike_id"])
        return JSONResponse([note_out(n) for n in notes])


async def add_note(request: Request) -> JSONResponse:
    payload = await _parse(request, NoteIn)
    with SessionLocal() as db:
        require_roles(request, db, *STAFF_ROLES)
        note = registry.add_note(db, request.path_params["bike_id"], payload.content)
        return JSONResponse(note_out(note), status_code=201)


async def recoveries(request: Request) -> JSONResponse:
    try:
        limit = max(1, min(100, int(request.query_params.get("limit", "10"))))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid limit") from None
    with SessionLocal() as db:
        get_current_user(request, db)
        return JSONResponse([recovery_out(r) for r in registry.list_recoveries(db, limit=limit)])


async def return_locations(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        return JSONResponse([return_location_out(loc) for loc in registry.list_return_locations(db)])


async def agent_priorities(request: Request) -> JSONResponse:
    payload = await _parse(request, PrioritiesIn)
    origin = validate_coordinate((payload.longitude, payload.latitude))
    with SessionLocal() as db:
        require_roles(request, db, *STAFF_ROLES)
        bikes = registry.list_bikes(db, status=INVESTIGATING)

    times: dict[str, float | None] = dict(payload.driving_times or {})
    missing = [b for b in bikes if str(b.id) not in times and b.coordinate is not None]
    if missing and routing.enabled:
        looked_up = await routing.driving_times(origin, [b.coordinate for b in missing])
        times.update(zip((str(b.id) for b in missing), looked_up))

    now = payload.now or utcnow()
    candidates = [Candidate(bike=b, last_signal=b.last_signal, driving_time_seconds=times.get(str(b.id))) for b in bikes]
    rows = explain(candidates, now)
    out: list[dict[str, Any]] = []
    for row in rows:
        candidate = row["candidate"]
        out.append(
            {
                **bike_out(candidate.bike),
                "tier": row["tier"],
                "hours_since_signal": _finite(row["hours_since_signal"]),
                "driving_time_seconds": candidate.driving_time_seconds,
            }
        )
    return JSONResponse({"ok": True, "bikes": out})


async def statistics(request: Request) -> JSONResponse:
    with SessionLocal() as db:
        get_current_user(request, db)
        return JSONResponse({"ok": True, **bike_statistics(db)})


async def ws_bikes(websocket: WebSocket) -> None:
    subscription = broadcaster.subscribe()
    await websocket.accept()
    forward = asyncio.create_task(forward_events(websocket, subscription))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(subscription)
        forward.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await forward


async def recovery_error(_: Request, exc: RecoveryError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def http_error(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@contextlib.asynccontextmanager
async def lifespan(_: Starlette) -> AsyncIterator[None]:
    setup_logging()
    on_startup()
    task: asyncio.Task | None = None
    if settings.enable_poller:
        task = asyncio.create_task(poller.run_forever(settings.poll_interval_seconds))
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.info("Polling service stopped")


routes = [
    Route("/v1/health", endpoint=health, methods=["GET"]),
    Route("/v1/auth/login", endpoint=login, methods=["POST"]),
    Route("/v1/auth/me", endpoint=me, methods=["GET"]),
    Route("/v1/bikes", endpoint=list_bikes, methods=["GET"]),
    Route("/v1/bikes", endpoint=register_bike, methods=["POST"]),
    Route("/v1/bikes/report", endpoint=report_stolen_bike, methods=["POST"]),
    Route("/v1/bikes/found", endpoint=mark_many_found, methods=["POST"]),
    Route("/v1/bikes/{bike_id}", endpoint=get_bike, methods=["GET"]),
    Route("/v1/bikes/{bike_id}/missing-report", endpoint=missing_report, methods=["GET"]),
    Route("/v1/bikes/{bike_id}/locations", endpoint=location_history, methods=["GET"]),
    Route("/v1/bikes/{bike_id}/position", endpoint=report_position, methods=["POST"]),
    Route("/v1/bikes/{bike_id}/simulated-updates", endpoint=queue_simulated_update, methods=["POST"]),
    Route("/v1/bikes/{bike_id}/investigate", endpoint=start_investigation, methods=["POST"]),
    Route("/v1/bikes/{bike_id}/attempts", endpoint=start_attempt, methods=["POST"]),
    Route("/v1/bikes/{bike_id}/attempts/cancel", endpoint=cancel_attempt, methods=["POST"]),
    Route("/v1/bikes/{bike_id}/found", endpoint=mark_found, methods=["POST"]),
    Route("/v1/bikes/{bike_id}/lost", endpoint=mark_lost, methods=["POST"]),
    Route("/v1/bikes/{bike_id}/notes", endpoint=list_notes, methods=["GET"]),
    Route("/v1/bikes/{bike_id}/notes", endpoint=add_note, methods=["POST"]),
    Route("/v1/recoveries", endpoint=recoveries, methods=["GET"]),
    Route("/v1/return-locations", endpoint=return_locations, methods=["GET"]),
    Route("/v1/agent/priorities", endpoint=agent_priorities, methods=["POST"]),
    Route("/v1/statistics", endpoint=statistics, methods=["GET"]),
    WebSocketRoute("/ws/bikes", endpoint=ws_bikes),
]


app = Starlette(
    debug=settings.environment == "dev",
    routes=routes,
    lifespan=lifespan,
    exception_handlers={RecoveryError: recovery_error, HTTPException: http_error},
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
