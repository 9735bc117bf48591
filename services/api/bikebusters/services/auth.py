from __future__ import annotations

import uuid

import jwt
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN
from sqlalchemy import select
from sqlalchemy.orm import Session

from bikebusters.core.config import settings
from bikebusters.core.security import decode_token
from bikebusters.models.user import User


def get_current_user(request: Request, db: Session) -> User:
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    token = auth.split(" ", 1)[1].strip()
    try:
        payload = decode_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    user_id = payload.get("sub")
    try:
        user_uuid = uuid.UUID(str(user_id))
    except ValueError as exc:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    user = db.scalar(select(User).where(User.id == user_uuid))
    if not user or not user.is_active:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


def require_roles(request: Request, db: Session, *roles: str) -> User:
    user = get_current_user(request, db)
    if roles and user.role not in roles:
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Forbidden")
    return user


def require_tracker_key(request: Request) -> None:
    # Only enforced when TRACKER_API_KEY is configured.
    expected = settings.tracker_api_key
    if not expected:
        return
    if request.headers.get("x-tracker-api-key") != expected:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid tracker key")
