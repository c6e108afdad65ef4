"""HTTP route definitions for the account lifecycle service."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..domain.responses import Reply
from ..domain.service import LifecycleEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

_STATUS_BY_KIND = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "invalid_credentials": status.HTTP_401_UNAUTHORIZED,
    "not_found": status.HTTP_404_NOT_FOUND,
    "token_not_found": status.HTTP_404_NOT_FOUND,
    "already_confirmed": status.HTTP_409_CONFLICT,
    "not_locked": status.HTTP_409_CONFLICT,
    "duplicate_conflict": status.HTTP_409_CONFLICT,
    "token_expired": status.HTTP_410_GONE,
    "messaging_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "persistence_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class RegistrationRequest(BaseModel):
    """Payload accepted when registering an account."""

    email: Any = None
    name: str | None = None
    password: Any = None
    password_confirmation: Any = None


class EmailRequest(BaseModel):
    email: Any = None


class PasswordResetRequest(BaseModel):
    """New password submitted together with a reset token."""

    password: Any = None
    password_confirmation: Any = None


class UnlockRequest(BaseModel):
    email: Any = None
    password: Any = None


class InvitationsRequest(BaseModel):
    """Batch of ``[name, email]`` pairs."""

    invitations: list[Any] = Field(default_factory=list)


class ProfileRequest(BaseModel):
    email: Any = None
    name: str | None = None
    password: Any = None
    password_confirmation: Any = None
    current_password: Any = None


class BlockUsersRequest(BaseModel):
    users: list[str] = Field(default_factory=list)
    reason: str | None = None


def get_engine(request: Request) -> LifecycleEngine:
    """Resolve the `LifecycleEngine` stored on the FastAPI application state."""
    engine: LifecycleEngine = request.app.state.lifecycle_engine
    return engine


def _respond(reply: Reply) -> JSONResponse:
    status_code = status.HTTP_200_OK
    if not reply.ok:
        status_code = _STATUS_BY_KIND.get(reply.kind or "", status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content=reply.as_dict())


@router.post("/users")
def create_user(
    payload: RegistrationRequest, engine: LifecycleEngine = Depends(get_engine)
) -> JSONResponse:
    """Register an account and send its confirmation email."""
    return _respond(engine.create_user(payload.model_dump(exclude_none=True)))


@router.post("/confirmations")
def request_confirmation(
    payload: EmailRequest, engine: LifecycleEngine = Depends(get_engine)
) -> JSONResponse:
    return _respond(engine.request_confirmation(payload.email))


@router.post("/confirmations/{token}")
def confirm(token: str, engine: LifecycleEngine = Depends(get_engine)) -> JSONResponse:
    return _respond(engine.confirm(token))


@router.post("/passwords")
def request_recovery(
    payload: EmailRequest, engine: LifecycleEngine = Depends(get_engine)
) -> JSONResponse:
    return _respond(engine.request_recovery(payload.email))


@router.put("/passwords/{token}")
def redeem_recovery(
    token: str,
    payload: PasswordResetRequest,
    engine: LifecycleEngine = Depends(get_engine),
) -> JSONResponse:
    return _respond(
        engine.redeem_recovery(token, payload.password, payload.password_confirmation)
    )


@router.post("/unlocks")
def request_unlock(
    payload: UnlockRequest, engine: LifecycleEngine = Depends(get_engine)
) -> JSONResponse:
    return _respond(engine.request_unlock(payload.email, payload.password))


@router.post("/unlocks/{token}")
def redeem_unlock(token: str, engine: LifecycleEngine = Depends(get_engine)) -> JSONResponse:
    return _respond(engine.redeem_unlock(token))


@router.post("/invitations")
def create_invitations(
    payload: InvitationsRequest, engine: LifecycleEngine = Depends(get_engine)
) -> JSONResponse:
    return _respond(engine.create_invitations(payload.invitations))


@router.patch("/profile")
def update_profile(
    payload: ProfileRequest,
    user_id: str | None = Header(default=None, alias="X-User-ID"),
    engine: LifecycleEngine = Depends(get_engine),
) -> JSONResponse:
    """Update the caller's own settings; the session layer supplies ``X-User-ID``."""
    return _respond(engine.update_profile(user_id, payload.model_dump(exclude_none=True)))


@router.post("/users/block")
def block_users(
    payload: BlockUsersRequest,
    user_id: str | None = Header(default=None, alias="X-User-ID"),
    engine: LifecycleEngine = Depends(get_engine),
) -> JSONResponse:
    return _respond(engine.block_users(user_id, payload.users, payload.reason))
