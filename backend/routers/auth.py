import logging
import time
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.context import AppContext, get_context
from backend.errors import AuthError, NotFoundError, ValidationError
from backend.payloads import text_field
from backend.security import SessionClaims, require_admin, require_session, verify_password
from database.models import Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class LoginRequest(BaseModel):
    username: Any = None
    password: Any = None


class RegisterRequest(BaseModel):
    username: Any = None
    password: Any = None
    role: Any = None


class ChangePasswordRequest(BaseModel):
    oldPassword: Any = None
    newPassword: Any = None


@router.post("/auth/login")
def login(payload: LoginRequest | None = None, ctx: AppContext = Depends(get_context)):
    payload = payload or LoginRequest()
    username = (text_field(payload.username) or "").strip()
    password = text_field(payload.password) or ""

    if not username or not password:
        raise ValidationError("Missing username or password.", code="missing_fields")

    credentials = ctx.store.get_user_credentials(username)
    if not credentials or not verify_password(password, credentials.password_hash):
        logger.info("Failed login for %r", username)
        raise AuthError("invalid", "Invalid credentials.", code="invalid_credentials")

    account = credentials.account
    token, claims = ctx.signer.issue(user_id=account.id, username=account.username, role=account.role)
    now = int(time.time())
    logger.info("User %r logged in", account.username)
    return {
        "success": True,
        "token": token,
        "token_type": "bearer",
        "expires_at": claims.exp,
        "expires_in": max(0, claims.exp - now),
        "user": {"id": account.id, "username": account.username, "role": account.role.value},
    }


@router.post("/auth/register")
def register(
    payload: RegisterRequest | None = None,
    session: SessionClaims = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    payload = payload or RegisterRequest()
    username = (text_field(payload.username) or "").strip()
    password = text_field(payload.password) or ""
    if not username or not password:
        raise ValidationError("Missing username or password.", code="missing_fields")

    role = Role.USER if payload.role in (None, "") else Role.parse(text_field(payload.role))
    if role is None:
        raise ValidationError("Role must be 'user' or 'admin'.", code="invalid_role")

    account = ctx.store.create_user(username, ctx.hash_password(password), role)
    logger.info("Admin %r registered %r as %s", session.username, account.username, account.role.value)
    return {"success": True, "user": account.to_dict()}


@router.post("/auth/change-password")
@router.post("/change-password", include_in_schema=False)
def change_password(
    payload: ChangePasswordRequest | None = None,
    session: SessionClaims = Depends(require_session),
    ctx: AppContext = Depends(get_context),
):
    payload = payload or ChangePasswordRequest()
    old_password = text_field(payload.oldPassword) or ""
    new_password = text_field(payload.newPassword) or ""
    if not old_password or not new_password:
        raise ValidationError("Missing old or new password.", code="missing_fields")

    credentials = ctx.store.get_user_credentials(session.username)
    if not credentials:
        raise NotFoundError("User not found.", code="user_not_found")
    if not verify_password(old_password, credentials.password_hash):
        raise AuthError("invalid", "Old password is incorrect.", code="wrong_password")

    if not ctx.store.update_password_hash(session.username, ctx.hash_password(new_password)):
        raise NotFoundError("User not found.", code="user_not_found")
    logger.info("User %r changed their password", session.username)
    return {"success": True}


@router.get("/auth/me")
def auth_me(session: SessionClaims = Depends(require_session)):
    return {
        "id": session.id,
        "username": session.username,
        "role": session.role.value,
        "issued_at": session.iat,
        "expires_at": session.exp,
    }
