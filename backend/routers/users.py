import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.context import AppContext, get_context
from backend.errors import NotFoundError, ValidationError
from backend.payloads import text_field
from backend.security import SessionClaims, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users")


class PasswordResetRequest(BaseModel):
    newPassword: Any = None


@router.get("")
def list_users(
    _session: SessionClaims = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    return [account.to_dict() for account in ctx.store.list_users()]


@router.delete("/{username}")
def delete_user(
    username: str,
    session: SessionClaims = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    if not ctx.store.delete_user(username):
        raise NotFoundError("User not found.", code="user_not_found")
    logger.info("Admin %r deleted user %r", session.username, username)
    return {"success": True}


@router.post("/{username}/password")
def reset_password(
    username: str,
    payload: PasswordResetRequest | None = None,
    session: SessionClaims = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    payload = payload or PasswordResetRequest()
    new_password = text_field(payload.newPassword) or ""
    if not new_password:
        raise ValidationError("Missing new password.", code="missing_fields")

    if not ctx.store.update_password_hash(username, ctx.hash_password(new_password)):
        raise NotFoundError("User not found.", code="user_not_found")
    logger.info("Admin %r reset the password of %r", session.username, username)
    return {"success": True}
