import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Header, Request

from backend.errors import AuthError, AuthzError
from database.models import Role

logger = logging.getLogger(__name__)

PASSWORD_HASH_ALGO = "pbkdf2_sha256"
DEFAULT_PASSWORD_HASH_ITERATIONS = 120_000


# -----------------------------
# Passwords
# -----------------------------
def hash_password(
    password: str,
    *,
    iterations: int = DEFAULT_PASSWORD_HASH_ITERATIONS,
    salt: str | None = None,
) -> str:
    salt_value = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        iterations,
    ).hex()
    return f"{PASSWORD_HASH_ALGO}${iterations}${salt_value}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, rounds_text, salt_value, expected_digest = password_hash.split("$", 3)
        rounds = int(rounds_text)
    except (ValueError, TypeError, AttributeError):
        return False

    if algo != PASSWORD_HASH_ALGO or rounds <= 0:
        return False

    candidate_digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        rounds,
    ).hex()
    return hmac.compare_digest(candidate_digest, expected_digest)


def verify_device_secret(candidate: str | None, expected: str) -> bool:
    # An unset server secret rejects every device.
    if not expected or candidate is None:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


# -----------------------------
# Session tokens
# -----------------------------
@dataclass(frozen=True)
class SessionClaims:
    id: int
    username: str
    role: Role
    iat: int
    exp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role.value,
            "iat": self.iat,
            "exp": self.exp,
        }


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


class TokenSigner:
    """Issues and verifies HMAC-SHA256 signed session tokens.

    A token is ``<base64url(json claims)>.<base64url(signature)>``.
    """

    def __init__(self, signing_key: str, ttl_seconds: int):
        if not signing_key:
            raise ValueError("A signing key is required.")
        self._key = signing_key.encode("utf-8")
        self.ttl_seconds = ttl_seconds

    def _sign(self, payload_b64: str) -> str:
        digest = hmac.new(self._key, payload_b64.encode("ascii"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def issue(self, *, user_id: int, username: str, role: Role, now: int | None = None) -> tuple[str, SessionClaims]:
        issued_at = int(time.time()) if now is None else now
        claims = SessionClaims(
            id=user_id,
            username=username,
            role=role,
            iat=issued_at,
            exp=issued_at + self.ttl_seconds,
        )
        payload_json = json.dumps(claims.to_dict(), separators=(",", ":"), sort_keys=True)
        payload_b64 = _b64url_encode(payload_json.encode("utf-8"))
        return f"{payload_b64}.{self._sign(payload_b64)}", claims

    def verify(self, token: str | None, *, now: int | None = None) -> SessionClaims:
        if not token:
            raise AuthError("missing")
        if "." not in token:
            raise AuthError("invalid")

        payload_b64, signature = token.split(".", 1)
        # Both halves are base64url, so anything non-ASCII is forged or corrupted.
        if not payload_b64.isascii() or not signature.isascii():
            raise AuthError("invalid")
        if not hmac.compare_digest(signature.encode("ascii"), self._sign(payload_b64).encode("ascii")):
            raise AuthError("invalid")

        try:
            payload = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
        except (ValueError, UnicodeDecodeError):
            raise AuthError("invalid") from None

        if not isinstance(payload, dict):
            raise AuthError("invalid")

        user_id = payload.get("id")
        username = payload.get("username")
        role = Role.parse(payload.get("role")) if isinstance(payload.get("role"), str) else None
        iat = payload.get("iat")
        exp = payload.get("exp")
        if not isinstance(user_id, int) or not isinstance(username, str) or not username:
            raise AuthError("invalid")
        if role is None or not isinstance(iat, int) or not isinstance(exp, int):
            raise AuthError("invalid")

        current = int(time.time()) if now is None else now
        if exp < current:
            raise AuthError("expired")

        return SessionClaims(id=user_id, username=username, role=role, iat=iat, exp=exp)


def require_role(claims: SessionClaims, role: Role) -> SessionClaims:
    if claims.role != role:
        raise AuthzError("Admins only." if role is Role.ADMIN else "Insufficient role.")
    return claims


# -----------------------------
# FastAPI dependencies
# -----------------------------
def require_session(
    request: Request,
    authorization: str | None = Header(default=None),
) -> SessionClaims:
    signer: TokenSigner = request.app.state.context.signer

    if not authorization:
        logger.info("Rejected request to %s: missing bearer token", request.url.path)
        raise AuthError("missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        logger.info("Rejected request to %s: invalid authorization scheme", request.url.path)
        raise AuthError("invalid", "Invalid authorization scheme.")

    try:
        return signer.verify(token.strip())
    except AuthError as exc:
        logger.info("Rejected request to %s: %s token", request.url.path, exc.kind)
        raise


def require_admin(session: SessionClaims = Depends(require_session)) -> SessionClaims:
    return require_role(session, Role.ADMIN)
