import os
import secrets
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parents[1]


def _getenv(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return default


def _parse_int(value: str, fallback: int, *, minimum: int = 0) -> int:
    try:
        return max(minimum, int(value))
    except (TypeError, ValueError):
        return fallback


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


DB_PATH = Path(_getenv("SCANTRACK_DB_PATH", default=str(BASE_DIR / "database" / "attendance.db")))

# Empty means every device submission is rejected.
DEVICE_SECRET = _getenv("SCANTRACK_DEVICE_SECRET", "DEVICE_SECRET")

SIGNING_KEY = _getenv("SCANTRACK_SIGNING_KEY", "JWT_SECRET") or secrets.token_urlsafe(32)
AUTH_TOKEN_TTL_SECONDS = _parse_int(
    _getenv("SCANTRACK_TOKEN_TTL_SECONDS", default="28800"),
    28800,
    minimum=1,
)
PASSWORD_HASH_ITERATIONS = _parse_int(
    _getenv("SCANTRACK_PASSWORD_HASH_ITERATIONS", default="120000"),
    120_000,
    minimum=1,
)

ADMIN_USERNAME = _getenv("SCANTRACK_ADMIN_USERNAME", default="admin")
ADMIN_PASSWORD = _getenv("SCANTRACK_ADMIN_PASSWORD")

API_HOST = _getenv("SCANTRACK_HOST", default="0.0.0.0")
API_PORT = _parse_int(_getenv("SCANTRACK_PORT", "PORT", default="3000"), 3000, minimum=1)

CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("SCANTRACK_CORS_ALLOW_ORIGINS"),
    ["http://localhost:5173", "http://127.0.0.1:5173"],
)
# Scanner dashboards are usually opened from the LAN.
CORS_ALLOW_ORIGIN_REGEX = _getenv(
    "SCANTRACK_CORS_ALLOW_ORIGIN_REGEX",
    default=r"http://(localhost|127\.0\.0\.1|10\.\d+\.\d+\.\d+|192\.168\.\d+\.\d+)(:\d+)?",
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("SCANTRACK_CORS_ALLOW_CREDENTIALS"), True)

LIVE_QUEUE_SIZE = _parse_int(_getenv("SCANTRACK_LIVE_QUEUE_SIZE", default="100"), 100, minimum=1)
LOG_LEVEL = _getenv("SCANTRACK_LOG_LEVEL", default="INFO").upper()
