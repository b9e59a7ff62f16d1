import logging
from dataclasses import dataclass

from fastapi import Request

from backend import config
from backend.realtime import LiveHub
from backend.security import TokenSigner, hash_password
from database.db import AttendanceStore
from database.models import Role

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide services, built once at startup and shared by handlers."""

    store: AttendanceStore
    signer: TokenSigner
    hub: LiveHub
    device_secret: str
    password_iterations: int = config.PASSWORD_HASH_ITERATIONS
    admin_username: str = ""
    admin_password: str = ""

    @classmethod
    def from_config(cls) -> "AppContext":
        return cls(
            store=AttendanceStore(config.DB_PATH),
            signer=TokenSigner(config.SIGNING_KEY, config.AUTH_TOKEN_TTL_SECONDS),
            hub=LiveHub(config.LIVE_QUEUE_SIZE),
            device_secret=config.DEVICE_SECRET,
            password_iterations=config.PASSWORD_HASH_ITERATIONS,
            admin_username=config.ADMIN_USERNAME,
            admin_password=config.ADMIN_PASSWORD,
        )

    def hash_password(self, password: str) -> str:
        return hash_password(password, iterations=self.password_iterations)

    def startup(self) -> None:
        self.store.create_tables()
        self._ensure_default_admin()
        if not self.device_secret:
            logger.warning("No device secret configured; all scan submissions will be rejected.")

    def _ensure_default_admin(self) -> None:
        username = self.admin_username.strip()
        password = self.admin_password
        if not username or not password:
            return
        if self.store.get_user(username):
            return
        if self.store.ensure_user(username, self.hash_password(password), Role.ADMIN):
            logger.info("Seeded bootstrap admin account %r", username)


def get_context(request: Request) -> AppContext:
    return request.app.state.context
