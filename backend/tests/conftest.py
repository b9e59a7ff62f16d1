from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from backend.context import AppContext
from backend.main import create_app
from backend.realtime import LiveHub
from backend.security import TokenSigner
from database.db import AttendanceStore

DEVICE_SECRET = "test-device-secret"
SIGNING_KEY = "test-signing-key"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-pass"
# Keeps PBKDF2 fast in tests.
FAST_ITERATIONS = 1_000


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, *args: int) -> None:
        self.now = datetime(*args)


@pytest.fixture()
def clock():
    return FakeClock(datetime(2024, 1, 1, 9, 0, 0))


@pytest.fixture()
def store(tmp_path, clock):
    s = AttendanceStore(tmp_path / "scantrack_test.db", clock=clock)
    s.create_tables()
    return s


@pytest.fixture()
def context(store):
    return AppContext(
        store=store,
        signer=TokenSigner(SIGNING_KEY, 3600),
        hub=LiveHub(queue_size=10),
        device_secret=DEVICE_SECRET,
        password_iterations=FAST_ITERATIONS,
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture()
def client(context):
    with TestClient(create_app(context)) as c:
        yield c


def _login(client, username: str, password: str) -> dict:
    res = client.post("/api/auth/login", json={"username": username, "password": password})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture()
def admin_headers(client):
    return _login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture()
def user_headers(client, admin_headers):
    res = client.post(
        "/api/auth/register",
        json={"username": "alice", "password": "alice-pass"},
        headers=admin_headers,
    )
    assert res.status_code == 200
    return _login(client, "alice", "alice-pass")


@pytest.fixture()
def login():
    return _login
