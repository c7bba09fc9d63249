import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import CredentialStore, RoomRegistry
from sessions import SessionAuthority

TEST_SECRET = "test-secret-not-for-production-use-0123456789"  # noqa: S105


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials():
    # Minimum bcrypt cost keeps the suite fast
    return CredentialStore(rounds=4)


@pytest.fixture
def sessions(clock):
    return SessionAuthority(secret=TEST_SECRET, clock=clock)


@pytest.fixture
def registry(clock):
    return RoomRegistry(clock=clock)


@pytest.fixture
def app(credentials, sessions, registry):
    return create_app(credential_store=credentials, session_authority=sessions, room_registry=registry)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def register_and_login(client, username: str, password: str = "password123", remember_me: bool = False) -> str:
    r = client.post("/api/register", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    r = client.post("/api/login", json={"username": username, "password": password, "rememberMe": remember_me})
    assert r.status_code == 200, r.text
    return r.json()["token"]


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
