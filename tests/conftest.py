"""Shared pytest fixtures for the session API tests."""
import os
from datetime import datetime, timedelta, timezone

import pytest

from models.db_storage import DBStorage
from models.session_store import SessionStore
from models.user_store import UserStore
from services.session_manager import SessionManager
from utils.media import MediaUploadError
from utils.tokens import TokenCodec, TokenSettings

ACCESS_SECRET = "test-access-secret-for-pytest-0123456789"
REFRESH_SECRET = "test-refresh-secret-for-pytest-0123456789"


class FakeMediaStore:
    """Records uploads; paths whose basename is in ``failing`` are rejected."""

    def __init__(self):
        self.uploaded = []
        self.failing = set()

    def upload(self, path):
        name = os.path.basename(path)
        if name in self.failing:
            raise MediaUploadError(f"rejected {name}")
        self.uploaded.append(name)
        return f"https://media.test/{name}"


class Clock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


# =============================================================================
# Core fixtures
# =============================================================================

@pytest.fixture
def storage(tmp_path):
    db = DBStorage(f"sqlite:///{tmp_path / 'sessions-test.db'}")
    db.reload()
    yield db
    db.close()


@pytest.fixture
def settings():
    return TokenSettings(
        access_secret=ACCESS_SECRET,
        access_ttl=timedelta(minutes=15),
        refresh_secret=REFRESH_SECRET,
        refresh_ttl=timedelta(days=10),
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def codec(settings, clock):
    return TokenCodec(settings, clock=clock)


@pytest.fixture
def media():
    return FakeMediaStore()


@pytest.fixture
def users(storage):
    return UserStore(storage)


@pytest.fixture
def sessions(storage):
    return SessionStore(storage)


@pytest.fixture
def manager(users, sessions, codec, media):
    return SessionManager(users=users, sessions=sessions, codec=codec, media=media)


@pytest.fixture
def make_asset(tmp_path):
    def _make(name="avatar.png", content=b"\x89PNG fake"):
        path = tmp_path / name
        path.write_bytes(content)
        return str(path)

    return _make


@pytest.fixture
def alice(manager, make_asset):
    """A registered user: alice / correct-pw."""
    result = manager.register(
        "alice", "a@x.com", "Alice", "correct-pw", avatar_path=make_asset()
    )
    assert result.ok, result
    return result.value


# =============================================================================
# Flask fixtures
# =============================================================================

@pytest.fixture
def app(tmp_path, media):
    from api import create_app

    app = create_app(
        "testing",
        media_store=media,
        DATABASE_URL=f"sqlite:///{tmp_path / 'api-test.db'}",
        ACCESS_TOKEN_SECRET=ACCESS_SECRET,
        ACCESS_TOKEN_EXPIRES=timedelta(minutes=15),
        REFRESH_TOKEN_SECRET=REFRESH_SECRET,
        REFRESH_TOKEN_EXPIRES=timedelta(days=10),
        UPLOAD_TMP_DIR=str(tmp_path / "uploads"),
    )
    yield app
    from models import storage as app_storage
    app_storage.close()


@pytest.fixture
def client(app):
    return app.test_client()
