import random

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.crud import create_set
from backend.database import get_db, init_db
from backend.schemas import CardCreate, SetCreate
from backend.server import app
from client.api import FlashcardsApi
from client.offline_queue import OfflineQueue
from client.session import ReviewSession
from client.storage import LocalStorage


class FlakyTransport(httpx.AsyncBaseTransport):
    """Routes requests into the ASGI app, or fails them like a dropped network when `down` is set."""

    def __init__(self, app):
        self.inner = httpx.ASGITransport(app=app)
        self.down = False
        self.requests = []

    async def handle_async_request(self, request):
        self.requests.append((request.method, request.url.path))
        if self.down:
            raise httpx.ConnectError("server unreachable", request=request)
        return await self.inner.handle_async_request(request)


@pytest.fixture
def engine():
    """In-memory database shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sample_set(db):
    return create_set(db, SetCreate(
        name="Capitals",
        description="European capitals",
        cards=[
            CardCreate(term="France", definition="Paris"),
            CardCreate(term="Italy", definition="Rome", hint="Colosseum"),
            CardCreate(term="Spain", definition="Madrid"),
        ],
    ))


@pytest.fixture
def empty_set(db):
    return create_set(db, SetCreate(name="Nothing yet"))


@pytest.fixture
def override_db(session_factory):
    """Point the app's get_db dependency at the test database."""
    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def server(override_db):
    return TestClient(app)


@pytest.fixture
def transport(override_db):
    return FlakyTransport(app)


@pytest.fixture
def storage():
    return LocalStorage()


@pytest.fixture
def queue(storage):
    return OfflineQueue(storage)


@pytest.fixture
def make_session(transport, queue):
    """Factory for review sessions talking to the in-process server."""
    def _make(user_id="alice", **kwargs):
        api = FlashcardsApi(base_url="http://testserver", transport=transport)
        kwargs.setdefault("rng", random.Random(7))
        return ReviewSession(api, queue, user_id, **kwargs)

    return _make
