"""Shared fixtures: fake upstreams, in-memory SQLite, injectable cache clock."""

from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from plasma_yields.api.deps import get_cache, get_db, get_settings, get_transport
from plasma_yields.core.cache import KeyValueCache
from plasma_yields.core.config import Settings
from plasma_yields.main import app
from plasma_yields.models import Base

CRON_SECRET = "s3cret"

Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """URL (scheme://host/path, no query) -> canned reply. Unknown URLs get 404."""

    def __init__(self):
        self.routes: Dict[str, Reply] = {}
        self.requests: List[httpx.Request] = []

    def json(self, url: str, payload: Any, status: int = 200) -> None:
        self.routes[url] = httpx.Response(status, json=payload)

    def text(self, url: str, body: str, status: int = 200) -> None:
        self.routes[url] = httpx.Response(status, text=body)

    def fail(self, url: str, status: int = 500) -> None:
        self.routes[url] = httpx.Response(status, text="upstream error")

    def error(self, url: str, exc: Optional[Exception] = None) -> None:
        self.routes[url] = exc or httpx.ConnectError("connection refused")

    def calls(self, url: str) -> int:
        return sum(1 for r in self.requests if self._key(r) == url)

    @staticmethod
    def _key(request: httpx.Request) -> str:
        return f"{request.url.scheme}://{request.url.host}{request.url.path}"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.routes.get(self._key(request))
        if reply is None:
            return httpx.Response(404, text="not found")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply) and not isinstance(reply, httpx.Response):
            return reply(request)
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def local_settings(**overrides) -> Settings:
    values = {"DISABLE_KV": True, "AGGREGATOR_SECRET": CRON_SECRET}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return KeyValueCache(settings_factory=local_settings, clock=clock)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(cache, upstream, db_session):
    """TestClient wired to fake upstreams and SQLite; lifespan is not run."""
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_transport] = lambda: upstream.transport
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_settings] = lambda: local_settings()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
