from contextlib import contextmanager
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.base import Base
from libs.db.session import get_async_db
from services.scheduling_service import models as _scheduling_models  # noqa: F401
from services.scheduling_service.app.main import app
from services.scheduling_service.dependencies import get_cal_clients
from services.scheduling_service.services.token_service import CalClientFactory


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh in-memory SQLite database per test.

    pysqlite's own transaction handling swallows SAVEPOINTs, so BEGIN is
    emitted explicitly and the driver is left in autocommit mode.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Cal.com stubbing
# ---------------------------------------------------------------------------


class CalStub:
    """
    Records outgoing Cal.com requests and answers them from a route table.

    Routes map ``(METHOD, path)`` to either a response or a list of responses
    consumed in order (the last one repeats).
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses: httpx.Response) -> None:
        self.routes[(method.upper(), path)] = list(responses)

    def json(self, method: str, path: str, data, status_code: int = 200) -> None:
        self.add(method, path, httpx.Response(status_code, json={"status": "success", "data": data}))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method.upper() and _path(r) == path
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, _path(request)))
        if not queue:
            return httpx.Response(
                404, json={"status": "error", "error": {"message": "Not stubbed"}}
            )
        stubbed = queue.pop(0) if len(queue) > 1 else queue[0]
        # Fresh response per call; the same stub may be served repeatedly
        return httpx.Response(
            stubbed.status_code, headers=stubbed.headers, content=stubbed.content
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def factory(self) -> CalClientFactory:
        return CalClientFactory(transport=self.transport)


def _path(request: httpx.Request) -> str:
    # Strip the configured /v2 prefix so routes read like Cal.com docs
    path = request.url.path
    return path[3:] if path.startswith("/v2/") else path


@pytest.fixture
def cal() -> CalStub:
    return CalStub()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def make_auth_user(user_id: str = "user-sub", email: str = "user@example.com") -> AuthUser:
    return AuthUser(user_id=user_id, email=email, role="authenticated")


@contextmanager
def override_auth(user: AuthUser):
    """Temporarily authenticate requests as ``user``."""
    previous = app.dependency_overrides.get(get_current_user)
    app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield
    finally:
        if previous is None:
            app.dependency_overrides.pop(get_current_user, None)
        else:
            app.dependency_overrides[get_current_user] = previous


@pytest_asyncio.fixture
async def client(db_session, cal) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient bound to the scheduling app with the test database and the
    Cal.com stub wired in. Requests are unauthenticated unless a test uses
    ``override_auth``.
    """

    async def _db():
        yield db_session

    app.dependency_overrides[get_async_db] = _db
    app.dependency_overrides[get_cal_clients] = lambda: cal.factory

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()

