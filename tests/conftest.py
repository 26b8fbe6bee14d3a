"""
Test configuration and shared fixtures.
The local backend uses a JSON storage file under tmp_path; the remote backend
uses a file-backed SQLite database through aiosqlite.
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from todoboard.core.config import Settings
from todoboard.core.rate_limit import limiter
from todoboard.crud.local import LocalTaskStore, LocalUserDirectory
from todoboard.crud.remote import RemoteTaskStore, RemoteUserDirectory
from todoboard.db.local_storage import LocalStorage
from todoboard.db.session import create_engine_from_settings, create_session_factory, create_tables
from todoboard.main import create_application
from todoboard.models.user import User
from todoboard.services.board_service import BoardService
from todoboard.services.change_feed import ChangeFeed


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1) -> None:
        self.now += ms


async def _eventually(
    predicate: Callable[[], bool | Awaitable[bool]],
    timeout: float = 2.0,
) -> None:
    """Poll until predicate holds; fails the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = predicate()
        if not isinstance(result, bool):
            result = await result
        if result:
            return
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    return _eventually


# ── Local backend ─────────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(tmp_path / "local_storage.json")


@pytest.fixture
def local_store(storage: LocalStorage, clock: FakeClock) -> LocalTaskStore:
    return LocalTaskStore(storage, clock=clock)


@pytest.fixture
def local_users(storage: LocalStorage, clock: FakeClock) -> LocalUserDirectory:
    return LocalUserDirectory(storage, clock=clock)


# ── Remote backend ────────────────────────────────────────────────────────────

@pytest.fixture
def remote_settings(tmp_path: Path) -> Settings:
    return Settings(
        STORAGE_BACKEND="remote",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'todoboard.db'}",
        LOCAL_STORAGE_PATH=str(tmp_path / "local_storage.json"),
        DB_CREATE_TABLES=True,
    )


@pytest_asyncio.fixture
async def engine(remote_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine_from_settings(remote_settings)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def remote_store(
    session_factory: async_sessionmaker[AsyncSession], feed: ChangeFeed
) -> RemoteTaskStore:
    return RemoteTaskStore(session_factory, feed)


@pytest.fixture
def remote_users(session_factory: async_sessionmaker[AsyncSession]) -> RemoteUserDirectory:
    return RemoteUserDirectory(session_factory)


@pytest_asyncio.fixture
async def db_users(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, User]:
    """Two users with fixed ids, inserted directly."""
    users = {
        "1": User(id="1", name="Taro", email="taro@example.com"),
        "2": User(id="2", name="Hanako", email="hanako@example.com"),
    }
    async with session_factory() as session:
        session.add_all(users.values())
        await session.commit()
    return users


# ── Board services ────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def local_service(
    storage: LocalStorage,
    local_store: LocalTaskStore,
    local_users: LocalUserDirectory,
) -> AsyncGenerator[BoardService, None]:
    service = BoardService(
        store=local_store,
        directory=local_users,
        storage=storage,
        backend="local",
        reload_timeout=2.0,
    )
    await service.start()
    yield service
    await service.close()


@pytest_asyncio.fixture
async def remote_service(
    tmp_path: Path,
    remote_store: RemoteTaskStore,
    remote_users: RemoteUserDirectory,
    db_users: dict[str, User],
) -> AsyncGenerator[BoardService, None]:
    service = BoardService(
        store=remote_store,
        directory=remote_users,
        storage=LocalStorage(tmp_path / "remote_client_storage.json"),
        backend="remote",
        reload_timeout=2.0,
    )
    await service.start()
    yield service
    await service.close()


@pytest_asyncio.fixture
async def client(local_service: BoardService) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against an app wired to the local board service."""
    app = create_application(local_service)
    limiter.enabled = False
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    limiter.enabled = True
