"""
Board runtime.
Chooses the storage backend once at startup and owns the single active
board, switching it whenever the signed-in user changes.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from todoboard.core.config import Settings, StorageBackend
from todoboard.core.exceptions import UnauthorizedException
from todoboard.crud.base import TaskStore, UserDirectory
from todoboard.db.local_storage import LocalStorage
from todoboard.db.session import create_tables
from todoboard.schemas.user import UserRead
from todoboard.services.session_service import SessionService
from todoboard.services.sync_service import BoardSync, SessionContext

logger = logging.getLogger(__name__)


class BoardService:

    def __init__(
        self,
        *,
        store: TaskStore,
        directory: UserDirectory,
        storage: LocalStorage,
        backend: StorageBackend = "local",
        reload_timeout: float = 10.0,
        engine: AsyncEngine | None = None,
        create_schema: bool = False,
    ) -> None:
        self.store = store
        self.backend = backend
        self.sessions = SessionService(directory, storage, backend=backend)
        self._reload_timeout = reload_timeout
        self._engine = engine
        self._create_schema = create_schema
        self._board: BoardSync | None = None

    @property
    def active_board(self) -> BoardSync | None:
        return self._board

    @property
    def board(self) -> BoardSync:
        if self._board is None:
            raise UnauthorizedException("Log in to view the board")
        return self._board

    @property
    def user(self) -> UserRead:
        user = self.sessions.user
        if user is None:
            raise UnauthorizedException("Log in to view the board")
        return user

    async def start(self) -> None:
        if self._create_schema and self._engine is not None:
            await create_tables(self._engine)
        user = await self.sessions.restore()
        if user is not None:
            logger.info("Restored session for user_id=%s", user.id)
            await self._activate(user)

    async def login(self, user_id: str) -> UserRead:
        user = await self.sessions.login(user_id)
        await self._activate(user)
        return user

    async def register(self, name: str, email: str) -> UserRead:
        user = await self.sessions.register(name, email)
        await self._activate(user)
        return user

    async def logout(self) -> None:
        await self._deactivate()
        self.sessions.logout()

    async def close(self) -> None:
        await self._deactivate()
        await self.store.close()
        if self._engine is not None:
            await self._engine.dispose()

    async def _activate(self, user: UserRead) -> None:
        await self._deactivate()
        board = BoardSync(
            self.store,
            SessionContext.from_user(user),
            reload_timeout=self._reload_timeout,
        )
        self._board = board
        await board.start()

    async def _deactivate(self) -> None:
        if self._board is not None:
            board, self._board = self._board, None
            await board.stop()


def build_board_service(settings: Settings) -> BoardService:
    """Wire storage, directory and store for the configured backend."""
    storage = LocalStorage(settings.LOCAL_STORAGE_PATH)

    if settings.STORAGE_BACKEND == "remote":
        from todoboard.crud.remote import RemoteTaskStore, RemoteUserDirectory
        from todoboard.db.session import create_engine_from_settings, create_session_factory
        from todoboard.services.change_feed import ChangeFeed

        engine = create_engine_from_settings(settings)
        session_factory = create_session_factory(engine)
        logger.info("Using remote storage backend")
        return BoardService(
            store=RemoteTaskStore(session_factory, ChangeFeed()),
            directory=RemoteUserDirectory(session_factory),
            storage=storage,
            backend="remote",
            reload_timeout=settings.RELOAD_TIMEOUT_SECONDS,
            engine=engine,
            create_schema=settings.DB_CREATE_TABLES,
        )

    from todoboard.crud.local import LocalTaskStore, LocalUserDirectory

    logger.info("Using local storage backend at %s", settings.LOCAL_STORAGE_PATH or "<memory>")
    return BoardService(
        store=LocalTaskStore(storage),
        directory=LocalUserDirectory(storage),
        storage=storage,
        backend="local",
        reload_timeout=settings.RELOAD_TIMEOUT_SECONDS,
    )
