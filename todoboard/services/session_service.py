"""
Session/identity service.
Resolves the signed-in user from the persisted session marker and handles
user-select login, registration and logout. Login and registration failures
are raised as user-facing exceptions; nothing else here raises.
"""
from __future__ import annotations

import json
import logging

from todoboard.core.config import StorageBackend
from todoboard.core.exceptions import (
    BadRequestException,
    ConflictException,
    DuplicateEmailError,
    NotFoundException,
    StoreError,
    StoreUnavailableException,
)
from todoboard.crud.base import UserDirectory
from todoboard.db.local_storage import LocalStorage
from todoboard.schemas.user import UserRead
from todoboard.services.sync_service import SessionContext

logger = logging.getLogger(__name__)

# Local backend keeps the whole user record, remote keeps only the id.
CURRENT_USER_KEY = "currentUser"
CURRENT_USER_ID_KEY = "currentUserId"


class SessionService:

    def __init__(
        self,
        directory: UserDirectory,
        storage: LocalStorage,
        *,
        backend: StorageBackend = "local",
    ) -> None:
        self.directory = directory
        self._storage = storage
        self._backend = backend
        self._user: UserRead | None = None

    @property
    def user(self) -> UserRead | None:
        return self._user

    @property
    def context(self) -> SessionContext | None:
        if self._user is None:
            return None
        return SessionContext.from_user(self._user)

    # ── Session marker ────────────────────────────────────────────────────────

    def _save_marker(self, user: UserRead) -> None:
        if self._backend == "local":
            self._storage.set_item(
                CURRENT_USER_KEY, user.model_dump_json(exclude_none=True)
            )
        else:
            self._storage.set_item(CURRENT_USER_ID_KEY, user.id)

    def _clear_marker(self) -> None:
        self._storage.remove_item(CURRENT_USER_KEY)
        self._storage.remove_item(CURRENT_USER_ID_KEY)

    async def restore(self) -> UserRead | None:
        """Read the session marker once at startup."""
        if self._backend == "local":
            raw = self._storage.get_item(CURRENT_USER_KEY)
            if raw is None:
                return None
            try:
                self._user = UserRead.model_validate(json.loads(raw))
            except ValueError:
                logger.warning("Clearing unreadable session marker")
                self._clear_marker()
                return None
            return self._user

        user_id = self._storage.get_item(CURRENT_USER_ID_KEY)
        if user_id is None:
            return None
        try:
            user = await self.directory.get(user_id)
        except StoreError as exc:
            logger.error("Error loading user: %s", exc)
            user = None
        if user is None:
            self._clear_marker()
            return None
        self._user = user
        return user

    # ── Operations ────────────────────────────────────────────────────────────

    async def list_users(self) -> list[UserRead]:
        try:
            return await self.directory.list_users()
        except StoreError as exc:
            logger.error("Get users error: %s", exc)
            return []

    async def login(self, user_id: str) -> UserRead:
        try:
            user = await self.directory.get(user_id)
        except StoreError as exc:
            logger.error("Login error: %s", exc)
            raise StoreUnavailableException("Login failed") from exc
        if user is None:
            raise NotFoundException("User", user_id)
        self._user = user
        self._save_marker(user)
        logger.info("User logged in: user_id=%s", user.id)
        return user

    async def register(self, name: str, email: str) -> UserRead:
        name = (name or "").strip()
        email = (email or "").strip()
        if not name or not email:
            raise BadRequestException("Name and email are required")
        try:
            if await self.directory.get_by_email(email) is not None:
                raise ConflictException("A user with this email already exists")
            user = await self.directory.create(name, email)
        except DuplicateEmailError as exc:
            raise ConflictException("A user with this email already exists") from exc
        except StoreError as exc:
            logger.error("Register error: %s", exc)
            raise StoreUnavailableException("Registration failed") from exc
        self._user = user
        self._save_marker(user)
        logger.info("User registered: user_id=%s", user.id)
        return user

    def logout(self) -> None:
        if self._user is not None:
            logger.info("User logged out: user_id=%s", self._user.id)
        self._user = None
        self._clear_marker()
