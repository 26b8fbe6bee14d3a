"""
Authentication routes.
User-select login: GET /auth/users, GET /auth/session,
POST /auth/login, /auth/register, /auth/logout
"""
# No postponed annotations here: FastAPI resolves them through slowapi's
# wrapper, whose globals are not this module's.

from fastapi import APIRouter, Request, status

from todoboard.core.config import settings
from todoboard.core.dependencies import Boards
from todoboard.core.rate_limit import limiter
from todoboard.schemas.user import LoginRequest, SessionRead, UserCreate, UserRead

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get(
    "/users",
    response_model=list[UserRead],
    summary="List users available for login",
)
async def list_users(service: Boards) -> list[UserRead]:
    return await service.sessions.list_users()


@router.get(
    "/session",
    response_model=SessionRead,
    summary="Return the signed-in user, if any",
)
async def get_session(service: Boards) -> SessionRead:
    return SessionRead(user=service.sessions.user)


@router.post(
    "/login",
    response_model=UserRead,
    summary="Log in as an existing user",
)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
async def login(
    request: Request,
    credentials: LoginRequest,
    service: Boards,
) -> UserRead:
    return await service.login(credentials.user_id)


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user and log in",
)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
async def register(
    request: Request,
    user_in: UserCreate,
    service: Boards,
) -> UserRead:
    return await service.register(user_in.name, str(user_in.email))


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="End the current session",
)
async def logout(service: Boards) -> None:
    await service.logout()
