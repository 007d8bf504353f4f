"""
Authentication routes.
POST /auth/register, POST /auth/login, GET/PUT/DELETE /auth/me

No postponed annotations here: slowapi's wrapper would make FastAPI resolve
them against slowapi's module globals.
"""
from fastapi import APIRouter, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from tasktracker.core.config import settings
from tasktracker.core.dependencies import CurrentUser, DBSession
from tasktracker.schemas.task import MessageResponse
from tasktracker.schemas.user import (
    AccessToken,
    LoginRequest,
    ProfileUpdate,
    UserCreate,
    UserRead,
)
from tasktracker.services.auth_service import auth_service

router = APIRouter(prefix="/auth", tags=["Authentication"])

limiter = Limiter(key_func=get_remote_address)


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user account",
)
async def register(
    user_in: UserCreate,
    db: DBSession,
) -> UserRead:
    user = await auth_service.register_user(db, user_in=user_in)
    return UserRead.model_validate(user)


@router.post(
    "/login",
    response_model=AccessToken,
    summary="Authenticate and receive a bearer token",
)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
async def login(
    request: Request,
    credentials: LoginRequest,
    db: DBSession,
) -> AccessToken:
    return await auth_service.authenticate_user(
        db, email=credentials.email, password=credentials.password
    )


@router.get("/me", response_model=UserRead, summary="Get current user profile")
async def get_me(current_user: CurrentUser) -> UserRead:
    return UserRead.model_validate(current_user)


@router.put("/me", response_model=UserRead, summary="Update current user profile")
async def update_me(
    profile_in: ProfileUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> UserRead:
    user = await auth_service.update_profile(db, user=current_user, profile_in=profile_in)
    return UserRead.model_validate(user)


@router.delete(
    "/me",
    response_model=MessageResponse,
    summary="Deactivate the current user's account",
)
async def delete_me(current_user: CurrentUser, db: DBSession) -> MessageResponse:
    await auth_service.deactivate_self(db, user=current_user)
    return MessageResponse(message="Account deactivated")
