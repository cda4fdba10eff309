from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from casewatch.api.deps import CurrentUser, SessionDep
from casewatch.core.rate_limit import CHANGE_PASSWORD_LIMIT, LOGIN_LIMIT, REGISTER_LIMIT, limiter
from casewatch.models.user import User
from casewatch.schemas.auth import AuthResponse, ChangePasswordRequest, LoginRequest, MessageResponse
from casewatch.schemas.token import Token
from casewatch.schemas.user import UserCreate, UserProfileUpdate, UserRead
from casewatch.services import users as users_service

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_LIMIT)
async def register_user(request: Request, user_in: UserCreate, session: SessionDep) -> AuthResponse:
    user = await users_service.register_user(session, user_in)
    return AuthResponse(user=UserRead.model_validate(user), access_token=users_service.issue_token(user))


@router.post("/login", response_model=AuthResponse)
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, credentials: LoginRequest, session: SessionDep) -> AuthResponse:
    user = await users_service.authenticate(session, credentials.email, credentials.password)
    return AuthResponse(user=UserRead.model_validate(user), access_token=users_service.issue_token(user))


@router.post("/token", response_model=Token)
@limiter.limit(LOGIN_LIMIT)
async def login_access_token(
    request: Request,
    session: SessionDep,
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
) -> Token:
    user = await users_service.authenticate(session, form_data.username.lower(), form_data.password)
    return Token(access_token=users_service.issue_token(user))


@router.get("/profile", response_model=UserRead)
async def read_profile(current_user: CurrentUser) -> User:
    return current_user


@router.put("/profile", response_model=UserRead)
async def update_profile(payload: UserProfileUpdate, current_user: CurrentUser, session: SessionDep) -> User:
    return await users_service.update_profile(session, current_user, payload)


@router.put("/change-password", response_model=MessageResponse)
@limiter.limit(CHANGE_PASSWORD_LIMIT)
async def change_password(
    request: Request,
    payload: ChangePasswordRequest,
    current_user: CurrentUser,
    session: SessionDep,
) -> MessageResponse:
    await users_service.change_password(session, current_user, payload.current_password, payload.new_password)
    return MessageResponse(message="Password changed successfully")
