from datetime import datetime
from typing import Annotated, Optional
import uuid

from fastapi import APIRouter, Query

from casewatch.api.deps import AdminUser, SessionDep
from casewatch.db.query import build_paginated_response
from casewatch.models.user import Tier, User, UserRole
from casewatch.schemas.auth import MessageResponse
from casewatch.schemas.user import UserAdminUpdate, UserListResponse, UserRead, UserRoleUpdate, UserStats
from casewatch.services import users as users_service

router = APIRouter()


@router.get("/", response_model=UserListResponse)
async def list_users(
    session: SessionDep,
    _admin: AdminUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    search: Annotated[Optional[str], Query(max_length=100)] = None,
    role: Optional[UserRole] = None,
    tier: Optional[Tier] = None,
    is_active: Optional[bool] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
) -> dict:
    users, total, page = await users_service.list_users(
        session,
        page=page,
        page_size=limit,
        search=search,
        role=role,
        tier=tier,
        is_active=is_active,
        created_from=created_from,
        created_to=created_to,
    )
    return build_paginated_response(users, total, page, limit)


@router.get("/stats", response_model=UserStats)
async def user_stats(session: SessionDep, _admin: AdminUser) -> dict:
    return await users_service.get_user_stats(session)


@router.get("/{user_id}", response_model=UserRead)
async def read_user(user_id: uuid.UUID, session: SessionDep, _admin: AdminUser) -> User:
    return await users_service.get_user(session, user_id)


@router.put("/{user_id}", response_model=UserRead)
async def update_user(user_id: uuid.UUID, payload: UserAdminUpdate, session: SessionDep, _admin: AdminUser) -> User:
    user = await users_service.get_user(session, user_id)
    return await users_service.admin_update_user(session, user, payload)


@router.delete("/{user_id}", response_model=MessageResponse)
async def deactivate_user(user_id: uuid.UUID, session: SessionDep, admin: AdminUser) -> MessageResponse:
    user = await users_service.get_user(session, user_id)
    await users_service.deactivate_user(session, admin, user)
    return MessageResponse(message="User deactivated successfully")


@router.delete("/{user_id}/permanent", response_model=MessageResponse)
async def delete_user_permanently(user_id: uuid.UUID, session: SessionDep, admin: AdminUser) -> MessageResponse:
    user = await users_service.get_user(session, user_id)
    await users_service.delete_user_permanently(session, admin, user)
    return MessageResponse(message="User permanently deleted")


@router.post("/{user_id}/activate", response_model=UserRead)
async def activate_user(user_id: uuid.UUID, session: SessionDep, _admin: AdminUser) -> User:
    user = await users_service.get_user(session, user_id)
    return await users_service.activate_user(session, user)


@router.put("/{user_id}/role", response_model=UserRead)
async def update_user_role(user_id: uuid.UUID, payload: UserRoleUpdate, session: SessionDep, _admin: AdminUser) -> User:
    user = await users_service.get_user(session, user_id)
    return await users_service.set_role(session, user, payload.role)
