from typing import Annotated, Optional
import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.api.deps import CurrentUser, SessionDep, Tier2User, Tier3User, insufficient_tier, require_feature
from casewatch.core import tiers as tier_rules
from casewatch.core.messages import NotificationMessages
from casewatch.core.rate_limit import (
    NOTIFICATION_BULK_LIMIT,
    NOTIFICATION_READ_ALL_LIMIT,
    NOTIFICATION_RETRY_LIMIT,
    NOTIFICATION_SCHEDULE_LIMIT,
    NOTIFICATION_SEND_LIMIT,
    limiter,
)
from casewatch.db.query import build_paginated_response
from casewatch.models.notification import Notification, NotificationChannel, NotificationStatus, ScheduledNotification
from casewatch.models.user import Tier, User
from casewatch.schemas.auth import MessageResponse
from casewatch.schemas.notification import (
    BulkNotificationCreate,
    BulkNotificationResult,
    NotificationCountResponse,
    NotificationCreate,
    NotificationListResponse,
    NotificationPreferencesResponse,
    NotificationPreferencesUpdate,
    NotificationRead,
    NotificationSchedule,
    NotificationStats,
    ScheduledNotificationListResponse,
    ScheduledNotificationRead,
)
from casewatch.services import cases as cases_service
from casewatch.services import notifications as notifications_service

router = APIRouter()

BulkSender = Annotated[User, Depends(require_feature("bulk_operations"))]


async def _check_outgoing(session: AsyncSession, sender: User, payload: NotificationCreate) -> None:
    if payload.type == NotificationChannel.sms:
        sms_tiers = tier_rules.tiers_for_feature("sms_notifications")
        if Tier(sender.tier) not in sms_tiers:
            raise insufficient_tier(sender, sms_tiers)
    if payload.case_id:
        await cases_service.get_case_for_user(session, sender, payload.case_id)


@router.post("/", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(NOTIFICATION_SEND_LIMIT)
async def send_notification(
    request: Request,
    payload: NotificationCreate,
    session: SessionDep,
    current_user: Tier2User,
) -> Notification:
    await _check_outgoing(session, current_user, payload)
    return await notifications_service.send_notification(session, sender=current_user, payload=payload)


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    session: SessionDep,
    current_user: CurrentUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 20,
    status_filter: Annotated[Optional[NotificationStatus], Query(alias="status")] = None,
    channel: Annotated[Optional[NotificationChannel], Query(alias="type")] = None,
) -> dict:
    notifications, total, page = await notifications_service.list_notifications(
        session,
        user_id=current_user.id,
        page=page,
        page_size=limit,
        status=status_filter,
        channel=channel,
    )
    unread = await notifications_service.unread_count(session, user_id=current_user.id)
    return build_paginated_response(notifications, total, page, limit, unread_count=unread)


@router.get("/unread-count", response_model=NotificationCountResponse)
async def unread_notifications_count(session: SessionDep, current_user: CurrentUser) -> NotificationCountResponse:
    count = await notifications_service.unread_count(session, user_id=current_user.id)
    return NotificationCountResponse(unread_count=count)


@router.get("/stats", response_model=NotificationStats)
async def notification_stats(session: SessionDep, current_user: CurrentUser) -> dict:
    return await notifications_service.get_notification_stats(session, user_id=current_user.id)


@router.put("/read-all", response_model=MessageResponse)
@limiter.limit(NOTIFICATION_READ_ALL_LIMIT)
async def mark_all_notifications_read(request: Request, session: SessionDep, current_user: CurrentUser) -> MessageResponse:
    count = await notifications_service.mark_all_notifications_read(session, user_id=current_user.id)
    return MessageResponse(message=f"{count} notifications marked as read")


@router.get("/preferences", response_model=NotificationPreferencesResponse)
async def read_preferences(session: SessionDep, current_user: CurrentUser) -> NotificationPreferencesResponse:
    preferences, updated_at = await notifications_service.get_preferences(session, current_user.id)
    return NotificationPreferencesResponse(user_id=current_user.id, preferences=preferences, updated_at=updated_at)


@router.put("/preferences", response_model=NotificationPreferencesResponse)
async def update_preferences(
    payload: NotificationPreferencesUpdate,
    session: SessionDep,
    current_user: CurrentUser,
) -> NotificationPreferencesResponse:
    preferences, updated_at = await notifications_service.update_preferences(session, current_user.id, payload)
    return NotificationPreferencesResponse(user_id=current_user.id, preferences=preferences, updated_at=updated_at)


@router.post("/bulk", response_model=BulkNotificationResult)
@limiter.limit(NOTIFICATION_BULK_LIMIT)
async def send_bulk_notification(
    request: Request,
    payload: BulkNotificationCreate,
    session: SessionDep,
    current_user: BulkSender,
) -> dict:
    return await notifications_service.send_bulk_notification(session, sender=current_user, payload=payload)


@router.post("/schedule", response_model=ScheduledNotificationRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(NOTIFICATION_SCHEDULE_LIMIT)
async def schedule_notification(
    request: Request,
    payload: NotificationSchedule,
    session: SessionDep,
    current_user: Tier3User,
) -> ScheduledNotification:
    await _check_outgoing(session, current_user, payload)
    return await notifications_service.schedule_notification(session, sender=current_user, payload=payload)


@router.get("/scheduled", response_model=ScheduledNotificationListResponse)
async def list_scheduled_notifications(
    session: SessionDep,
    current_user: Tier3User,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> dict:
    scheduled, total, page = await notifications_service.list_scheduled_notifications(
        session, user=current_user, page=page, page_size=limit
    )
    return build_paginated_response(scheduled, total, page, limit)


@router.delete("/scheduled/{scheduled_id}", response_model=MessageResponse)
async def cancel_scheduled_notification(
    scheduled_id: uuid.UUID,
    session: SessionDep,
    current_user: Tier3User,
) -> MessageResponse:
    await notifications_service.cancel_scheduled_notification(session, user=current_user, scheduled_id=scheduled_id)
    return MessageResponse(message=NotificationMessages.CANCELLED)


@router.put("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(notification_id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Notification:
    return await notifications_service.mark_notification_read(
        session, user_id=current_user.id, notification_id=notification_id
    )


@router.post("/{notification_id}/retry", response_model=NotificationRead)
@limiter.limit(NOTIFICATION_RETRY_LIMIT)
async def retry_notification(
    request: Request,
    notification_id: uuid.UUID,
    session: SessionDep,
    current_user: Tier3User,
) -> Notification:
    return await notifications_service.retry_notification(
        session, user_id=current_user.id, notification_id=notification_id
    )


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(notification_id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> MessageResponse:
    await notifications_service.delete_notification(session, user_id=current_user.id, notification_id=notification_id)
    return MessageResponse(message=NotificationMessages.DELETED)
