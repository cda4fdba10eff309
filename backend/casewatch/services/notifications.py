from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Mapping
import uuid

from sqlalchemy import case as sa_case, func, or_, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.errors import BadRequestError, NotFoundError
from casewatch.core.messages import ErrorCodes, NotificationMessages
from casewatch.db.query import paginated_query
from casewatch.db.session import AsyncSessionLocal
from casewatch.models.notification import (
    Notification,
    NotificationChannel,
    NotificationPreference,
    NotificationStatus,
    NotificationTopic,
    ScheduledNotification,
    ScheduledNotificationStatus,
)
from casewatch.models.user import User
from casewatch.schemas.notification import (
    BulkNotificationCreate,
    NotificationCreate,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    NotificationSchedule,
)

logger = logging.getLogger(__name__)

SCHEDULE_POLL_SECONDS = 60
RECENT_WINDOW = timedelta(hours=24)

CHANNEL_PREFERENCE = {
    NotificationChannel.email: "email_enabled",
    NotificationChannel.sms: "sms_enabled",
    NotificationChannel.push: "push_enabled",
}


async def get_preferences(session: AsyncSession, user_id: uuid.UUID) -> tuple[NotificationPreferences, datetime | None]:
    row = (
        await session.exec(select(NotificationPreference).where(NotificationPreference.user_id == user_id))
    ).one_or_none()
    if row is None:
        return NotificationPreferences(), None
    return NotificationPreferences(**row.preferences), row.updated_at


async def update_preferences(
    session: AsyncSession,
    user_id: uuid.UUID,
    payload: NotificationPreferencesUpdate,
) -> tuple[NotificationPreferences, datetime]:
    current, _ = await get_preferences(session, user_id)
    merged = current.model_copy(update=payload.model_dump(exclude_none=True))
    now = datetime.now(timezone.utc)

    row = (
        await session.exec(select(NotificationPreference).where(NotificationPreference.user_id == user_id))
    ).one_or_none()
    if row is None:
        row = NotificationPreference(user_id=user_id)
    row.preferences = merged.model_dump()
    row.updated_at = now
    session.add(row)
    await session.commit()
    return merged, now


async def _deliver(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    channel: NotificationChannel,
    title: str,
    message: str,
    case_id: uuid.UUID | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> Notification:
    """Record a notification, marking it failed when the recipient has the channel switched off."""
    preferences, _ = await get_preferences(session, user_id)
    data = dict(metadata or {})
    status = NotificationStatus.sent
    flag = CHANNEL_PREFERENCE.get(channel)
    if flag and not getattr(preferences, flag):
        status = NotificationStatus.failed
        data["error"] = f"{channel.value} notifications are disabled by the recipient"

    notification = Notification(
        user_id=user_id,
        type=channel,
        title=title,
        message=message,
        case_id=case_id,
        notification_metadata=data,
        status=status,
    )
    session.add(notification)
    await session.flush()
    logger.info("Notification %s (%s) to user %s: %s", notification.id, channel.value, user_id, status.value)
    return notification


async def notify_event(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    topic: NotificationTopic,
    title: str,
    message: str,
    case_id: uuid.UUID | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> Notification | None:
    """Queue an in-app notification for a domain event unless the user muted the topic.

    The caller commits.
    """
    preferences, _ = await get_preferences(session, user_id)
    if not getattr(preferences, topic.value) or not preferences.in_app_enabled:
        return None
    return await _deliver(
        session,
        user_id=user_id,
        channel=NotificationChannel.push,
        title=title,
        message=message,
        case_id=case_id,
        metadata={"topic": topic.value, **(metadata or {})},
    )


async def _active_recipient(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError(NotificationMessages.RECIPIENT_NOT_FOUND)
    return user


async def send_notification(session: AsyncSession, *, sender: User, payload: NotificationCreate) -> Notification:
    await _active_recipient(session, payload.user_id)
    notification = await _deliver(
        session,
        user_id=payload.user_id,
        channel=payload.type,
        title=payload.title,
        message=payload.message,
        case_id=payload.case_id,
        metadata={**payload.metadata, "sent_by": str(sender.id)},
    )
    await session.commit()
    await session.refresh(notification)
    return notification


async def list_notifications(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    page: int = 1,
    page_size: int = 20,
    status: NotificationStatus | None = None,
    channel: NotificationChannel | None = None,
) -> tuple[list[Notification], int, int]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if status is not None:
        stmt = stmt.where(Notification.status == status)
    if channel is not None:
        stmt = stmt.where(Notification.type == channel)
    stmt = stmt.order_by(Notification.created_at.desc())
    return await paginated_query(session, stmt, page, page_size)


async def unread_count(session: AsyncSession, *, user_id: uuid.UUID) -> int:
    stmt = select(func.count()).where(
        Notification.user_id == user_id,
        Notification.status == NotificationStatus.sent,
    )
    return (await session.exec(stmt)).one()


async def _get_own_notification(session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
    notification = (
        await session.exec(
            select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
        )
    ).one_or_none()
    if notification is None:
        raise NotFoundError(NotificationMessages.NOT_FOUND)
    return notification


async def mark_notification_read(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    notification_id: uuid.UUID,
) -> Notification:
    notification = await _get_own_notification(session, user_id, notification_id)
    if notification.read_at is None:
        if notification.status == NotificationStatus.sent:
            notification.status = NotificationStatus.read
        notification.read_at = datetime.now(timezone.utc)
        session.add(notification)
        await session.commit()
        await session.refresh(notification)
    return notification


async def mark_all_notifications_read(session: AsyncSession, *, user_id: uuid.UUID) -> int:
    stmt = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.status == NotificationStatus.sent)
        .values(status=NotificationStatus.read, read_at=datetime.now(timezone.utc))
    )
    result = await session.exec(stmt)
    await session.commit()
    return result.rowcount or 0


async def delete_notification(session: AsyncSession, *, user_id: uuid.UUID, notification_id: uuid.UUID) -> None:
    notification = await _get_own_notification(session, user_id, notification_id)
    await session.delete(notification)
    await session.commit()


async def get_notification_stats(session: AsyncSession, *, user_id: uuid.UUID) -> dict[str, int]:
    recent_cutoff = datetime.now(timezone.utc) - RECENT_WINDOW

    def _count_when(condition):
        return func.count(sa_case((condition, 1)))

    total, unread, read, recent = (
        await session.exec(
            select(
                func.count(Notification.id),
                _count_when(Notification.status == NotificationStatus.sent),
                _count_when(Notification.status == NotificationStatus.read),
                _count_when(Notification.created_at > recent_cutoff),
            ).where(Notification.user_id == user_id)
        )
    ).one()
    return {"total": total, "unread": unread, "read": read, "recent": recent}


async def retry_notification(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    notification_id: uuid.UUID,
) -> Notification:
    """Send a failed notification again; the original is kept and marked retried."""
    original = (
        await session.exec(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
                Notification.status == NotificationStatus.failed,
            )
        )
    ).one_or_none()
    if original is None:
        raise NotFoundError(NotificationMessages.FAILED_NOT_FOUND)

    metadata = {key: value for key, value in original.notification_metadata.items() if key != "error"}
    retried = await _deliver(
        session,
        user_id=original.user_id,
        channel=original.type,
        title=original.title,
        message=original.message,
        case_id=original.case_id,
        metadata={**metadata, "retry_of": str(original.id)},
    )
    original.status = NotificationStatus.retried
    original.retry_count += 1
    session.add(original)
    await session.commit()
    await session.refresh(retried)
    return retried


async def _bulk_targets(session: AsyncSession, payload: BulkNotificationCreate) -> list[uuid.UUID]:
    stmt = select(User.id).where(User.is_active.is_(True))
    if payload.user_ids:
        stmt = stmt.where(User.id.in_(payload.user_ids))
    elif payload.filters is not None:
        if payload.filters.tier is not None:
            stmt = stmt.where(User.tier == payload.filters.tier)
        if payload.filters.email_verified is not None:
            stmt = stmt.where(User.email_verified.is_(payload.filters.email_verified))
    return list((await session.exec(stmt)).all())


async def send_bulk_notification(session: AsyncSession, *, sender: User, payload: BulkNotificationCreate) -> dict[str, int]:
    targets = await _bulk_targets(session, payload)
    sent = failed = 0
    for user_id in targets:
        notification = await _deliver(
            session,
            user_id=user_id,
            channel=payload.type,
            title=payload.title,
            message=payload.message,
            metadata={**payload.metadata, "sent_by": str(sender.id), "bulk": True},
        )
        if notification.status == NotificationStatus.failed:
            failed += 1
        else:
            sent += 1
    await session.commit()
    logger.info("Bulk notification by %s: %d sent, %d failed", sender.id, sent, failed)
    return {"sent_count": sent, "failed_count": failed, "total_targeted": len(targets)}


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


async def schedule_notification(
    session: AsyncSession,
    *,
    sender: User,
    payload: NotificationSchedule,
) -> ScheduledNotification:
    scheduled_for = _as_utc(payload.scheduled_for)
    if scheduled_for <= datetime.now(timezone.utc):
        raise BadRequestError(NotificationMessages.SCHEDULE_IN_PAST, code=ErrorCodes.VALIDATION_ERROR)
    await _active_recipient(session, payload.user_id)

    scheduled = ScheduledNotification(
        user_id=payload.user_id,
        created_by=sender.id,
        type=payload.type,
        title=payload.title,
        message=payload.message,
        scheduled_for=scheduled_for,
        case_id=payload.case_id,
        notification_metadata=dict(payload.metadata),
    )
    session.add(scheduled)
    await session.commit()
    await session.refresh(scheduled)
    logger.info("Notification %s scheduled for %s at %s", scheduled.id, payload.user_id, scheduled_for.isoformat())
    return scheduled


def _scheduled_by_or_for(user: User):
    return or_(ScheduledNotification.user_id == user.id, ScheduledNotification.created_by == user.id)


async def list_scheduled_notifications(
    session: AsyncSession,
    *,
    user: User,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[ScheduledNotification], int, int]:
    stmt = (
        select(ScheduledNotification)
        .where(
            _scheduled_by_or_for(user),
            ScheduledNotification.status == ScheduledNotificationStatus.scheduled,
        )
        .order_by(ScheduledNotification.scheduled_for.asc())
    )
    return await paginated_query(session, stmt, page, page_size)


async def cancel_scheduled_notification(session: AsyncSession, *, user: User, scheduled_id: uuid.UUID) -> None:
    scheduled = (
        await session.exec(
            select(ScheduledNotification).where(
                ScheduledNotification.id == scheduled_id,
                _scheduled_by_or_for(user),
                ScheduledNotification.status == ScheduledNotificationStatus.scheduled,
            )
        )
    ).one_or_none()
    if scheduled is None:
        raise NotFoundError(NotificationMessages.SCHEDULED_NOT_FOUND)
    scheduled.status = ScheduledNotificationStatus.cancelled
    scheduled.cancelled_at = datetime.now(timezone.utc)
    session.add(scheduled)
    await session.commit()


async def deliver_due_notifications(session: AsyncSession | None = None, now: datetime | None = None) -> int:
    """Turn scheduled rows whose time has come into notifications."""
    if session is None:
        async with AsyncSessionLocal() as own_session:
            return await deliver_due_notifications(own_session, now)

    now = now or datetime.now(timezone.utc)
    due = (
        await session.exec(
            select(ScheduledNotification)
            .where(
                ScheduledNotification.status == ScheduledNotificationStatus.scheduled,
                ScheduledNotification.scheduled_for <= now,
            )
            .order_by(ScheduledNotification.scheduled_for.asc())
            .with_for_update(skip_locked=True)
        )
    ).all()
    for scheduled in due:
        notification = await _deliver(
            session,
            user_id=scheduled.user_id,
            channel=scheduled.type,
            title=scheduled.title,
            message=scheduled.message,
            case_id=scheduled.case_id,
            metadata={**scheduled.notification_metadata, "scheduled_id": str(scheduled.id)},
        )
        scheduled.status = ScheduledNotificationStatus.sent
        scheduled.notification_id = notification.id
        session.add(scheduled)
    await session.commit()
    if due:
        logger.info("scheduled-notifications: delivered %d notification(s)", len(due))
    return len(due)


async def _loop_worker(task_coro, interval: int, name: str) -> None:
    logger.info("%s worker started (interval=%ss)", name, interval)
    try:
        while True:
            try:
                await task_coro()
            except Exception:  # pragma: no cover
                logger.exception("%s worker encountered an error", name)
            await asyncio.sleep(interval)
    except asyncio.CancelledError:  # pragma: no cover
        logger.info("%s worker cancelled", name)
        raise


def start_background_tasks() -> list[asyncio.Task]:
    return [
        asyncio.create_task(
            _loop_worker(deliver_due_notifications, SCHEDULE_POLL_SECONDS, "scheduled-notifications")
        ),
    ]
