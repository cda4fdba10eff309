"""
Unit tests for notification service functions.

Tests the business logic in casewatch.services.notifications including:
- Delivery of scheduled notifications by the background worker
- Event notifications honouring recipient preferences
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.models.notification import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationTopic,
    ScheduledNotification,
    ScheduledNotificationStatus,
)
from casewatch.schemas.notification import NotificationPreferencesUpdate
from casewatch.services import notifications as notifications_service
from casewatch.testing.factories import create_user


async def _scheduled(session: AsyncSession, user, scheduled_for: datetime, **overrides) -> ScheduledNotification:
    defaults = {
        "user_id": user.id,
        "type": NotificationChannel.push,
        "title": "Reminder",
        "message": "Your statement is due tomorrow.",
        "scheduled_for": scheduled_for,
        "notification_metadata": {"source": "calendar"},
    }
    scheduled = ScheduledNotification(**{**defaults, **overrides})
    session.add(scheduled)
    await session.commit()
    await session.refresh(scheduled)
    return scheduled


@pytest.mark.unit
@pytest.mark.service
class TestDeliverDueNotifications:
    async def test_delivers_only_due_rows(self, session: AsyncSession):
        user = await create_user(session)
        now = datetime.now(timezone.utc)
        due = await _scheduled(session, user, now - timedelta(minutes=1))
        later = await _scheduled(session, user, now + timedelta(hours=1))

        delivered = await notifications_service.deliver_due_notifications(session, now=now)

        assert delivered == 1
        await session.refresh(due)
        await session.refresh(later)
        assert due.status == ScheduledNotificationStatus.sent
        assert later.status == ScheduledNotificationStatus.scheduled
        notification = await session.get(Notification, due.notification_id)
        assert notification.user_id == user.id
        assert notification.status == NotificationStatus.sent
        assert notification.notification_metadata == {"source": "calendar", "scheduled_id": str(due.id)}

    async def test_cancelled_rows_are_skipped(self, session: AsyncSession):
        user = await create_user(session)
        now = datetime.now(timezone.utc)
        await _scheduled(
            session, user, now - timedelta(minutes=1), status=ScheduledNotificationStatus.cancelled
        )

        assert await notifications_service.deliver_due_notifications(session, now=now) == 0
        assert (await session.exec(select(Notification))).all() == []

    async def test_second_run_delivers_nothing(self, session: AsyncSession):
        user = await create_user(session)
        now = datetime.now(timezone.utc)
        await _scheduled(session, user, now - timedelta(minutes=1))

        await notifications_service.deliver_due_notifications(session, now=now)

        assert await notifications_service.deliver_due_notifications(session, now=now) == 0
        assert len((await session.exec(select(Notification))).all()) == 1


@pytest.mark.unit
@pytest.mark.service
class TestNotifyEvent:
    async def test_records_in_app_notification(self, session: AsyncSession):
        user = await create_user(session)

        notification = await notifications_service.notify_event(
            session,
            user_id=user.id,
            topic=NotificationTopic.case_updates,
            title="Case updated",
            message="Your case moved to In Progress.",
        )
        await session.commit()

        assert notification is not None
        assert notification.type == NotificationChannel.push
        assert notification.notification_metadata == {"topic": "case_updates"}

    async def test_muted_topic_is_skipped(self, session: AsyncSession):
        user = await create_user(session)
        await notifications_service.update_preferences(
            session, user.id, NotificationPreferencesUpdate(case_updates=False)
        )

        notification = await notifications_service.notify_event(
            session,
            user_id=user.id,
            topic=NotificationTopic.case_updates,
            title="Case updated",
            message="Your case moved to In Progress.",
        )

        assert notification is None
        assert (await session.exec(select(Notification))).all() == []

    async def test_in_app_disabled_is_skipped(self, session: AsyncSession):
        user = await create_user(session)
        await notifications_service.update_preferences(
            session, user.id, NotificationPreferencesUpdate(in_app_enabled=False)
        )

        notification = await notifications_service.notify_event(
            session,
            user_id=user.id,
            topic=NotificationTopic.escalation_alerts,
            title="Case escalated",
            message="Your case was escalated.",
        )

        assert notification is None

    async def test_push_disabled_records_failure(self, session: AsyncSession):
        user = await create_user(session)
        await notifications_service.update_preferences(
            session, user.id, NotificationPreferencesUpdate(push_enabled=False)
        )

        notification = await notifications_service.notify_event(
            session,
            user_id=user.id,
            topic=NotificationTopic.escalation_alerts,
            title="Case escalated",
            message="Your case was escalated.",
        )

        assert notification.status == NotificationStatus.failed
        assert "error" in notification.notification_metadata
