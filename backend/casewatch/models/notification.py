from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from casewatch.models.user import enum_values


class NotificationChannel(str, Enum):
    email = "email"
    sms = "sms"
    push = "push"
    webhook = "webhook"


class NotificationStatus(str, Enum):
    sent = "sent"
    read = "read"
    failed = "failed"
    retried = "retried"


class ScheduledNotificationStatus(str, Enum):
    scheduled = "scheduled"
    sent = "sent"
    cancelled = "cancelled"


class NotificationTopic(str, Enum):
    """Event preference keys; a topic switched off suppresses automatic notifications."""

    case_updates = "case_updates"
    escalation_alerts = "escalation_alerts"
    document_ready = "document_ready"
    tier_changes = "tier_changes"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    type: NotificationChannel = Field(
        sa_column=Column(
            SQLEnum(NotificationChannel, name="notification_channel", values_callable=enum_values),
            nullable=False,
        ),
    )
    title: str = Field(sa_column=Column(String(200), nullable=False))
    message: str = Field(sa_column=Column(Text, nullable=False))
    case_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("cases.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    notification_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    status: NotificationStatus = Field(
        default=NotificationStatus.sent,
        sa_column=Column(
            SQLEnum(NotificationStatus, name="notification_status", values_callable=enum_values),
            nullable=False,
            server_default=NotificationStatus.sent.value,
            index=True,
        ),
    )
    retry_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    read_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class ScheduledNotification(SQLModel, table=True):
    __tablename__ = "scheduled_notifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    created_by: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    type: NotificationChannel = Field(
        sa_column=Column(
            SQLEnum(NotificationChannel, name="notification_channel", values_callable=enum_values),
            nullable=False,
        ),
    )
    title: str = Field(sa_column=Column(String(200), nullable=False))
    message: str = Field(sa_column=Column(Text, nullable=False))
    scheduled_for: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    case_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("cases.id", ondelete="SET NULL"), nullable=True),
    )
    notification_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    status: ScheduledNotificationStatus = Field(
        default=ScheduledNotificationStatus.scheduled,
        sa_column=Column(
            SQLEnum(ScheduledNotificationStatus, name="scheduled_notification_status", values_callable=enum_values),
            nullable=False,
            server_default=ScheduledNotificationStatus.scheduled.value,
            index=True,
        ),
    )
    # Set when the background worker turns the row into a Notification
    notification_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True),
    )
    cancelled_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class NotificationPreference(SQLModel, table=True):
    __tablename__ = "notification_preferences"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    )
    preferences: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
