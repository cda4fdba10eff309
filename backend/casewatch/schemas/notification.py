from datetime import datetime
from typing import Any, Optional
import uuid

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from casewatch.models.notification import NotificationChannel, NotificationStatus, ScheduledNotificationStatus
from casewatch.models.user import Tier
from casewatch.schemas.query import PaginatedResponse


class NotificationCreate(BaseModel):
    user_id: uuid.UUID
    type: NotificationChannel
    title: str = Field(min_length=5, max_length=200)
    message: str = Field(min_length=10, max_length=1000)
    case_id: Optional[uuid.UUID] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def reject_webhook(value: NotificationChannel) -> NotificationChannel:
    if value == NotificationChannel.webhook:
        raise ValueError("Webhook notifications must be sent individually")
    return value


class NotificationSchedule(NotificationCreate):
    scheduled_for: datetime

    @field_validator("type")
    @classmethod
    def check_channel(cls, value: NotificationChannel) -> NotificationChannel:
        return reject_webhook(value)


class BulkFilters(BaseModel):
    tier: Optional[Tier] = None
    email_verified: Optional[bool] = None


class BulkNotificationCreate(BaseModel):
    user_ids: list[uuid.UUID] = Field(default_factory=list)
    type: NotificationChannel
    title: str = Field(min_length=5, max_length=200)
    message: str = Field(min_length=10, max_length=1000)
    filters: Optional[BulkFilters] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def check_channel(cls, value: NotificationChannel) -> NotificationChannel:
        return reject_webhook(value)

    @model_validator(mode="after")
    def check_targets(self) -> "BulkNotificationCreate":
        if not self.user_ids and self.filters is None:
            raise ValueError("Either user_ids or filters must be provided")
        return self


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    type: NotificationChannel
    title: str
    message: str
    case_id: Optional[uuid.UUID] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("notification_metadata", "metadata"),
    )
    status: NotificationStatus
    retry_count: int = 0
    read_at: Optional[datetime] = None
    created_at: datetime


class ScheduledNotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    created_by: Optional[uuid.UUID] = None
    type: NotificationChannel
    title: str
    message: str
    scheduled_for: datetime
    case_id: Optional[uuid.UUID] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("notification_metadata", "metadata"),
    )
    status: ScheduledNotificationStatus
    notification_id: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime


class NotificationListResponse(PaginatedResponse[NotificationRead]):
    unread_count: int


class ScheduledNotificationListResponse(PaginatedResponse[ScheduledNotificationRead]):
    pass


class NotificationStats(BaseModel):
    total: int
    unread: int
    read: int
    recent: int


class NotificationCountResponse(BaseModel):
    unread_count: int


class BulkNotificationResult(BaseModel):
    sent_count: int
    failed_count: int
    total_targeted: int


class NotificationPreferences(BaseModel):
    email_enabled: bool = True
    sms_enabled: bool = False
    push_enabled: bool = True
    in_app_enabled: bool = True
    case_updates: bool = True
    escalation_alerts: bool = True
    document_ready: bool = True
    tier_changes: bool = True


class NotificationPreferencesUpdate(BaseModel):
    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None
    case_updates: Optional[bool] = None
    escalation_alerts: Optional[bool] = None
    document_ready: Optional[bool] = None
    tier_changes: Optional[bool] = None


class NotificationPreferencesResponse(BaseModel):
    user_id: uuid.UUID
    preferences: NotificationPreferences
    updated_at: Optional[datetime] = None
