from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from casewatch.models.user import Tier, enum_values


class PermissionType(str, Enum):
    feature_access = "feature_access"
    api_limit = "api_limit"
    storage_limit = "storage_limit"
    priority_support = "priority_support"


class TriggeredBy(str, Enum):
    automatic = "automatic"
    manual = "manual"
    admin = "admin"
    system = "system"


class ChangeReason(str, Enum):
    tier_change = "tier_change"
    balance_update = "balance_update"
    initial = "initial"


def _tier_column(name: str = "tier", nullable: bool = False, **kwargs: Any) -> Column:
    return Column(
        name,
        SQLEnum(Tier, name="user_tier", values_callable=enum_values, create_type=False),
        nullable=nullable,
        **kwargs,
    )


class UserTier(SQLModel, table=True):
    __tablename__ = "user_tiers"
    __table_args__ = (
        CheckConstraint("eth_balance >= 0", name="user_tiers_eth_balance_non_negative"),
        Index(
            "uq_user_tiers_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    tier: Tier = Field(default=Tier.tier_1, sa_column=_tier_column(server_default=Tier.tier_1.value))
    eth_balance: float = Field(default=0, sa_column=Column(Float, nullable=False, server_default="0"))
    eth_address: str = Field(sa_column=Column(String(42), nullable=False, index=True))
    last_balance_check: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    balance_check_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    tier_changed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    previous_tier: Optional[Tier] = Field(default=None, sa_column=_tier_column("previous_tier", nullable=True))
    tier_upgrade_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    tier_downgrade_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    tier_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, server_default="true"))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class TierPermission(SQLModel, table=True):
    __tablename__ = "tier_permissions"
    __table_args__ = (UniqueConstraint("tier", "permission_name", name="uq_tier_permissions_tier_name"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tier: Tier = Field(sa_column=_tier_column(index=True))
    permission_name: str = Field(sa_column=Column(String(100), nullable=False))
    permission_type: PermissionType = Field(
        sa_column=Column(
            SQLEnum(PermissionType, name="tier_permission_type", values_callable=enum_values),
            nullable=False,
        ),
    )
    permission_value: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, server_default="true"))
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class TierHistory(SQLModel, table=True):
    __tablename__ = "tier_history"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    old_tier: Optional[Tier] = Field(default=None, sa_column=_tier_column("old_tier", nullable=True))
    new_tier: Tier = Field(sa_column=_tier_column("new_tier"))
    old_balance: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    new_balance: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    eth_address: Optional[str] = Field(default=None, sa_column=Column(String(42), nullable=True))
    change_reason: ChangeReason = Field(
        sa_column=Column(
            SQLEnum(ChangeReason, name="tier_change_reason", values_callable=enum_values),
            nullable=False,
        ),
    )
    triggered_by: TriggeredBy = Field(
        default=TriggeredBy.automatic,
        sa_column=Column(
            SQLEnum(TriggeredBy, name="tier_triggered_by", values_callable=enum_values),
            nullable=False,
            server_default=TriggeredBy.automatic.value,
        ),
    )
    tx_hash: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    change_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
