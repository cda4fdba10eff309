from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlmodel import Enum as SQLEnum, Field, SQLModel


def enum_values(enum_cls: type[Enum]) -> list[str]:
    """Persist enum values (``"Tier 1"``) rather than member names."""
    return [member.value for member in enum_cls]


class Tier(str, Enum):
    tier_1 = "Tier 1"
    tier_2 = "Tier 2"
    tier_3 = "Tier 3"
    tier_4 = "Tier 4"


class UserRole(str, Enum):
    user = "user"
    admin = "admin"


ETH_ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "eth_address IS NULL OR eth_address ~ '^0x[0-9a-fA-F]{40}$'",
            name="users_eth_address_format",
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(sa_column=Column(String(255), unique=True, index=True, nullable=False))
    password_hash: str = Field(sa_column=Column(String(255), nullable=False))
    eth_address: Optional[str] = Field(
        default=None,
        sa_column=Column(String(42), unique=True, index=True, nullable=True),
    )
    tier: Tier = Field(
        default=Tier.tier_1,
        sa_column=Column(
            SQLEnum(Tier, name="user_tier", values_callable=enum_values),
            nullable=False,
            server_default=Tier.tier_1.value,
            index=True,
        ),
    )
    role: UserRole = Field(
        default=UserRole.user,
        sa_column=Column(
            SQLEnum(UserRole, name="user_role", values_callable=enum_values),
            nullable=False,
            server_default=UserRole.user.value,
        ),
    )
    first_name: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    last_name: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    phone: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    organization: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default="true"),
    )
    email_verified: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="false"),
    )
    last_login: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    login_attempts: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    locked_until: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin or self.tier == Tier.tier_4

    def is_locked(self, now: datetime | None = None) -> bool:
        if not self.locked_until:
            return False
        return self.locked_until > (now or datetime.now(timezone.utc))
