from datetime import datetime
from typing import Optional
import re
import uuid

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from casewatch.core.security import password_policy_error
from casewatch.models.user import ETH_ADDRESS_PATTERN, Tier, UserRole
from casewatch.schemas.query import PaginatedResponse

_ETH_ADDRESS_RE = re.compile(ETH_ADDRESS_PATTERN)


def validate_eth_address(value: Optional[str], *, allow_blank: bool = False) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned and allow_blank:
        return ""
    if not _ETH_ADDRESS_RE.match(cleaned):
        raise ValueError("Invalid Ethereum address format")
    return cleaned


def validate_password(value: str) -> str:
    error = password_policy_error(value)
    if error:
        raise ValueError(error)
    return value


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: EmailStr
    eth_address: Optional[str] = None
    tier: Tier
    role: UserRole
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    organization: Optional[str] = None
    is_active: bool
    email_verified: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    eth_address: Optional[str] = None
    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    organization: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return validate_password(value)

    @field_validator("eth_address")
    @classmethod
    def check_eth_address(cls, value: Optional[str]) -> Optional[str]:
        return validate_eth_address(value) or None


class UserProfileUpdate(BaseModel):
    """Self-service profile edits. An empty ``eth_address`` unlinks the wallet."""

    eth_address: Optional[str] = None
    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=20)
    organization: Optional[str] = Field(default=None, max_length=255)

    @field_validator("eth_address")
    @classmethod
    def check_eth_address(cls, value: Optional[str]) -> Optional[str]:
        return validate_eth_address(value, allow_blank=True)


class UserAdminUpdate(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    organization: Optional[str] = Field(default=None, max_length=255)
    eth_address: Optional[str] = None
    tier: Optional[Tier] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value

    @field_validator("eth_address")
    @classmethod
    def check_eth_address(cls, value: Optional[str]) -> Optional[str]:
        return validate_eth_address(value, allow_blank=True)


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserListResponse(PaginatedResponse[UserRead]):
    pass


class UserStats(BaseModel):
    total_users: int
    active_users: int
    inactive_users: int
    admin_users: int
    tier_1_users: int
    tier_2_users: int
    tier_3_users: int
    tier_4_users: int
    new_users_30d: int
