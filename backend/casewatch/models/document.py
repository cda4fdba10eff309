from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from casewatch.models.user import enum_values


class DocumentType(str, Enum):
    n240 = "N240"
    n1 = "N1"
    n244 = "N244"
    et1 = "ET1"
    n208 = "N208"
    n279 = "N279"
    cpr23 = "CPR23"
    other = "Other"


class DocumentStatus(str, Enum):
    generated = "Generated"
    processing = "Processing"
    verified = "Verified"
    failed = "Failed"
    archived = "Archived"


class VerificationStatus(str, Enum):
    pending = "Pending"
    verified = "Verified"
    failed = "Failed"
    expired = "Expired"


class AccessType(str, Enum):
    view = "view"
    download = "download"
    share = "share"
    verify = "verify"
    delete = "delete"


class ShareType(str, Enum):
    public = "public"
    private = "private"
    temporary = "temporary"


class Document(SQLModel, table=True):
    __tablename__ = "documents"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    case_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=True, index=True),
    )
    created_by: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    document_type: DocumentType = Field(
        sa_column=Column(
            SQLEnum(DocumentType, name="document_type", values_callable=enum_values),
            nullable=False,
            index=True,
        ),
    )
    file_name: str = Field(sa_column=Column(String(255), nullable=False))
    file_path: str = Field(sa_column=Column(String(500), nullable=False))
    file_size: int = Field(sa_column=Column(BigInteger, nullable=False))
    mime_type: str = Field(
        default="application/pdf",
        sa_column=Column(String(100), nullable=False, server_default="application/pdf"),
    )
    file_hash: str = Field(sa_column=Column(String(64), unique=True, index=True, nullable=False))
    blockchain_tx_hash: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    qr_code_path: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    status: DocumentStatus = Field(
        default=DocumentStatus.generated,
        sa_column=Column(
            SQLEnum(DocumentStatus, name="document_status", values_callable=enum_values),
            nullable=False,
            server_default=DocumentStatus.generated.value,
            index=True,
        ),
    )
    verification_status: VerificationStatus = Field(
        default=VerificationStatus.pending,
        sa_column=Column(
            SQLEnum(VerificationStatus, name="verification_status", values_callable=enum_values),
            nullable=False,
            server_default=VerificationStatus.pending.value,
        ),
    )
    document_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    form_data: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    download_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    last_downloaded: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    expires_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class DocumentTemplate(SQLModel, table=True):
    __tablename__ = "document_templates"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    template_name: str = Field(sa_column=Column(String(100), unique=True, nullable=False))
    form_type: DocumentType = Field(
        sa_column=Column(
            SQLEnum(DocumentType, name="document_type", values_callable=enum_values, create_type=False),
            nullable=False,
        ),
    )
    template_path: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    version: str = Field(default="1.0", sa_column=Column(String(20), nullable=False, server_default="1.0"))
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default="true"),
    )
    field_mappings: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    validation_rules: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class DocumentAccessLog(SQLModel, table=True):
    __tablename__ = "document_access_logs"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    # Nulled when the document goes; document_ref and file_name keep the trail
    document_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    document_ref: Optional[uuid.UUID] = Field(default=None, sa_column=Column(Uuid, nullable=True, index=True))
    file_name: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    user_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    access_type: AccessType = Field(
        sa_column=Column(
            SQLEnum(AccessType, name="document_access_type", values_callable=enum_values),
            nullable=False,
        ),
    )
    ip_address: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    user_agent: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    accessed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


class DocumentShare(SQLModel, table=True):
    __tablename__ = "document_shares"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    document_id: uuid.UUID = Field(
        sa_column=Column(Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    shared_by: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    share_token: str = Field(sa_column=Column(String(255), unique=True, index=True, nullable=False))
    share_type: ShareType = Field(
        default=ShareType.private,
        sa_column=Column(
            SQLEnum(ShareType, name="document_share_type", values_callable=enum_values),
            nullable=False,
            server_default=ShareType.private.value,
        ),
    )
    expires_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    max_downloads: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    download_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default="true"),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
