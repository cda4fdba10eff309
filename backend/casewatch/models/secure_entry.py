from datetime import datetime, timezone
from typing import Optional
import uuid

from sqlalchemy import BigInteger, Column, DateTime, String, Text
from sqlmodel import Field, SQLModel


class SecureEntry(SQLModel, table=True):
    """Anonymous file submission addressed only by its reference code."""

    __tablename__ = "secure_entries"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    reference_code: str = Field(sa_column=Column(String(20), unique=True, index=True, nullable=False))
    file_name: str = Field(sa_column=Column(String(255), nullable=False))
    original_name: str = Field(sa_column=Column(String(255), nullable=False))
    file_path: str = Field(sa_column=Column(String(500), nullable=False))
    file_size: int = Field(sa_column=Column(BigInteger, nullable=False))
    mime_type: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    descriptions: str = Field(sa_column=Column(Text, nullable=False))
    submission_ip: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
