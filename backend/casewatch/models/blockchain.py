from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, Uuid
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from casewatch.models.user import enum_values


class TransactionStatus(str, Enum):
    pending = "Pending"
    confirmed = "Confirmed"
    failed = "Failed"


class BlockchainTransaction(SQLModel, table=True):
    __tablename__ = "blockchain_transactions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    document_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    case_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("cases.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    user_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    tx_hash: str = Field(sa_column=Column(String(100), unique=True, index=True, nullable=False))
    document_hash: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    block_number: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    gas_used: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    status: TransactionStatus = Field(
        default=TransactionStatus.pending,
        sa_column=Column(
            SQLEnum(TransactionStatus, name="blockchain_transaction_status", values_callable=enum_values),
            nullable=False,
            server_default=TransactionStatus.pending.value,
        ),
    )
    network: str = Field(sa_column=Column(String(50), nullable=False))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
