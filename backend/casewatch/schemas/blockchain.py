from datetime import datetime
from typing import Any, Optional
import uuid

from pydantic import BaseModel, Field, field_validator

from casewatch.models.blockchain import TransactionStatus
from casewatch.models.user import Tier
from casewatch.schemas.user import validate_eth_address

HASH_PATTERN = r"^[0-9a-fA-F]{64}$"
TX_HASH_PATTERN = r"^0x[0-9a-fA-F]{64}$"


class EthAddressRequest(BaseModel):
    eth_address: str

    @field_validator("eth_address")
    @classmethod
    def check_eth_address(cls, value: str) -> str:
        return validate_eth_address(value)


class TierInfo(BaseModel):
    user_id: uuid.UUID
    eth_address: str
    tier: Tier
    balance: float
    last_checked: Optional[datetime] = None
    cached: bool = False
    updated: bool = False
    error: Optional[str] = None


class BalanceResponse(BaseModel):
    address: str
    balance: float
    tier: Tier


class HashRequest(BaseModel):
    document_path: str = Field(min_length=1, max_length=500)
    case_id: Optional[uuid.UUID] = None
    document_type: Optional[str] = Field(default=None, max_length=50)


class HashResponse(BaseModel):
    hash: str
    file_path: str
    file_size: int
    hashed_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class RegisterHashRequest(BaseModel):
    document_hash: str = Field(pattern=HASH_PATTERN)
    document_id: Optional[uuid.UUID] = None
    case_id: Optional[uuid.UUID] = None

    @field_validator("document_hash")
    @classmethod
    def lowercase_hash(cls, value: str) -> str:
        return value.lower()


class RegistrationResult(BaseModel):
    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    document_hash: str
    explorer_url: str
    status: TransactionStatus


class VerifyRequest(BaseModel):
    document_path: str = Field(min_length=1, max_length=500)
    expected_hash: Optional[str] = Field(default=None, pattern=HASH_PATTERN)


class VerifyResponse(BaseModel):
    file_path: str
    actual_hash: str
    expected_hash: Optional[str] = None
    is_valid: bool
    verified_at: datetime


class TransactionStatusResponse(BaseModel):
    tx_hash: str
    status: str
    found: bool
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    error: Optional[str] = None


class QRRequest(BaseModel):
    document_hash: str = Field(pattern=HASH_PATTERN)
    tx_hash: Optional[str] = Field(default=None, pattern=TX_HASH_PATTERN)
    metadata: dict[str, Any] = Field(default_factory=dict)


class QRResponse(BaseModel):
    file_name: str
    file_path: str
    url: str
    qr_data: dict[str, Any]


class TransactionCounts(BaseModel):
    total: int
    confirmed: int
    pending: int
    failed: int
    recent: int
    avg_gas_used: Optional[float] = None


class BlockchainStats(BaseModel):
    network: str
    contract_configured: bool
    transactions: TransactionCounts
    tier_distribution: dict[str, int]
