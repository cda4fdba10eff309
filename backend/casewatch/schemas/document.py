from datetime import datetime
from typing import Any, Optional
import uuid

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from casewatch.models.document import DocumentStatus, DocumentType, ShareType, VerificationStatus
from casewatch.schemas.query import PaginatedResponse


class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    case_id: Optional[uuid.UUID] = None
    created_by: Optional[uuid.UUID] = None
    document_type: DocumentType
    file_name: str
    file_size: int
    mime_type: str
    file_hash: str
    blockchain_tx_hash: Optional[str] = None
    qr_code_path: Optional[str] = None
    status: DocumentStatus
    verification_status: VerificationStatus
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("document_metadata", "metadata"),
    )
    form_data: dict[str, Any] = Field(default_factory=dict)
    download_count: int
    last_downloaded: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class DocumentGenerateRequest(BaseModel):
    form_type: DocumentType
    form_data: dict[str, Any]
    case_id: Optional[uuid.UUID] = None


class DocumentListResponse(PaginatedResponse[DocumentRead]):
    pass


class DocumentStats(BaseModel):
    total_documents: int
    n240_count: int
    n1_count: int
    et1_count: int
    other_count: int
    generated_count: int
    verified_count: int
    documents_with_qr: int
    recent_documents: int


class DocumentPreview(BaseModel):
    type: str
    file_name: str
    file_size: str
    download_url: str
    pages: Optional[int] = None
    message: Optional[str] = None


class DocumentQRInfo(BaseModel):
    document_id: uuid.UUID
    qr_code_path: str
    url: str
    exists: bool = True


class DocumentQRResponse(BaseModel):
    document_id: uuid.UUID
    qr_code_path: str
    url: str
    qr_data: dict[str, Any]


class DocumentShareCreate(BaseModel):
    share_type: ShareType = ShareType.private
    expires_in_hours: Optional[int] = Field(default=None, ge=1, le=24 * 30)
    max_downloads: Optional[int] = Field(default=None, ge=1, le=1000)


class DocumentShareRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    document_id: uuid.UUID
    share_token: str
    share_type: ShareType
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    download_count: int
    is_active: bool
    created_at: datetime
    share_url: Optional[str] = None
