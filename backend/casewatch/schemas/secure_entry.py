from datetime import datetime
from typing import Optional
import uuid

from pydantic import BaseModel


class SecureEntryFile(BaseModel):
    file_name: str
    original_name: str
    file_size: int
    mime_type: Optional[str] = None
    url: str


class SecureEntryData(BaseModel):
    id: uuid.UUID
    file: SecureEntryFile
    descriptions: str
    reference_code: str
    created_at: datetime
    updated_at: datetime


class SecureEntryResponse(BaseModel):
    success: bool = True
    data: SecureEntryData
    qr_code_data_url: str
