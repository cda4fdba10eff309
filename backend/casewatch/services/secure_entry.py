"""Anonymous submissions addressed only by a random reference code."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import secrets
import string
from typing import Any

from fastapi import UploadFile
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.core.errors import NotFoundError
from casewatch.core.messages import SecureEntryMessages
from casewatch.models.secure_entry import SecureEntry
from casewatch.services import qr_codes, storage

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "SE-"
REFERENCE_LENGTH = 10
REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
MAX_REFERENCE_ATTEMPTS = 5


def generate_reference_code() -> str:
    return REFERENCE_PREFIX + "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))


async def _reference_in_use(session: AsyncSession, code: str) -> bool:
    stmt = select(SecureEntry.id).where(SecureEntry.reference_code == code)
    return (await session.exec(stmt)).first() is not None


async def unique_reference_code(session: AsyncSession) -> str:
    for _ in range(MAX_REFERENCE_ATTEMPTS):
        code = generate_reference_code()
        if not await _reference_in_use(session, code):
            return code
    raise RuntimeError("Could not allocate a unique secure entry reference code")


def dashboard_url(reference_code: str) -> str:
    return f"{settings.APP_URL}/alias-dashboard/{reference_code}"


def entry_payload(entry: SecureEntry) -> dict[str, Any]:
    return {
        "success": True,
        "data": {
            "id": entry.id,
            "file": {
                "file_name": entry.file_name,
                "original_name": entry.original_name,
                "file_size": entry.file_size,
                "mime_type": entry.mime_type,
                "url": f"{settings.API_PREFIX}/application/{entry.reference_code}/file",
            },
            "descriptions": entry.descriptions,
            "reference_code": entry.reference_code,
            "created_at": entry.created_at,
            "updated_at": entry.updated_at,
        },
        "qr_code_data_url": qr_codes.qr_data_url(dashboard_url(entry.reference_code)),
    }


async def create_entry(
    session: AsyncSession,
    *,
    upload: UploadFile,
    descriptions: str,
    submission_ip: str | None = None,
) -> SecureEntry:
    extension = storage.check_extension(upload.filename)
    reference_code = await unique_reference_code(session)
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    file_name = f"{reference_code}-{millis}.{extension}"
    stored = await storage.save_upload(upload, settings.secure_entries_dir / file_name)

    entry = SecureEntry(
        reference_code=reference_code,
        file_name=file_name,
        original_name=upload.filename or file_name,
        file_path=stored.relative_path,
        file_size=stored.size,
        mime_type=storage.mime_type_for(extension, upload.content_type),
        descriptions=descriptions,
        submission_ip=submission_ip,
    )
    session.add(entry)
    await session.commit()
    await session.refresh(entry)
    logger.info("Secure entry %s created", reference_code)
    return entry


async def get_entry(session: AsyncSession, reference_code: str) -> SecureEntry:
    stmt = select(SecureEntry).where(SecureEntry.reference_code == reference_code.upper())
    entry = (await session.exec(stmt)).one_or_none()
    if entry is None:
        raise NotFoundError(SecureEntryMessages.NOT_FOUND)
    return entry


def entry_file(entry: SecureEntry) -> Path:
    path = storage.absolute_storage_path(entry.file_path)
    if not path.is_file():
        raise NotFoundError(SecureEntryMessages.NOT_FOUND)
    return path


async def delete_entry(session: AsyncSession, reference_code: str) -> None:
    entry = await get_entry(session, reference_code)
    storage.remove_file(storage.absolute_storage_path(entry.file_path))
    await session.delete(entry)
    await session.commit()
    logger.info("Secure entry %s deleted", entry.reference_code)
