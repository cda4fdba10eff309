from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from pathlib import Path
import secrets
from typing import Any
import uuid

from fastapi import UploadFile
from pypdf import PdfReader
from pypdf.errors import PdfReadError
from sqlalchemy import String, case as sa_case, cast, func, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core import tiers as tier_rules
from casewatch.core.config import settings
from casewatch.core.errors import ConflictError, ForbiddenError, GoneError, NotFoundError
from casewatch.core.messages import DocumentMessages, ErrorCodes
from casewatch.db.query import paginated_query
from casewatch.models.case import Case
from casewatch.models.document import (
    AccessType,
    Document,
    DocumentAccessLog,
    DocumentShare,
    DocumentStatus,
    DocumentType,
    ShareType,
    VerificationStatus,
)
from casewatch.models.user import User
from casewatch.schemas.document import DocumentShareCreate
from casewatch.services import cases as cases_service
from casewatch.services import pdf_forms, qr_codes, storage
from casewatch.services import tiers as tiers_service

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png"}
WORD_EXTENSIONS = {"doc", "docx"}
TEMPORARY_SHARE_HOURS = 24


def _millis() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def visibility_clause(user: User):
    """Documents the user created, or that belong to one of their cases."""
    own_cases = select(Case.id).where(Case.user_id == user.id)
    return or_(Document.created_by == user.id, Document.case_id.in_(own_cases))


def visible_documents(user: User):
    stmt = select(Document)
    if not user.is_admin:
        stmt = stmt.where(visibility_clause(user))
    return stmt


async def get_visible_document(session: AsyncSession, user: User, document_id: uuid.UUID) -> Document:
    stmt = visible_documents(user).where(Document.id == document_id)
    document = (await session.exec(stmt)).one_or_none()
    if document is None:
        raise NotFoundError(DocumentMessages.NOT_FOUND)
    return document


def log_access(
    session: AsyncSession,
    document: Document,
    access_type: AccessType,
    *,
    user: User | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    session.add(
        DocumentAccessLog(
            document_id=document.id,
            document_ref=document.id,
            file_name=document.file_name,
            user_id=user.id if user else None,
            access_type=access_type,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    )


async def generate_form(
    session: AsyncSession,
    *,
    user: User,
    form_type: DocumentType,
    form_data: dict[str, Any],
    case_id: uuid.UUID | None = None,
) -> Document:
    forms = await tiers_service.allowed_forms(session, user.tier)
    if tier_rules.ALL_FORMS not in forms and form_type.value not in forms:
        raise ForbiddenError(
            DocumentMessages.FORM_NOT_ALLOWED,
            code=ErrorCodes.FORM_NOT_ALLOWED,
            details={"form_type": form_type.value, "allowed_forms": forms, "current_tier": user.tier},
        )
    if case_id is not None:
        await cases_service.get_case_for_user(session, user, case_id)

    pdf_bytes = pdf_forms.render_form(form_type, form_data)
    file_name = f"{form_type.value}_{_millis()}.pdf"
    stored = storage.write_bytes(settings.documents_dir / file_name, pdf_bytes)

    document = Document(
        case_id=case_id,
        created_by=user.id,
        document_type=form_type,
        file_name=file_name,
        file_path=stored.relative_path,
        file_size=stored.size,
        mime_type="application/pdf",
        file_hash=stored.sha256,
        status=DocumentStatus.generated,
        form_data=form_data,
        document_metadata={"source": "generated", "form_type": form_type.value},
    )
    session.add(document)
    await session.commit()
    await session.refresh(document)
    logger.info("Generated %s document %s for user %s", form_type.value, document.id, user.id)
    return document


async def save_upload(
    session: AsyncSession,
    *,
    user: User,
    upload: UploadFile,
    case_id: uuid.UUID | None = None,
    document_type: DocumentType | None = None,
) -> Document:
    extension = storage.check_extension(upload.filename)
    if case_id is not None:
        await cases_service.get_case_for_user(session, user, case_id)

    stored_name = f"document-{_millis()}-{secrets.randbelow(10**9)}.{extension}"
    stored = await storage.save_upload(upload, settings.uploads_dir / stored_name)

    existing = (await session.exec(select(Document.id).where(Document.file_hash == stored.sha256))).first()
    if existing is not None:
        storage.remove_file(stored.path)
        raise ConflictError("A document with identical content already exists", details={"document_id": existing})

    document = Document(
        case_id=case_id,
        created_by=user.id,
        document_type=document_type or DocumentType.other,
        file_name=upload.filename or stored_name,
        file_path=stored.relative_path,
        file_size=stored.size,
        mime_type=storage.mime_type_for(extension, upload.content_type),
        file_hash=stored.sha256,
        status=DocumentStatus.generated,
        document_metadata={"source": "upload", "original_name": upload.filename, "stored_name": stored_name},
    )
    session.add(document)
    await session.commit()
    await session.refresh(document)
    logger.info("Uploaded document %s (%s bytes) for user %s", document.id, stored.size, user.id)
    return document


async def list_documents(
    session: AsyncSession,
    user: User,
    *,
    page: int = 1,
    page_size: int = 10,
    case_id: uuid.UUID | None = None,
    document_type: DocumentType | None = None,
) -> tuple[list[Document], int, int]:
    stmt = visible_documents(user)
    if case_id is not None:
        stmt = stmt.where(Document.case_id == case_id)
    if document_type is not None:
        stmt = stmt.where(Document.document_type == document_type)
    stmt = stmt.order_by(Document.created_at.desc())
    return await paginated_query(session, stmt, page, page_size)


async def search_documents(
    session: AsyncSession,
    user: User,
    *,
    query: str,
    document_type: DocumentType | None = None,
    case_id: uuid.UUID | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Document], int, int]:
    pattern = f"%{query}%"
    stmt = visible_documents(user).where(
        or_(
            Document.file_name.ilike(pattern),
            cast(Document.document_type, String).ilike(pattern),
        )
    )
    if document_type is not None:
        stmt = stmt.where(Document.document_type == document_type)
    if case_id is not None:
        stmt = stmt.where(Document.case_id == case_id)
    if date_from is not None:
        stmt = stmt.where(Document.created_at >= date_from)
    if date_to is not None:
        stmt = stmt.where(Document.created_at <= date_to)
    stmt = stmt.order_by(Document.created_at.desc())
    return await paginated_query(session, stmt, page, page_size)


async def get_document_stats(session: AsyncSession, user: User) -> dict[str, int]:
    recent_cutoff = datetime.now(timezone.utc) - timedelta(days=30)

    def _count_when(condition):
        return func.count(sa_case((condition, 1)))

    stmt = select(
        func.count(Document.id),
        _count_when(Document.document_type == DocumentType.n240),
        _count_when(Document.document_type == DocumentType.n1),
        _count_when(Document.document_type == DocumentType.et1),
        _count_when(Document.document_type.not_in([DocumentType.n240, DocumentType.n1, DocumentType.et1])),
        _count_when(Document.status == DocumentStatus.generated),
        _count_when(Document.verification_status == VerificationStatus.verified),
        _count_when(Document.qr_code_path.is_not(None)),
        _count_when(Document.created_at > recent_cutoff),
    )
    if not user.is_admin:
        stmt = stmt.where(visibility_clause(user))
    row = (await session.exec(stmt)).one()
    keys = (
        "total_documents",
        "n240_count",
        "n1_count",
        "et1_count",
        "other_count",
        "generated_count",
        "verified_count",
        "documents_with_qr",
        "recent_documents",
    )
    return dict(zip(keys, row))


async def view_document(
    session: AsyncSession,
    user: User,
    document_id: uuid.UUID,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Document:
    document = await get_visible_document(session, user, document_id)
    log_access(session, document, AccessType.view, user=user, ip_address=ip_address, user_agent=user_agent)
    await session.commit()
    await session.refresh(document)
    return document


def document_file(document: Document) -> Path:
    path = storage.absolute_storage_path(document.file_path)
    if not path.is_file():
        raise NotFoundError(DocumentMessages.FILE_MISSING)
    return path


async def prepare_download(
    session: AsyncSession,
    user: User,
    document_id: uuid.UUID,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[Document, Path]:
    document = await get_visible_document(session, user, document_id)
    path = document_file(document)

    document.download_count += 1
    document.last_downloaded = datetime.now(timezone.utc)
    session.add(document)
    log_access(session, document, AccessType.download, user=user, ip_address=ip_address, user_agent=user_agent)
    await session.commit()
    await session.refresh(document)
    return document, path


def count_pdf_pages(path: Path) -> int | None:
    try:
        return len(PdfReader(str(path)).pages)
    except (PdfReadError, OSError) as exc:
        logger.warning("Could not read PDF %s: %s", path, exc)
        return None


def preview_document(document: Document) -> dict[str, Any]:
    path = document_file(document)
    extension = storage.file_extension(document.file_name) or storage.file_extension(document.file_path)
    preview: dict[str, Any] = {
        "file_name": document.file_name,
        "file_size": storage.human_file_size(document.file_size),
        "download_url": f"{settings.API_PREFIX}/documents/{document.id}/download",
    }
    if extension == "pdf":
        preview.update(type="pdf", pages=count_pdf_pages(path))
    elif extension in IMAGE_EXTENSIONS:
        preview.update(type="image")
    elif extension in WORD_EXTENSIONS:
        preview.update(type="document")
    else:
        preview.update(type="unsupported", message="Preview is not available for this file type")
    return preview


def qr_info(document: Document) -> dict[str, Any]:
    if not document.qr_code_path:
        raise NotFoundError(DocumentMessages.QR_NOT_FOUND)
    return {
        "document_id": document.id,
        "qr_code_path": document.qr_code_path,
        "url": f"/qr/{Path(document.qr_code_path).name}",
        "exists": True,
    }


async def generate_document_qr(session: AsyncSession, document: Document) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "document_id": str(document.id),
        "document_type": document.document_type.value,
        "file_name": document.file_name,
        "created_at": document.created_at.isoformat(),
    }
    if document.blockchain_tx_hash:
        metadata["tx_hash"] = document.blockchain_tx_hash
    payload = qr_codes.build_verification_payload(document.file_hash, document.blockchain_tx_hash, metadata)
    result = qr_codes.generate_qr_file(payload, document.file_hash)

    previous = document.qr_code_path
    document.qr_code_path = result["file_path"]
    document.updated_at = datetime.now(timezone.utc)
    session.add(document)
    await session.commit()
    if previous and previous != document.qr_code_path:
        storage.remove_file(storage.absolute_storage_path(previous))

    return {
        "document_id": document.id,
        "qr_code_path": result["file_path"],
        "url": result["url"],
        "qr_data": result["qr_data"],
    }


async def delete_document(
    session: AsyncSession,
    user: User,
    document: Document,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    path = storage.absolute_storage_path(document.file_path)
    if path.exists():
        storage.remove_file(path)
    else:
        logger.warning("Document %s file already missing at %s", document.id, path)
    if document.qr_code_path:
        storage.remove_file(storage.absolute_storage_path(document.qr_code_path))

    log_access(session, document, AccessType.delete, user=user, ip_address=ip_address, user_agent=user_agent)
    await session.flush()
    await session.delete(document)
    await session.commit()
    logger.info("Deleted document %s by user %s", document.id, user.id)


def share_url(share: DocumentShare) -> str:
    return f"{settings.API_PREFIX}/documents/shared/{share.share_token}"


async def create_share(
    session: AsyncSession,
    user: User,
    document: Document,
    payload: DocumentShareCreate,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> DocumentShare:
    hours = payload.expires_in_hours
    if hours is None and payload.share_type == ShareType.temporary:
        hours = TEMPORARY_SHARE_HOURS
    share = DocumentShare(
        document_id=document.id,
        shared_by=user.id,
        share_token=secrets.token_urlsafe(32),
        share_type=payload.share_type,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=hours) if hours else None,
        max_downloads=payload.max_downloads,
    )
    session.add(share)
    log_access(session, document, AccessType.share, user=user, ip_address=ip_address, user_agent=user_agent)
    await session.commit()
    await session.refresh(share)
    return share


async def resolve_share_download(
    session: AsyncSession,
    token: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[Document, Path]:
    share = (await session.exec(select(DocumentShare).where(DocumentShare.share_token == token))).one_or_none()
    if share is None or not share.is_active:
        raise NotFoundError(DocumentMessages.SHARE_NOT_FOUND)
    if share.expires_at is not None and share.expires_at <= datetime.now(timezone.utc):
        raise GoneError(DocumentMessages.SHARE_EXPIRED)
    if share.max_downloads is not None and share.download_count >= share.max_downloads:
        raise GoneError(DocumentMessages.SHARE_EXPIRED)

    document = await session.get(Document, share.document_id)
    if document is None:
        raise NotFoundError(DocumentMessages.NOT_FOUND)
    path = document_file(document)

    share.download_count += 1
    document.download_count += 1
    document.last_downloaded = datetime.now(timezone.utc)
    session.add(share)
    session.add(document)
    log_access(session, document, AccessType.download, ip_address=ip_address, user_agent=user_agent)
    await session.commit()
    await session.refresh(document)
    return document, path
