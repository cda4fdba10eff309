from datetime import datetime
from typing import Annotated, Optional
import uuid

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import FileResponse

from casewatch.api.deps import ClientInfoDep, CurrentUser, SessionDep, Tier2User, Tier3User, require_min_tier
from casewatch.core.rate_limit import (
    DOCUMENT_DOWNLOAD_LIMIT,
    DOCUMENT_GENERATE_LIMIT,
    DOCUMENT_UPLOAD_LIMIT,
    QR_GENERATE_LIMIT,
    limiter,
)
from casewatch.db.query import build_paginated_response
from casewatch.models.document import Document, DocumentType
from casewatch.models.user import Tier, User
from casewatch.schemas.auth import MessageResponse
from casewatch.schemas.document import (
    DocumentGenerateRequest,
    DocumentListResponse,
    DocumentPreview,
    DocumentQRInfo,
    DocumentQRResponse,
    DocumentRead,
    DocumentShareCreate,
    DocumentShareRead,
    DocumentStats,
)
from casewatch.services import documents as documents_service

router = APIRouter()

Tier1User = Annotated[User, Depends(require_min_tier(Tier.tier_1))]


def _file_response(document: Document, path) -> FileResponse:
    return FileResponse(path, media_type=document.mime_type, filename=document.file_name)


@router.post("/generate", response_model=DocumentRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(DOCUMENT_GENERATE_LIMIT)
async def generate_document(
    request: Request,
    payload: DocumentGenerateRequest,
    session: SessionDep,
    current_user: Tier1User,
) -> Document:
    return await documents_service.generate_form(
        session,
        user=current_user,
        form_type=payload.form_type,
        form_data=payload.form_data,
        case_id=payload.case_id,
    )


@router.post("/upload", response_model=DocumentRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(DOCUMENT_UPLOAD_LIMIT)
async def upload_document(
    request: Request,
    session: SessionDep,
    current_user: CurrentUser,
    document: Annotated[UploadFile, File(description="File to upload")],
    case_id: Annotated[Optional[uuid.UUID], Form()] = None,
    document_type: Annotated[Optional[DocumentType], Form()] = None,
) -> Document:
    return await documents_service.save_upload(
        session,
        user=current_user,
        upload=document,
        case_id=case_id,
        document_type=document_type,
    )


@router.get("/", response_model=DocumentListResponse)
async def list_documents(
    session: SessionDep,
    current_user: CurrentUser,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
    case_id: Optional[uuid.UUID] = None,
    document_type: Optional[DocumentType] = None,
) -> dict:
    documents, total, page = await documents_service.list_documents(
        session,
        current_user,
        page=page,
        page_size=limit,
        case_id=case_id,
        document_type=document_type,
    )
    return build_paginated_response(documents, total, page, limit)


@router.get("/search", response_model=DocumentListResponse)
async def search_documents(
    session: SessionDep,
    current_user: Tier2User,
    q: Annotated[str, Query(min_length=1, max_length=100)],
    document_type: Optional[DocumentType] = None,
    case_id: Optional[uuid.UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> dict:
    documents, total, page = await documents_service.search_documents(
        session,
        current_user,
        query=q,
        document_type=document_type,
        case_id=case_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=limit,
    )
    return build_paginated_response(documents, total, page, limit, query=q)


@router.get("/stats", response_model=DocumentStats)
async def document_stats(session: SessionDep, current_user: CurrentUser) -> dict:
    return await documents_service.get_document_stats(session, current_user)


@router.get("/shared/{token}", response_class=FileResponse)
async def download_shared_document(token: str, session: SessionDep, client: ClientInfoDep) -> FileResponse:
    document, path = await documents_service.resolve_share_download(
        session, token, ip_address=client.ip_address, user_agent=client.user_agent
    )
    return _file_response(document, path)


@router.get("/{document_id}", response_model=DocumentRead)
async def read_document(
    document_id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    client: ClientInfoDep,
) -> Document:
    return await documents_service.view_document(
        session, current_user, document_id, ip_address=client.ip_address, user_agent=client.user_agent
    )


@router.get("/{document_id}/download", response_class=FileResponse)
@limiter.limit(DOCUMENT_DOWNLOAD_LIMIT)
async def download_document(
    request: Request,
    document_id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    client: ClientInfoDep,
) -> FileResponse:
    document, path = await documents_service.prepare_download(
        session, current_user, document_id, ip_address=client.ip_address, user_agent=client.user_agent
    )
    return _file_response(document, path)


@router.get("/{document_id}/preview", response_model=DocumentPreview)
async def preview_document(document_id: uuid.UUID, session: SessionDep, current_user: Tier2User) -> dict:
    document = await documents_service.get_visible_document(session, current_user, document_id)
    return documents_service.preview_document(document)


@router.get("/{document_id}/qr", response_model=DocumentQRInfo)
async def read_document_qr(document_id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> dict:
    document = await documents_service.get_visible_document(session, current_user, document_id)
    return documents_service.qr_info(document)


@router.post("/{document_id}/qr", response_model=DocumentQRResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(QR_GENERATE_LIMIT)
async def generate_document_qr(
    request: Request,
    document_id: uuid.UUID,
    session: SessionDep,
    current_user: Tier2User,
) -> dict:
    document = await documents_service.get_visible_document(session, current_user, document_id)
    return await documents_service.generate_document_qr(session, document)


@router.delete("/{document_id}", response_model=MessageResponse)
async def delete_document(
    document_id: uuid.UUID,
    session: SessionDep,
    current_user: Tier3User,
    client: ClientInfoDep,
) -> MessageResponse:
    document = await documents_service.get_visible_document(session, current_user, document_id)
    await documents_service.delete_document(
        session, current_user, document, ip_address=client.ip_address, user_agent=client.user_agent
    )
    return MessageResponse(message="Document deleted successfully")


@router.post("/{document_id}/shares", response_model=DocumentShareRead, status_code=status.HTTP_201_CREATED)
async def share_document(
    document_id: uuid.UUID,
    payload: DocumentShareCreate,
    session: SessionDep,
    current_user: Tier2User,
    client: ClientInfoDep,
) -> DocumentShareRead:
    document = await documents_service.get_visible_document(session, current_user, document_id)
    share = await documents_service.create_share(
        session, current_user, document, payload, ip_address=client.ip_address, user_agent=client.user_agent
    )
    return DocumentShareRead.model_validate(share).model_copy(
        update={"share_url": documents_service.share_url(share)}
    )
