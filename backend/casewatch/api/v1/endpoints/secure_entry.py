from typing import Annotated

from fastapi import APIRouter, File, Form, Request, UploadFile, status
from fastapi.responses import FileResponse

from casewatch.api.deps import ClientInfoDep, SessionDep
from casewatch.core.errors import BadRequestError
from casewatch.core.messages import ErrorCodes, SecureEntryMessages
from casewatch.core.rate_limit import SECURE_ENTRY_LIMIT, limiter
from casewatch.schemas.auth import MessageResponse
from casewatch.schemas.secure_entry import SecureEntryResponse
from casewatch.services import secure_entry as secure_entry_service

router = APIRouter()


@router.post("/", response_model=SecureEntryResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(SECURE_ENTRY_LIMIT)
async def create_secure_entry(
    request: Request,
    session: SessionDep,
    client: ClientInfoDep,
    file: Annotated[UploadFile, File(description="Evidence file")],
    descriptions: Annotated[str, Form(min_length=1, max_length=5000)],
) -> dict:
    descriptions = descriptions.strip()
    if not descriptions:
        raise BadRequestError(SecureEntryMessages.DESCRIPTION_REQUIRED, code=ErrorCodes.VALIDATION_ERROR)
    entry = await secure_entry_service.create_entry(
        session,
        upload=file,
        descriptions=descriptions,
        submission_ip=client.ip_address,
    )
    return secure_entry_service.entry_payload(entry)


@router.get("/{reference_code}", response_model=SecureEntryResponse)
async def read_secure_entry(reference_code: str, session: SessionDep) -> dict:
    entry = await secure_entry_service.get_entry(session, reference_code)
    return secure_entry_service.entry_payload(entry)


@router.get("/{reference_code}/file", response_class=FileResponse)
async def download_secure_entry_file(reference_code: str, session: SessionDep) -> FileResponse:
    entry = await secure_entry_service.get_entry(session, reference_code)
    path = secure_entry_service.entry_file(entry)
    return FileResponse(path, media_type=entry.mime_type, filename=entry.original_name)


@router.delete("/{reference_code}", response_model=MessageResponse)
async def delete_secure_entry(reference_code: str, session: SessionDep) -> MessageResponse:
    await secure_entry_service.delete_entry(session, reference_code)
    return MessageResponse(message=SecureEntryMessages.DELETED)
