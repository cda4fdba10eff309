"""File storage under ``STORAGE_DIR``.

Paths persisted in the database are relative to the storage root
(``documents/N240_1700000000000.pdf``) so the root can move between
deployments.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import logging
from pathlib import Path

from fastapi import UploadFile

from casewatch.core.config import settings
from casewatch.core.errors import BadRequestError, FileTooLargeError, NotFoundError
from casewatch.core.messages import BlockchainMessages, DocumentMessages, ErrorCodes

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

MIME_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}


@dataclass
class StoredFile:
    path: Path
    relative_path: str
    size: int
    sha256: str


def storage_root() -> Path:
    return settings.storage_path.resolve()


def ensure_storage_dirs() -> None:
    for directory in (
        settings.documents_dir,
        settings.uploads_dir,
        settings.qr_codes_dir,
        settings.secure_entries_dir,
    ):
        directory.mkdir(parents=True, exist_ok=True)


def relative_storage_path(path: Path) -> str:
    return path.resolve().relative_to(storage_root()).as_posix()


def absolute_storage_path(relative_path: str) -> Path:
    return storage_root() / relative_path


def resolve_storage_path(document_path: str) -> Path:
    """Resolve a caller supplied path, refusing anything outside the storage root."""
    candidate = Path(document_path)
    if not candidate.is_absolute():
        candidate = storage_root() / candidate
    resolved = candidate.resolve()
    try:
        resolved.relative_to(storage_root())
    except ValueError:
        raise BadRequestError(BlockchainMessages.PATH_OUTSIDE_STORAGE)
    if not resolved.is_file():
        raise NotFoundError(f"File not found: {document_path}")
    return resolved


def file_extension(filename: str | None) -> str:
    return Path(filename or "").suffix.lower().lstrip(".")


def check_extension(filename: str | None) -> str:
    extension = file_extension(filename)
    if extension not in settings.ALLOWED_FILE_TYPES:
        allowed = ", ".join(settings.ALLOWED_FILE_TYPES)
        raise BadRequestError(
            f"File type not allowed. Allowed types: {allowed}",
            code=ErrorCodes.INVALID_FILE_TYPE,
        )
    return extension


def mime_type_for(extension: str, fallback: str | None = None) -> str:
    return MIME_TYPES.get(extension, fallback or "application/octet-stream")


async def save_upload(upload: UploadFile, destination: Path) -> StoredFile:
    """Stream ``upload`` to ``destination`` enforcing ``MAX_FILE_SIZE``.

    The partially written file is removed when the limit is exceeded.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    digest = hashlib.sha256()
    size = 0
    try:
        with destination.open("wb") as handle:
            while chunk := await upload.read(CHUNK_SIZE):
                size += len(chunk)
                if size > settings.MAX_FILE_SIZE:
                    raise FileTooLargeError(
                        f"{DocumentMessages.FILE_TOO_LARGE} of {settings.MAX_FILE_SIZE} bytes"
                    )
                digest.update(chunk)
                handle.write(chunk)
    except FileTooLargeError:
        remove_file(destination)
        raise
    if size == 0:
        remove_file(destination)
        raise BadRequestError(DocumentMessages.FILE_EMPTY)
    return StoredFile(
        path=destination,
        relative_path=relative_storage_path(destination),
        size=size,
        sha256=digest.hexdigest(),
    )


def write_bytes(destination: Path, data: bytes) -> StoredFile:
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(data)
    return StoredFile(
        path=destination,
        relative_path=relative_storage_path(destination),
        size=len(data),
        sha256=hashlib.sha256(data).hexdigest(),
    )


def remove_file(path: Path) -> bool:
    try:
        if path.exists() and path.is_file():
            path.unlink()
            return True
    except OSError as exc:
        logger.warning("Failed to delete stored file %s: %s", path, exc)
    return False


def human_file_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"
