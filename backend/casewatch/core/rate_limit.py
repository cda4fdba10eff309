"""Shared rate limiter and the per-route limits applied by the endpoints."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from casewatch.core.config import settings

REGISTER_LIMIT = "5/15minutes"
LOGIN_LIMIT = "10/15minutes"
CHANGE_PASSWORD_LIMIT = "3/hour"
DOCUMENT_GENERATE_LIMIT = "5/minute"
DOCUMENT_UPLOAD_LIMIT = "10/minute"
DOCUMENT_DOWNLOAD_LIMIT = "20/minute"
QR_GENERATE_LIMIT = "10/minute"
SECURE_ENTRY_LIMIT = "10/15minutes"
NOTIFICATION_SEND_LIMIT = "10/minute"
NOTIFICATION_READ_ALL_LIMIT = "5/minute"
NOTIFICATION_SCHEDULE_LIMIT = "5/minute"
NOTIFICATION_RETRY_LIMIT = "3/minute"
NOTIFICATION_BULK_LIMIT = "2/minute"


def get_real_client_ip(request: Request) -> str:
    """Client IP for rate limiting and audit rows.

    X-Forwarded-For / X-Real-IP are only honoured when BEHIND_PROXY is set,
    otherwise a client could spoof them.
    """
    if settings.BEHIND_PROXY:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    return get_remote_address(request)


def get_user_agent(request: Request) -> str | None:
    return request.headers.get("User-Agent")


limiter = Limiter(key_func=get_real_client_ip, default_limits=["100/minute"])
