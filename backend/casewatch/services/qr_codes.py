from __future__ import annotations

import base64
from datetime import datetime, timezone
import io
import json
import logging
from typing import Any

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_M

from casewatch.core.config import settings
from casewatch.services.blockchain import explorer_url
from casewatch.services.storage import relative_storage_path

logger = logging.getLogger(__name__)

QR_WIDTH = 300
QR_BORDER = 2


def build_verification_payload(
    document_hash: str,
    tx_hash: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "documentHash": document_hash,
        "txHash": tx_hash,
        "explorerUrl": explorer_url(tx_hash) if tx_hash else None,
        "verifyUrl": f"{settings.APP_URL}/verify/{document_hash}",
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "metadata": metadata or {},
    }


def render_qr(text: str, width: int = QR_WIDTH) -> Image.Image:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, border=QR_BORDER, box_size=10)
    qr.add_data(text)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    return image.resize((width, width), Image.Resampling.NEAREST)


def generate_qr_file(payload: dict[str, Any], prefix: str | None = None) -> dict[str, Any]:
    """Write the payload as a PNG QR code into the qr_codes directory."""
    label = (prefix or str(payload.get("documentHash", "")))[:8]
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    file_name = f"qr_{label}_{millis}.png"

    directory = settings.qr_codes_dir
    directory.mkdir(parents=True, exist_ok=True)
    destination = directory / file_name
    try:
        render_qr(json.dumps(payload, indent=2, default=str)).save(destination, format="PNG")
    except OSError:
        logger.exception("Failed to write QR code %s", destination)
        raise
    logger.info("QR code generated: %s", file_name)

    return {
        "file_name": file_name,
        "file_path": relative_storage_path(destination),
        "qr_data": payload,
        "url": f"/qr/{file_name}",
    }


def qr_data_url(text: str) -> str:
    buffer = io.BytesIO()
    render_qr(text).save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
