"""Unit tests for QR code rendering."""

import base64
import io

from PIL import Image

from casewatch.core.config import settings
from casewatch.services.qr_codes import (
    QR_WIDTH,
    build_verification_payload,
    generate_qr_file,
    qr_data_url,
    render_qr,
)

DOCUMENT_HASH = "ab" * 32


def test_payload_without_transaction() -> None:
    payload = build_verification_payload(DOCUMENT_HASH)
    assert payload["txHash"] is None
    assert payload["explorerUrl"] is None
    assert payload["verifyUrl"] == f"{settings.APP_URL}/verify/{DOCUMENT_HASH}"
    assert payload["metadata"] == {}


def test_payload_links_to_explorer() -> None:
    payload = build_verification_payload(DOCUMENT_HASH, "0xdeadbeef", {"case_id": "c1"})
    assert payload["explorerUrl"].endswith("/tx/0xdeadbeef")
    assert payload["metadata"] == {"case_id": "c1"}


def test_render_qr_is_fixed_width() -> None:
    assert render_qr("hello").size == (QR_WIDTH, QR_WIDTH)


def test_generate_qr_file_writes_png() -> None:
    result = generate_qr_file(build_verification_payload(DOCUMENT_HASH))
    path = settings.qr_codes_dir / result["file_name"]
    assert result["file_name"].startswith("qr_abababab_")
    assert result["file_path"] == f"qr_codes/{result['file_name']}"
    assert result["url"] == f"/qr/{result['file_name']}"
    with Image.open(path) as image:
        assert image.format == "PNG"


def test_qr_data_url_is_base64_png() -> None:
    url = qr_data_url("https://example.com")
    prefix = "data:image/png;base64,"
    assert url.startswith(prefix)
    with Image.open(io.BytesIO(base64.b64decode(url[len(prefix):]))) as image:
        assert image.size == (QR_WIDTH, QR_WIDTH)
