"""Unit tests for court form rendering."""

import io

from pypdf import PdfReader
import pytest

from casewatch.core.errors import BadRequestError
from casewatch.core.messages import ErrorCodes
from casewatch.models.document import DocumentType
from casewatch.services.pdf_forms import (
    REQUIRED_FIELDS,
    UnsupportedFormError,
    missing_fields,
    render_form,
    wrap_text,
)


def _complete(form_type: DocumentType) -> dict[str, str]:
    return {name: f"value for {name}" for name in REQUIRED_FIELDS[form_type]}


def _text(pdf: bytes) -> str:
    reader = PdfReader(io.BytesIO(pdf))
    return "\n".join(page.extract_text() for page in reader.pages)


@pytest.mark.parametrize("form_type", [DocumentType.n240, DocumentType.n1, DocumentType.et1])
def test_render_form_produces_pdf(form_type: DocumentType) -> None:
    pdf = render_form(form_type, _complete(form_type))
    assert pdf.startswith(b"%PDF")
    assert len(PdfReader(io.BytesIO(pdf)).pages) >= 1


def test_render_form_accepts_string_type() -> None:
    data = _complete(DocumentType.n240)
    data["claimant_name"] = "Ada Claimant"
    assert "Ada Claimant" in _text(render_form("N240", data))


def test_long_details_flow_onto_new_pages() -> None:
    data = _complete(DocumentType.n1)
    data["claim_details"] = "The defendant failed to pay. " * 600
    reader = PdfReader(io.BytesIO(render_form(DocumentType.n1, data)))
    assert len(reader.pages) > 1


def test_missing_fields_are_reported() -> None:
    data = _complete(DocumentType.et1)
    data.pop("respondent_name")
    data["claim_details"] = "   "
    with pytest.raises(BadRequestError) as exc_info:
        render_form(DocumentType.et1, data)
    assert exc_info.value.code == ErrorCodes.VALIDATION_ERROR
    fields = {item["field"] for item in exc_info.value.details}
    assert fields == {"respondent_name", "claim_details"}


def test_unsupported_form() -> None:
    with pytest.raises(UnsupportedFormError) as exc_info:
        render_form("N999", {})
    assert exc_info.value.code == ErrorCodes.UNSUPPORTED_FORM


def test_uploaded_types_are_not_renderable() -> None:
    with pytest.raises(UnsupportedFormError):
        render_form(DocumentType.other, {})


def test_missing_fields_for_complete_data() -> None:
    assert missing_fields(DocumentType.n240, _complete(DocumentType.n240)) == []


class TestWrapText:
    def test_wraps_on_word_boundaries(self):
        assert wrap_text("one two three four", 9) == ["one two", "three", "four"]

    def test_long_word_keeps_its_own_line(self):
        assert wrap_text("a supercalifragilistic b", 5) == ["a", "supercalifragilistic", "b"]

    def test_empty_text(self):
        assert wrap_text("", 10) == []
