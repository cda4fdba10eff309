"""Court form rendering with the reportlab canvas.

Each form is laid out by absolute coordinates on an A4 page, top-down from a
running ``y``. Content that would run past the bottom margin continues on a
new page.
"""

from __future__ import annotations

from io import BytesIO
from typing import Any, Callable

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from casewatch.core.errors import BadRequestError
from casewatch.core.messages import ErrorCodes
from casewatch.models.document import DocumentType

FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
PAGE_TOP = 800
BOTTOM_MARGIN = 60
LINE_STEP = 15
LEFT = 50

REQUIRED_FIELDS: dict[DocumentType, tuple[str, ...]] = {
    DocumentType.n240: (
        "court_name",
        "case_number",
        "claimant_name",
        "defendant_name",
        "request_details",
        "signature_name",
        "signature_date",
    ),
    DocumentType.n1: (
        "court_name",
        "claimant_name",
        "claimant_address",
        "defendant_name",
        "defendant_address",
        "claim_amount",
        "claim_details",
        "signature_name",
        "signature_date",
    ),
    DocumentType.et1: (
        "claimant_name",
        "claimant_address",
        "respondent_name",
        "respondent_address",
        "employment_details",
        "claim_details",
        "signature_name",
        "signature_date",
    ),
}


class UnsupportedFormError(BadRequestError):
    code = ErrorCodes.UNSUPPORTED_FORM


def wrap_text(text: str, width: int) -> list[str]:
    """Greedy word wrap by character count; overlong words keep a line of their own."""
    lines: list[str] = []
    current = ""
    for word in str(text).split():
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= width:
            current = f"{current} {word}"
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


class FormWriter:
    def __init__(self, title: str) -> None:
        self.buffer = BytesIO()
        self.canvas = canvas.Canvas(self.buffer, pagesize=A4)
        self.canvas.setTitle(title)
        self.canvas.setFont(BOLD_FONT, 16)
        self.canvas.drawString(LEFT, PAGE_TOP, title)
        self.y = 750.0

    def _ensure_room(self) -> None:
        if self.y < BOTTOM_MARGIN:
            self.canvas.showPage()
            self.y = PAGE_TOP

    def draw(self, text: str, x: float, *, size: int = 12, bold: bool = False) -> None:
        self._ensure_room()
        self.canvas.setFont(BOLD_FONT if bold else FONT, size)
        self.canvas.drawString(x, self.y, str(text))

    def field(self, label: str, value: str, value_x: float) -> None:
        self.draw(label, LEFT, bold=True)
        self.draw(value, value_x)

    def paragraph(self, text: str, width: int, x: float = LEFT, size: int = 10) -> int:
        lines = wrap_text(text, width)
        for line in lines:
            self.draw(line, x, size=size)
            self.y -= LINE_STEP
        return len(lines)

    def signature(self, name: str, date: str) -> None:
        self.draw("Signed:", LEFT, bold=True)
        self.draw(name, 110)
        self.draw("Date:", 300, bold=True)
        self.draw(date, 340)

    def skip(self, amount: float) -> None:
        self.y -= amount

    def finish(self) -> bytes:
        self.canvas.showPage()
        self.canvas.save()
        return self.buffer.getvalue()


def _render_n240(data: dict[str, Any]) -> bytes:
    form = FormWriter("Form N240 - Application Notice")
    form.field("Court:", data["court_name"], 120)
    form.skip(30)
    form.field("Case Number:", data["case_number"], 150)
    form.skip(30)
    form.field("Claimant:", data["claimant_name"], 120)
    form.skip(30)
    form.field("Defendant:", data["defendant_name"], 130)
    form.skip(60)
    form.draw("Application Details:", LEFT, bold=True)
    form.skip(30)
    form.paragraph(data["request_details"], 70)
    form.skip(50)
    form.signature(data["signature_name"], data["signature_date"])
    return form.finish()


def _render_n1(data: dict[str, Any]) -> bytes:
    form = FormWriter("Form N1 - Claim Form")
    form.field("Court:", data["court_name"], 120)
    form.skip(30)
    form.field("Claimant:", data["claimant_name"], 120)
    form.skip(20)
    form.paragraph(data["claimant_address"], 60, x=120)
    form.skip(10)
    form.field("Defendant:", data["defendant_name"], 130)
    form.skip(20)
    form.paragraph(data["defendant_address"], 60, x=130)
    form.skip(20)
    form.field("Claim Amount:", f"£{data['claim_amount']}", 160)
    form.skip(30)
    form.draw("Details of Claim:", LEFT, bold=True)
    form.skip(20)
    form.paragraph(data["claim_details"], 70)
    form.skip(30)
    form.signature(data["signature_name"], data["signature_date"])
    return form.finish()


def _render_et1(data: dict[str, Any]) -> bytes:
    form = FormWriter("Form ET1 - Employment Tribunal Claim")
    for heading, name_key, address_key in (
        ("Claimant Details:", "claimant_name", "claimant_address"),
        ("Respondent Details:", "respondent_name", "respondent_address"),
    ):
        form.draw(heading, LEFT, bold=True)
        form.skip(20)
        form.draw(data[name_key], LEFT)
        form.skip(15)
        form.paragraph(data[address_key], 60)
        form.skip(20)
    form.draw("Employment Details:", LEFT, bold=True)
    form.skip(15)
    form.paragraph(data["employment_details"], 70)
    form.skip(20)
    form.draw("Details of Claim:", LEFT, bold=True)
    form.skip(15)
    form.paragraph(data["claim_details"], 70)
    form.skip(30)
    form.signature(data["signature_name"], data["signature_date"])
    return form.finish()


RENDERERS: dict[DocumentType, Callable[[dict[str, Any]], bytes]] = {
    DocumentType.n240: _render_n240,
    DocumentType.n1: _render_n1,
    DocumentType.et1: _render_et1,
}


def missing_fields(form_type: DocumentType, data: dict[str, Any]) -> list[str]:
    return [
        name
        for name in REQUIRED_FIELDS.get(form_type, ())
        if data.get(name) is None or not str(data.get(name)).strip()
    ]


def render_form(form_type: DocumentType | str, data: dict[str, Any]) -> bytes:
    try:
        form_type = DocumentType(form_type)
    except ValueError:
        raise UnsupportedFormError(f"Unsupported form type: {form_type}")
    renderer = RENDERERS.get(form_type)
    if renderer is None:
        raise UnsupportedFormError(f"Unsupported form type: {form_type.value}")

    missing = missing_fields(form_type, data)
    if missing:
        raise BadRequestError(
            f"Missing required fields for {form_type.value}: {', '.join(missing)}",
            code=ErrorCodes.VALIDATION_ERROR,
            details=[{"field": name, "message": "Field required"} for name in missing],
        )
    return renderer(data)
