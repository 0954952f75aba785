"""Claim form PDF rendering with reportlab."""

import io
from datetime import date
from typing import Any, Optional

from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

MARGIN = 50
VALUE_X = 200
BOTTOM = 50
FOOTER_Y = 30
BODY_SIZE = 11
LINE_HEIGHT = 15

_BLACK = Color(0, 0, 0)
_DARK = Color(0.1, 0.1, 0.1)
_BODY = Color(0.3, 0.3, 0.3)
_MUTED = Color(0.5, 0.5, 0.5)


def field_label(key: str) -> str:
    """'first_name' -> 'First Name'."""
    return " ".join(w.capitalize() for w in key.replace("_", " ").split())


def wrap_text(text: str, max_width: float, font: str = "Helvetica", size: int = BODY_SIZE) -> list[str]:
    """Greedy word wrap by rendered width."""
    lines: list[str] = []
    current = ""
    for word in str(text).split():
        candidate = f"{current} {word}" if current else word
        if current and stringWidth(candidate, font, size) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines or [""]


class _PageWriter:
    """Tracks the cursor and starts continuation pages when the bottom margin is reached."""

    def __init__(self, pdf: canvas.Canvas, footer: str):
        self.pdf = pdf
        self.footer = footer
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def text(self, x: float, text: str, font: str = "Helvetica", size: int = BODY_SIZE, color: Color = _BODY) -> None:
        self.pdf.setFont(font, size)
        self.pdf.setFillColor(color)
        self.pdf.drawString(x, self.y, text)

    def ensure_room(self, needed: float) -> None:
        if self.y - needed >= BOTTOM:
            return
        self.finish_page()
        self.pdf.showPage()
        self.y = self.height - MARGIN
        self.text(MARGIN, "(Continued)", color=_MUTED)
        self.y -= 30

    def finish_page(self) -> None:
        self.pdf.setFont("Helvetica", 9)
        self.pdf.setFillColor(_MUTED)
        self.pdf.drawString(MARGIN, FOOTER_Y, self.footer)


def render_claim_pdf(
    form_data: dict[str, Any],
    claim_info: Optional[dict[str, Any]] = None,
    *,
    generated_on: Optional[date] = None,
) -> bytes:
    """
    Render a one-or-more page A4 claim form: title, claim information,
    then each non-empty form field with its value wrapped beside the label.
    """
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle("Claim Form")
    footer = f"Generated on {(generated_on or date.today()).isoformat()} by Found Money"
    page = _PageWriter(pdf, footer)

    page.text(MARGIN, "CLAIM FORM", font="Helvetica-Bold", size=20, color=_BLACK)
    page.y -= 40

    page.text(MARGIN, "Claim Information", font="Helvetica-Bold", size=14, color=_BLACK)
    page.y -= 25
    info = claim_info or {}
    for detail in (
        f"Company: {info.get('company') or 'N/A'}",
        f"Settlement: {info.get('title') or 'N/A'}",
        f"Claim ID: {info.get('id') or 'N/A'}",
        f"Amount: {info.get('amount') or 'Unknown'}",
    ):
        page.text(MARGIN, detail, color=Color(0.2, 0.2, 0.2))
        page.y -= 20
    page.y -= 20

    page.text(MARGIN, "Personal Information", font="Helvetica-Bold", size=14, color=_BLACK)
    page.y -= 25

    max_width = page.width - 250
    for key, value in form_data.items():
        if value in (None, "", [], {}):
            continue
        lines = wrap_text(str(value), max_width)
        page.ensure_room(LINE_HEIGHT * len(lines))
        page.text(MARGIN, f"{field_label(key)}:", font="Helvetica-Bold", color=_DARK)
        for index, line in enumerate(lines):
            pdf.setFont("Helvetica", BODY_SIZE)
            pdf.setFillColor(_BODY)
            pdf.drawString(VALUE_X, page.y - index * LINE_HEIGHT, line)
        page.y -= 25 + (len(lines) - 1) * LINE_HEIGHT

    page.finish_page()
    pdf.save()
    return buffer.getvalue()
