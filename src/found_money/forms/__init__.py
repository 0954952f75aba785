"""Claim forms: auto-fill, PDF rendering, document storage."""

from .autofill import AutoFillResult, FormField, FormFiller, auto_fill
from .documents import DocumentStore
from .pdf import render_claim_pdf
from .sanitize import sanitize_form_data, sanitize_string

__all__ = [
    "AutoFillResult",
    "DocumentStore",
    "FormField",
    "FormFiller",
    "auto_fill",
    "render_claim_pdf",
    "sanitize_form_data",
    "sanitize_string",
]
