"""Input sanitization for user-supplied form data."""

from typing import Any

MAX_STRING_LENGTH = 10000


def sanitize_string(value: Any) -> Any:
    """Strip angle brackets, trim, and cap length. Non-strings pass through."""
    if not isinstance(value, str):
        return value
    return value.replace("<", "").replace(">", "").strip()[:MAX_STRING_LENGTH]


def sanitize_form_data(data: Any) -> Any:
    """Recursively sanitize strings in dicts and lists."""
    if isinstance(data, dict):
        return {key: sanitize_form_data(value) for key, value in data.items()}
    if isinstance(data, list):
        return [sanitize_form_data(v) for v in data]
    return sanitize_string(data)
