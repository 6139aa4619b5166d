"""Validation helpers for guest identities and chat message text."""

import re
from typing import Optional, Tuple

from models.errors import ValidationError

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
PLACE_MAX_LENGTH = 50

# Latin letters including accented Latin-1/Extended-A ranges, plus spaces.
_NAME_PATTERN = re.compile(r"^[a-zA-Z\s\u00C0-\u017F]+$")
_PLACE_PATTERN = re.compile(r"^[a-zA-Z\s\u00C0-\u017F]*$")

_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#x27;"),
    ("/", "&#x2F;"),
)


def sanitize_text(text: str) -> str:
    """Escape markup-significant characters so text is safe to render in a browser."""
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text.strip()


def validate_guest_identity(
    name: Optional[str],
    city: Optional[str] = None,
    country: Optional[str] = None,
) -> Tuple[str, Optional[str], Optional[str]]:
    """Return trimmed (name, city, country), raising ValidationError on bad input.

    Empty city/country values are normalised to None.
    """
    cleaned_name = (name or "").strip()
    if not cleaned_name:
        raise ValidationError("Name is required", details={"field": "name"})
    if not NAME_MIN_LENGTH <= len(cleaned_name) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
            details={"field": "name"},
        )
    if not _NAME_PATTERN.match(cleaned_name):
        raise ValidationError("Name can only contain letters and spaces", details={"field": "name"})

    return cleaned_name, _clean_place(city, "city"), _clean_place(country, "country")


def _clean_place(value: Optional[str], field: str) -> Optional[str]:
    cleaned = (value or "").strip()
    if not cleaned:
        return None
    if len(cleaned) > PLACE_MAX_LENGTH:
        raise ValidationError(
            f"{field.capitalize()} must not exceed {PLACE_MAX_LENGTH} characters",
            details={"field": field},
        )
    if not _PLACE_PATTERN.match(cleaned):
        raise ValidationError(f"{field.capitalize()} can only contain letters and spaces", details={"field": field})
    return cleaned


def clean_message_text(text: Optional[str], max_length: int) -> str:
    """Trim, bound and sanitise a chat message body."""
    if not isinstance(text, str):
        raise ValidationError("Message text is required", details={"field": "text"})
    trimmed = text.strip()
    if not trimmed:
        raise ValidationError("Message text is required", details={"field": "text"})
    if len(trimmed) > max_length:
        raise ValidationError(
            f"Message text must not exceed {max_length} characters",
            details={"field": "text", "max_length": max_length},
        )
    return sanitize_text(trimmed)
