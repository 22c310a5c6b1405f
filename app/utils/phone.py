"""
Phone number normalization to the canonical international format
"""

import re
from typing import Optional

from app.core.config import settings
from app.core.errors import ValidationError

# National-number prefixes accepted for 10+ digit numbers (mobile carriers and landline areas)
VALID_PREFIXES = (
    "81", "82", "83", "84", "85", "86", "87", "88", "89",
    "21", "22", "23", "24", "26", "27", "28", "29",
)

_STRIP = re.compile(r"[^\d+]")


def format_phone(phone: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """Return the number as ``<cc><national>`` digits, or None when it is not a valid number.

    ``0812...``, ``+62812...``, ``62812...`` and ``812...`` all normalize to ``62812...``.
    """
    if not phone:
        return None
    cc = country_code or settings.PHONE_COUNTRY_CODE

    cleaned = _STRIP.sub("", phone)
    if cleaned.startswith("+" + cc):
        cleaned = cleaned[1:]
    cleaned = cleaned.replace("+", "")
    if not cleaned:
        return None

    if cleaned.startswith(cc):
        pass
    elif cleaned.startswith("0"):
        cleaned = cc + cleaned[1:]
    else:
        cleaned = cc + cleaned

    national = cleaned[len(cc):]
    if len(national) < 8 or len(national) > 12:
        return None
    if len(national) >= 10 and not national.startswith(VALID_PREFIXES):
        return None
    return cleaned


def normalize_phone(phone: Optional[str]) -> str:
    """Normalize an optional phone; empty input gives "" and malformed input raises."""
    if phone is None or not phone.strip():
        return ""
    formatted = format_phone(phone)
    if formatted is None:
        raise ValidationError(
            "Invalid phone number format",
            details={"phone": phone, "hint": "e.g. 08123456789 or +628123456789"},
        )
    return formatted
