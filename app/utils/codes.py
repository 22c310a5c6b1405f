"""
Identifier and invitation code helpers
"""

import re
import secrets
import uuid

from app.core.config import settings
from app.core.errors import ValidationError

# No 0/O or 1/I so codes read cleanly off a printed card
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def new_id() -> str:
    return uuid.uuid4().hex


def validate_id(value: str, resource: str = "Guest") -> str:
    if not isinstance(value, str) or not _ID_PATTERN.match(value):
        raise ValidationError(f"Malformed {resource.lower()} id", details={"id": value})
    return value


def generate_invitation_code() -> str:
    body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(settings.INVITATION_CODE_LENGTH))
    return f"{settings.INVITATION_CODE_PREFIX}{body}"
