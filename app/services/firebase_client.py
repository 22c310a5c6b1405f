"""
Firebase initialization and helpers
"""

from __future__ import annotations

import base64
import json
import logging
import os
from functools import lru_cache
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore

from app.core.config import settings

logger = logging.getLogger(__name__)

# Firestore collection names; every document in them carries an account_id field
ACCOUNTS_COLLECTION = "accounts"
GUESTS_COLLECTION = "guests"
# One marker per claimed invitation code, keyed "<account_id>:<code>"
GUEST_CODES_COLLECTION = "guest_codes"
PRIZES_COLLECTION = "prizes"
UPLOADED_FILES_COLLECTION = "uploaded_files"


def _load_credentials_info() -> dict[str, Any] | None:
    if settings.FIREBASE_CREDENTIALS_JSON:
        return json.loads(settings.FIREBASE_CREDENTIALS_JSON)
    if settings.FIREBASE_CREDENTIALS_B64:
        decoded = base64.b64decode(settings.FIREBASE_CREDENTIALS_B64).decode("utf-8")
        return json.loads(decoded)
    if settings.FIREBASE_CREDENTIALS_FILE and os.path.exists(settings.FIREBASE_CREDENTIALS_FILE):
        with open(settings.FIREBASE_CREDENTIALS_FILE, "r", encoding="utf-8") as f:
            return json.load(f)
    return None


@lru_cache(maxsize=1)
def get_firestore_client():
    """Initialize and return a cached Firestore client.

    Credentials come from one of FIREBASE_CREDENTIALS_JSON, FIREBASE_CREDENTIALS_B64
    or FIREBASE_CREDENTIALS_FILE. Raises when Firebase is disabled so a misconfigured
    deployment fails loudly instead of silently reading nothing.
    """
    if not settings.USE_FIREBASE:
        raise RuntimeError("Firestore requested but USE_FIREBASE is disabled")

    if not firebase_admin._apps:
        info = _load_credentials_info()
        if not info:
            raise RuntimeError("Firebase credentials not provided. Set FIREBASE_CREDENTIALS_FILE, FIREBASE_CREDENTIALS_JSON, or FIREBASE_CREDENTIALS_B64")

        cred = credentials.Certificate(info)
        firebase_admin.initialize_app(cred)
        logger.info(f"Firebase app initialized for project {info.get('project_id', '<unknown>')}")

    return firestore.client()
