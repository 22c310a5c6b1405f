"""
Account provisioning, edits and cascade deletion
"""

import logging
import os
import shutil
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.errors import ValidationError
from app.schemas.account import AccountCreate, AccountRead, AccountUpdate
from app.services.repositories import CascadeResult, Repositories

logger = logging.getLogger(__name__)


def clean_categories(categories: Optional[List[str]]) -> List[str]:
    """Trimmed, non-empty, case-insensitively unique, in the given order."""
    cleaned = [c.strip() for c in (categories or []) if c and c.strip()]
    if not cleaned:
        raise ValidationError("At least one guest category is required")
    seen = set()
    for category in cleaned:
        key = category.lower()
        if key in seen:
            raise ValidationError(f"Duplicate guest category '{category}'")
        seen.add(key)
    return cleaned


class AccountService:
    """Tenant lifecycle; the account id is the isolation boundary for everything else"""

    def __init__(self, repos: Repositories):
        self.repos = repos

    def create_account(self, data: AccountCreate) -> AccountRead:
        values = data.model_dump()
        values["title"] = values["title"].strip()
        if not values["title"]:
            raise ValidationError("Title is required")
        values["guest_categories"] = clean_categories(
            data.guest_categories if data.guest_categories is not None else settings.DEFAULT_GUEST_CATEGORIES
        )
        account = self.repos.accounts.create(values)
        logger.info(f"Provisioned account {account.id} ({account.title})")
        return account

    def get(self, account_id: str) -> AccountRead:
        return self.repos.accounts.get(account_id)

    def update(self, account_id: str, update: AccountUpdate) -> AccountRead:
        fields: Dict[str, Any] = update.model_dump(exclude_unset=True)
        if "title" in fields:
            fields["title"] = (fields["title"] or "").strip()
            if not fields["title"]:
                raise ValidationError("Title is required")
        if "guest_categories" in fields:
            categories = clean_categories(fields["guest_categories"])
            in_use = self.repos.guests.categories_in_use(account_id)
            removed = sorted(in_use - set(categories))
            if removed:
                raise ValidationError(
                    "Cannot remove categories that are still assigned to guests",
                    details={"categories": removed},
                )
            fields["guest_categories"] = categories
        for key in ("location", "welcome_text", "youtube_url"):
            if key in fields and fields[key] is None:
                fields[key] = ""

        if not fields:
            return self.repos.accounts.get(account_id)
        account = self.repos.accounts.update(account_id, fields)
        logger.info(f"Updated account {account_id}: {sorted(fields)}")
        return account

    def delete_account(self, account_id: str) -> CascadeResult:
        """Remove the account with every guest, prize and uploaded file it owns."""
        self.repos.accounts.get(account_id)
        result = self.repos.guests.delete_cascade(account_id)

        for path in result.file_paths:
            try:
                if os.path.exists(path):
                    os.remove(path)
            except OSError as e:
                logger.warning(f"Could not remove uploaded file {path}: {e}")
        account_dir = os.path.join(settings.UPLOAD_DIR, account_id)
        if os.path.isdir(account_dir):
            shutil.rmtree(account_dir, ignore_errors=True)

        self.repos.accounts.delete(account_id)
        logger.info(
            f"Deleted account {account_id}: {result.guests} guests, "
            f"{result.prizes} prizes, {result.files} files"
        )
        return result
