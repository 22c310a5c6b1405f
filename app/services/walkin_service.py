"""
Walk-in guests: de-duplicate against the account's list, then confirm-and-create
"""

import logging

from app.core.errors import ValidationError
from app.schemas.commands import GiftCommand
from app.schemas.walkin import WalkInCandidate, WalkInOutcome, WalkInSubmission
from app.services.guest_service import GuestLifecycleService
from app.utils.locks import KeyedLock, walk_in_locks
from app.utils.phone import normalize_phone

logger = logging.getLogger(__name__)


class WalkInService:
    """Front-desk flow for people who show up without being found on the list"""

    def __init__(self, lifecycle: GuestLifecycleService, locks: KeyedLock = walk_in_locks):
        self.lifecycle = lifecycle
        self.repos = lifecycle.repos
        self.locks = locks

    @staticmethod
    def _check_action(action) -> None:
        if isinstance(action, GiftCommand) and action.kado_count == 0 and action.angpao_count == 0:
            raise ValidationError("A walk-in gift needs at least one kado or angpao")

    def _resolve_category(self, account_id: str, category) -> str:
        """The submitted category if the account defines it, else the account's first category."""
        categories = self.repos.accounts.get(account_id).guest_categories
        if not categories:
            raise ValidationError("Account has no guest categories")
        if not category:
            return categories[0]
        if category not in categories:
            raise ValidationError(
                f"Category '{category}' is not defined for this account",
                details={"allowed": categories},
            )
        return category

    def find_or_stage(self, account_id: str, submission: WalkInSubmission) -> WalkInOutcome:
        """Apply the action to a matching guest, or stage a candidate without writing anything."""
        self._check_action(submission.action)
        name = submission.name.strip()
        if not name:
            raise ValidationError("Name is required")
        phone = normalize_phone(submission.phone)

        match = self.repos.guests.find_match(account_id, phone, name)
        if match is not None:
            guest = self.lifecycle.apply_action(account_id, match.id, submission.action)
            logger.info(f"Walk-in submission matched existing guest {match.id} in account {account_id}")
            return WalkInOutcome(
                status="updated_existing",
                message=f"Existing guest '{guest.name}' updated",
                guest=guest,
            )

        values = self.lifecycle.prepare_guest_data(account_id, {
            "name": name,
            "phone": phone,
            "category": self._resolve_category(account_id, (submission.category or "").strip()),
            "info": submission.info,
            "table_no": submission.table_no,
            "session": submission.session,
            "limit": submission.limit,
            "code": submission.code,
        })
        candidate = WalkInCandidate(action=submission.action, **values)
        return WalkInOutcome(
            status="needs_confirmation",
            message="Guest not found. Confirm to register as a walk-in guest.",
            candidate=candidate,
        )

    def confirm_create(self, account_id: str, candidate: WalkInCandidate) -> WalkInOutcome:
        """Create the staged walk-in, unless a matching guest appeared in the meantime."""
        self._check_action(candidate.action)
        name = candidate.name.strip()
        if not name:
            raise ValidationError("Name is required")
        phone = normalize_phone(candidate.phone)

        keys = [("name", account_id, name.lower())]
        if phone:
            keys.append(("phone", account_id, phone))

        with self.locks.hold(keys):
            match = self.repos.guests.find_match(account_id, phone, name)
            if match is not None:
                guest = self.lifecycle.apply_action(account_id, match.id, candidate.action)
                logger.info(f"Walk-in confirm for account {account_id} resolved to existing guest {match.id}")
                return WalkInOutcome(
                    status="updated_existing",
                    message=f"Existing guest '{guest.name}' updated",
                    guest=guest,
                )

            code = candidate.code
            if code and self.repos.guests.code_exists(account_id, code):
                logger.info(f"Staged code {code} was taken in account {account_id}, generating a new one")
                code = None
            values = self.lifecycle.prepare_guest_data(account_id, {
                "name": name,
                "phone": phone,
                "category": candidate.category,
                "info": candidate.info,
                "table_no": candidate.table_no,
                "session": candidate.session,
                "limit": candidate.limit,
                "code": code,
            })
            guest = self.lifecycle.insert_guest(account_id, values, is_invited=False, action=candidate.action)

        return WalkInOutcome(status="created", message=f"Walk-in guest '{guest.name}' registered", guest=guest)
