"""
Guest lifecycle: registration, check-in, gifts, souvenirs and detail edits.

All state transitions go through here. Every write is a single scoped
conditional update in the repository; check-in overwrites and clears are
compare-and-set on the guest version and get one internal retry.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.core.errors import (
    ConcurrentModificationError,
    GuestbookError,
    OperationTimeoutError,
    ValidationError,
)
from app.schemas.commands import (
    CheckInCommand,
    ClearCheckInCommand,
    ClearGiftCommand,
    ClearSouvenirCommand,
    DetailsCommand,
    GiftCommand,
    GuestCommand,
    SouvenirCommand,
)
from app.schemas.guest import GuestCreate, GuestFilter, GuestImportRow, GuestRead, GuestStats, GuestUpdate, ImportResult
from app.services.notifications import ChangeNotifier, GuestChange, change_notifier
from app.services.repositories import Repositories
from app.utils.codes import generate_invitation_code, validate_id
from app.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 10
MAX_IMPORT_ERRORS = 10
RECENT_CHECK_INS_LIMIT = 10


def check_party_size(guest_count: int, limit: Optional[int]) -> None:
    """guest_count must be at least 1 and, when the guest has a limit, within it."""
    if guest_count < 1:
        raise ValidationError("Guest count must be at least 1", details={"guest_count": guest_count})
    if limit and guest_count > limit:
        raise ValidationError(
            f"Guest count {guest_count} exceeds the limit of {limit}",
            details={"guest_count": guest_count, "limit": limit},
        )


def check_non_negative(**counts: int) -> None:
    negative = {name: value for name, value in counts.items() if value < 0}
    if negative:
        raise ValidationError("Counts cannot be negative", details=negative)


class GuestLifecycleService:
    """State transitions for guests of one account at a time"""

    def __init__(self, repos: Repositories, notifier: Optional[ChangeNotifier] = None):
        self.repos = repos
        self.notifier = notifier or change_notifier

    # -------- internals --------

    def _emit(
        self,
        account_id: str,
        change_type: str,
        guest: Optional[GuestRead] = None,
        guest_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        payload = dict(data)
        if guest is not None:
            payload["guest"] = guest.model_dump(mode="json")
            guest_id = guest.id
        self.notifier.emit(GuestChange(
            account_id=account_id,
            type=change_type,
            guest_id=guest_id,
            data=payload,
        ))

    def _apply(self, account_id: str, guest_id: str, command: GuestCommand, **conditions: Any) -> GuestRead:
        return self.repos.guests.update_fields(account_id, guest_id, command.changes(datetime.utcnow()), **conditions)

    def _retry_once(
        self,
        account_id: str,
        guest: GuestRead,
        build: Callable[[GuestRead], Optional[GuestCommand]],
    ) -> GuestRead:
        """Compare-and-set on the observed version, re-reading and retrying once on conflict.

        ``build`` returns the command to apply for the observed state, or None when
        the guest is already in the target state.
        """
        for attempt in (1, 2):
            command = build(guest)
            if command is None:
                return guest
            try:
                return self._apply(account_id, guest.id, command, expected_version=guest.version)
            except ConcurrentModificationError:
                if attempt == 2:
                    raise
                logger.info(f"Version conflict on guest {guest.id} in account {account_id}, retrying")
                guest = self.repos.guests.find_by_id(account_id, guest.id)
        raise ConcurrentModificationError("Guest")

    def _unique_code(self, account_id: str) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_invitation_code()
            if not self.repos.guests.code_exists(account_id, code):
                return code
        raise ValidationError("Could not generate a unique invitation code")

    def prepare_guest_data(self, account_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Normalize raw guest fields into insertable values (phone, name, code)."""
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required")
        category = (data.get("category") or "").strip()
        if not category:
            raise ValidationError("Category is required")
        limit = data.get("limit")
        if limit is not None and limit < 0:
            raise ValidationError("Limit cannot be negative", details={"limit": limit})

        code = (data.get("code") or "").strip()
        if code:
            if self.repos.guests.code_exists(account_id, code):
                raise ValidationError("Invitation code already in use", details={"code": code})
        else:
            code = self._unique_code(account_id)

        return {
            "name": name,
            "phone": normalize_phone(data.get("phone")),
            "category": category,
            "info": (data.get("info") or "").strip(),
            "table_no": str(data.get("table_no") or "").strip(),
            "session": str(data.get("session") or "").strip(),
            "limit": limit,
            "code": code,
        }

    def insert_guest(
        self,
        account_id: str,
        values: Dict[str, Any],
        is_invited: bool,
        action: Optional[GuestCommand] = None,
    ) -> GuestRead:
        """Single insert of prepared values, optionally with an action's fields already applied."""
        row = dict(values, is_invited=is_invited)
        if action is not None:
            if isinstance(action, CheckInCommand):
                check_party_size(action.guest_count, row.get("limit"))
            row.update(action.changes(datetime.utcnow()))
        guest = self.repos.guests.insert(account_id, row)
        logger.info(f"Created {'invited' if is_invited else 'walk-in'} guest {guest.id} in account {account_id}")
        self._emit(account_id, "guest_created", guest)
        return guest

    # -------- registration and edits --------

    def register_guest(self, account_id: str, data: GuestCreate) -> GuestRead:
        values = self.prepare_guest_data(account_id, data.model_dump())
        return self.insert_guest(account_id, values, is_invited=True)

    def update_details(self, account_id: str, guest_id: str, update: GuestUpdate) -> GuestRead:
        validate_id(guest_id)
        fields = update.model_dump(exclude_unset=True)
        if not fields:
            return self.repos.guests.find_by_id(account_id, guest_id)

        if "name" in fields:
            if not (fields["name"] or "").strip():
                raise ValidationError("Name is required")
            fields["name"] = fields["name"].strip()
        if "phone" in fields:
            fields["phone"] = normalize_phone(fields["phone"])
        if "category" in fields:
            category = (fields["category"] or "").strip()
            allowed = self.repos.accounts.get(account_id).guest_categories
            if category not in allowed:
                raise ValidationError(
                    f"Category '{category}' is not defined for this account",
                    details={"allowed": allowed},
                )
            fields["category"] = category
        for key in ("info", "table_no", "session"):
            if key in fields:
                fields[key] = (fields[key] or "").strip()

        command = DetailsCommand(**fields)
        if "limit" in fields:
            # A new limit must still cover the party already checked in
            def build(current: GuestRead) -> GuestCommand:
                if current.guest_count is not None:
                    check_party_size(current.guest_count, fields["limit"])
                return command

            guest = self._retry_once(account_id, self.repos.guests.find_by_id(account_id, guest_id), build)
        else:
            guest = self._apply(account_id, guest_id, command)
        logger.info(f"Updated details of guest {guest_id} in account {account_id}")
        self._emit(account_id, "guest_updated", guest)
        return guest

    def delete_guest(self, account_id: str, guest_id: str) -> None:
        validate_id(guest_id)
        self.repos.guests.delete(account_id, guest_id)
        logger.info(f"Deleted guest {guest_id} from account {account_id}")
        self._emit(account_id, "guest_deleted", guest_id=guest_id)

    def delete_all_guests(self, account_id: str) -> int:
        deleted = self.repos.guests.delete_all(account_id)
        logger.info(f"Deleted all {deleted} guest(s) from account {account_id}")
        self._emit(account_id, "guests_cleared", deleted=deleted)
        return deleted

    # -------- reads --------

    def get_guest(self, account_id: str, guest_id: str) -> GuestRead:
        validate_id(guest_id)
        return self.repos.guests.find_by_id(account_id, guest_id)

    def list_guests(self, account_id: str, flt: Optional[GuestFilter] = None) -> List[GuestRead]:
        return self.repos.guests.find(account_id, flt or GuestFilter())

    def list_checked_in(self, account_id: str, search: Optional[str] = None) -> List[GuestRead]:
        flt = GuestFilter(checked_in=True, search=search or None, limit=settings.DOORPRIZE_POOL_LIMIT)
        return self.repos.guests.find(account_id, flt)

    def list_recent_check_ins(self, account_id: str, minutes: int = 5) -> List[GuestRead]:
        """Newest check-ins of the last ``minutes``, or the single latest one when the window is empty."""
        if minutes < 0:
            raise ValidationError("Timeframe cannot be negative", details={"minutes": minutes})
        since = datetime.utcnow() - timedelta(minutes=minutes)
        recent = self.repos.guests.find(
            account_id, GuestFilter(checked_in=True, checked_in_since=since, limit=RECENT_CHECK_INS_LIMIT)
        )
        if recent:
            return recent
        return self.repos.guests.find(account_id, GuestFilter(checked_in=True, limit=1))

    def stats(self, account_id: str) -> GuestStats:
        return self.repos.guests.stats(account_id)

    def name_exists(self, account_id: str, name: str) -> bool:
        if not name or not name.strip():
            return False
        return self.repos.guests.name_exists(account_id, name)

    # -------- check-in axis --------

    def check_in(self, account_id: str, guest_id: str, guest_count: int = 1, confirm: bool = False) -> GuestRead:
        """Check a guest in.

        Unconfirmed, the write only lands if the guest is not yet checked in and
        ``CheckInConfirmationRequired`` is raised otherwise. Confirmed, the
        existing check-in is overwritten.
        """
        validate_id(guest_id)
        check_party_size(guest_count, None)
        guest = self.repos.guests.find_by_id(account_id, guest_id)
        check_party_size(guest_count, guest.limit)

        if not confirm:
            updated = self._apply(account_id, guest_id, CheckInCommand(guest_count=guest_count), require_unchecked=True)
        else:
            def build(current: GuestRead) -> GuestCommand:
                check_party_size(guest_count, current.limit)
                return CheckInCommand(guest_count=guest_count)

            updated = self._retry_once(account_id, guest, build)

        logger.info(f"Checked in guest {guest_id} in account {account_id} with {guest_count} attendee(s)")
        self._emit(account_id, "checked_in", updated)
        return updated

    def clear_check_in(self, account_id: str, guest_id: str) -> GuestRead:
        validate_id(guest_id)
        guest = self.repos.guests.find_by_id(account_id, guest_id)
        was_checked_in = guest.checked_in

        def build(current: GuestRead) -> Optional[GuestCommand]:
            return ClearCheckInCommand() if current.checked_in else None

        updated = self._retry_once(account_id, guest, build)
        if was_checked_in:
            logger.info(f"Cleared check-in of guest {guest_id} in account {account_id}")
            self._emit(account_id, "checkin_cleared", updated)
        return updated

    # -------- gift and souvenir axis --------

    def assign_gift(
        self,
        account_id: str,
        guest_id: str,
        kado_count: int = 0,
        angpao_count: int = 0,
        note: str = "",
    ) -> GuestRead:
        validate_id(guest_id)
        check_non_negative(kado_count=kado_count, angpao_count=angpao_count)
        if kado_count == 0 and angpao_count == 0:
            return self.clear_gift(account_id, guest_id)

        command = GiftCommand(kado_count=kado_count, angpao_count=angpao_count, note=(note or "").strip())
        guest = self._apply(account_id, guest_id, command)
        logger.info(f"Recorded gift for guest {guest_id} in account {account_id}: kado={kado_count} angpao={angpao_count}")
        self._emit(account_id, "gift_updated", guest)
        return guest

    def clear_gift(self, account_id: str, guest_id: str) -> GuestRead:
        validate_id(guest_id)
        guest = self._apply(account_id, guest_id, ClearGiftCommand())
        logger.info(f"Cleared gift of guest {guest_id} in account {account_id}")
        self._emit(account_id, "gift_updated", guest)
        return guest

    def assign_souvenir(self, account_id: str, guest_id: str, count: int) -> GuestRead:
        validate_id(guest_id)
        check_non_negative(count=count)
        guest = self._apply(account_id, guest_id, SouvenirCommand(count=count))
        logger.info(f"Recorded {count} souvenir(s) for guest {guest_id} in account {account_id}")
        self._emit(account_id, "souvenir_updated", guest)
        return guest

    def clear_souvenir(self, account_id: str, guest_id: str) -> GuestRead:
        validate_id(guest_id)
        guest = self._apply(account_id, guest_id, ClearSouvenirCommand())
        logger.info(f"Cleared souvenirs of guest {guest_id} in account {account_id}")
        self._emit(account_id, "souvenir_updated", guest)
        return guest

    def apply_action(self, account_id: str, guest_id: str, action: GuestCommand) -> GuestRead:
        """Route a walk-in action to the matching transition."""
        if isinstance(action, CheckInCommand):
            return self.check_in(account_id, guest_id, action.guest_count, confirm=False)
        if isinstance(action, GiftCommand):
            return self.assign_gift(account_id, guest_id, action.kado_count, action.angpao_count, action.note)
        if isinstance(action, SouvenirCommand):
            return self.assign_souvenir(account_id, guest_id, action.count)
        raise ValidationError(f"Unsupported action '{action.kind}'")

    # -------- invitation import --------

    def import_invited_guests(self, account_id: str, rows: List[GuestImportRow]) -> ImportResult:
        """Insert each row on its own; a bad row is reported and the rest carry on."""
        imported = 0
        errors: List[str] = []
        for index, row in enumerate(rows, start=1):
            try:
                values = self.prepare_guest_data(account_id, row.model_dump())
                self.repos.guests.insert(account_id, dict(values, is_invited=True))
                imported += 1
            except OperationTimeoutError:
                raise
            except GuestbookError as e:
                errors.append(f"Row {index}: {e.message}")

        failed = len(rows) - imported
        logger.info(f"Imported {imported}/{len(rows)} guests into account {account_id}")
        if imported:
            self._emit(account_id, "guests_imported", imported=imported)
        return ImportResult(total=len(rows), imported=imported, failed=failed, errors=errors[:MAX_IMPORT_ERRORS])
