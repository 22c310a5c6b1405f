"""
Repository layer abstracting storage (SQLAlchemy vs Firebase Firestore).

Every method takes the caller's account id and conjoins it with the query;
nothing here reads an account id from a filter or a payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import case, delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    CheckInConfirmationRequired,
    ConcurrentModificationError,
    CrossAccountAccessError,
    NotFoundError,
    OperationTimeoutError,
    PrizeCompletedError,
    ValidationError,
)
from app.models import Account, Guest, Prize, UploadedFile, PRIZE_ACTIVE, PRIZE_COMPLETED
from app.schemas.account import AccountRead
from app.schemas.guest import GuestFilter, GuestRead, GuestStats
from app.schemas.prize import PrizeRead, PrizeStats
from app.utils.deadline import Deadline

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("app.security")

# Fields a partial update may never write
PROTECTED_GUEST_FIELDS = frozenset({"id", "account_id", "version", "created_at"})


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


def reject_cross_account(resource: str, record_id: str, owner_account_id: str, caller_account_id: str) -> CrossAccountAccessError:
    """Log a cross-tenant lookup and build the error callers see as a plain not-found."""
    security_logger.warning(
        f"Cross-account access blocked: {resource.lower()}={record_id} "
        f"owner={owner_account_id} caller={caller_account_id}"
    )
    return CrossAccountAccessError(resource, record_id, owner_account_id, caller_account_id)


def check_protected_fields(fields: Dict[str, Any]) -> None:
    forbidden = PROTECTED_GUEST_FIELDS & set(fields)
    if forbidden:
        raise ValidationError(
            "Guest update may not change protected fields",
            details={"fields": sorted(forbidden)},
        )


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Firestore hands timestamps back timezone-aware; everything else here is naive UTC
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def escape_like(term: str) -> str:
    """Make a search term match literally inside a LIKE pattern."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def matches_filter(guest: GuestRead, flt: GuestFilter) -> bool:
    """In-memory equivalent of the SQL filter, used by the Firestore backend."""
    if flt.category is not None and guest.category != flt.category:
        return False
    if flt.is_invited is not None and guest.is_invited != flt.is_invited:
        return False
    if flt.checked_in is not None and guest.checked_in != flt.checked_in:
        return False
    if flt.table_no is not None and guest.table_no != flt.table_no:
        return False
    if flt.checked_in_since is not None:
        checked = naive_utc(guest.check_in_date)
        if checked is None or checked < flt.checked_in_since:
            return False
    if flt.search:
        needle = flt.search.lower()
        haystacks = (guest.name or "", guest.phone or "", guest.code or "")
        if not any(needle in h.lower() for h in haystacks):
            return False
    return True


@dataclass
class CascadeResult:
    guests: int = 0
    prizes: int = 0
    files: int = 0
    file_paths: List[str] = field(default_factory=list)


class SqlRepo:
    """Shared session and deadline handling for the SQLAlchemy repositories"""

    def __init__(self, db: Session, deadline: Optional[Deadline] = None):
        self.db = db
        self.deadline = deadline or Deadline()

    def _check(self, operation: str) -> None:
        try:
            self.deadline.check(operation)
        except OperationTimeoutError:
            self.db.rollback()
            raise

    def _commit(self, operation: str) -> None:
        # Past the deadline nothing is committed, so a timeout never leaves a partial write behind
        self._check(operation)
        self.db.commit()


# -------- Account repository --------

class AccountRepo(SqlRepo):
    def get(self, account_id: str) -> AccountRead:
        self._check("get account")
        account = self.db.query(Account).filter(Account.id == account_id).first()
        if not account:
            raise NotFoundError("Account")
        return AccountRead.model_validate(account)

    def exists(self, account_id: str) -> bool:
        self._check("get account")
        return self.db.query(Account.id).filter(Account.id == account_id).first() is not None

    def create(self, data: Dict[str, Any]) -> AccountRead:
        self._check("create account")
        account = Account(**data)
        self.db.add(account)
        self._commit("create account")
        self.db.refresh(account)
        return AccountRead.model_validate(account)

    def update(self, account_id: str, fields: Dict[str, Any]) -> AccountRead:
        if "id" in fields:
            raise ValidationError("Account id cannot be changed")
        self._check("update account")
        values = dict(fields, updated_at=datetime.utcnow())
        result = self.db.execute(
            update(Account).where(Account.id == account_id).values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise NotFoundError("Account")
        self._commit("update account")
        return self.get(account_id)

    def delete(self, account_id: str) -> None:
        self._check("delete account")
        result = self.db.execute(delete(Account).where(Account.id == account_id))
        if result.rowcount == 0:
            self.db.rollback()
            raise NotFoundError("Account")
        self._commit("delete account")


# -------- Guest repository --------

class GuestRepo(SqlRepo):
    def _scoped(self, account_id: str):
        return self.db.query(Guest).filter(Guest.account_id == account_id)

    def find(self, account_id: str, flt: Optional[GuestFilter] = None) -> List[GuestRead]:
        flt = flt or GuestFilter()
        self._check("find guests")
        query = self._scoped(account_id)

        if flt.search:
            pattern = f"%{escape_like(flt.search)}%"
            query = query.filter(or_(
                Guest.name.ilike(pattern, escape="\\"),
                Guest.phone.ilike(pattern, escape="\\"),
                Guest.code.ilike(pattern, escape="\\"),
            ))
        if flt.category is not None:
            query = query.filter(Guest.category == flt.category)
        if flt.is_invited is not None:
            query = query.filter(Guest.is_invited == flt.is_invited)
        if flt.table_no is not None:
            query = query.filter(Guest.table_no == flt.table_no)
        if flt.checked_in_since is not None:
            query = query.filter(Guest.check_in_date >= flt.checked_in_since)
        if flt.checked_in is True:
            query = query.filter(Guest.check_in_date.isnot(None)).order_by(Guest.check_in_date.desc(), Guest.name_lower)
        elif flt.checked_in is False:
            query = query.filter(Guest.check_in_date.is_(None)).order_by(Guest.name_lower)
        else:
            query = query.order_by(Guest.name_lower)
        if flt.limit:
            query = query.limit(flt.limit)

        return [GuestRead.model_validate(g) for g in query.all()]

    def find_by_id(self, account_id: str, guest_id: str) -> GuestRead:
        self._check("get guest")
        # Looked up by id alone so a foreign-account hit can be told apart and logged
        guest = self.db.query(Guest).filter(Guest.id == guest_id).first()
        if not guest:
            raise NotFoundError("Guest")
        if guest.account_id != account_id:
            raise reject_cross_account("Guest", guest_id, guest.account_id, account_id)
        return GuestRead.model_validate(guest)

    def find_match(self, account_id: str, phone: str, name: str) -> Optional[GuestRead]:
        """Dedup lookup: same normalized phone, or same trimmed case-insensitive name."""
        self._check("match guest")
        conditions = [Guest.name_lower == name.strip().lower()]
        if phone:
            conditions.append(Guest.phone == phone)
        # Phone matches win over name matches
        candidates = self._scoped(account_id).filter(or_(*conditions)).order_by(Guest.created_at).all()
        if not candidates:
            return None
        by_phone = [g for g in candidates if phone and g.phone == phone]
        return GuestRead.model_validate(by_phone[0] if by_phone else candidates[0])

    def code_exists(self, account_id: str, code: str) -> bool:
        self._check("check code")
        return self._scoped(account_id).filter(Guest.code == code).first() is not None

    def name_exists(self, account_id: str, name: str) -> bool:
        self._check("check name")
        return self._scoped(account_id).filter(Guest.name_lower == name.strip().lower()).first() is not None

    def categories_in_use(self, account_id: str) -> Set[str]:
        self._check("list categories")
        rows = self.db.query(Guest.category).filter(Guest.account_id == account_id).distinct().all()
        return {row[0] for row in rows}

    def insert(self, account_id: str, data: Dict[str, Any]) -> GuestRead:
        check_protected_fields(data)
        self._check("insert guest")
        account = self.db.query(Account).filter(Account.id == account_id).first()
        if not account:
            raise NotFoundError("Account")
        if data.get("category") not in (account.guest_categories or []):
            raise ValidationError(
                f"Category '{data.get('category')}' is not defined for this account",
                details={"allowed": account.guest_categories},
            )

        values = dict(data)
        values["name_lower"] = values["name"].strip().lower()
        guest = Guest(account_id=account_id, **values)
        self.db.add(guest)
        try:
            self._commit("insert guest")
        except IntegrityError:
            self.db.rollback()
            raise ValidationError("Invitation code already in use", details={"code": data.get("code")})
        self.db.refresh(guest)
        logger.info(f"Inserted guest {guest.id} into account {account_id}")
        return GuestRead.model_validate(guest)

    def update_fields(
        self,
        account_id: str,
        guest_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
        require_unchecked: bool = False,
    ) -> GuestRead:
        """Atomic scoped partial update.

        ``expected_version`` turns it into a compare-and-set; ``require_unchecked``
        only writes while the guest has no check-in.
        """
        check_protected_fields(fields)
        self._check("update guest")

        stmt = update(Guest).where(Guest.id == guest_id, Guest.account_id == account_id)
        if expected_version is not None:
            stmt = stmt.where(Guest.version == expected_version)
        if require_unchecked:
            stmt = stmt.where(Guest.check_in_date.is_(None))
        values = dict(fields, version=Guest.version + 1, updated_at=datetime.utcnow())
        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))

        if result.rowcount == 0:
            self.db.rollback()
            current = self.find_by_id(account_id, guest_id)
            if require_unchecked and current.check_in_date is not None:
                raise CheckInConfirmationRequired(current)
            raise ConcurrentModificationError("Guest")

        self._commit("update guest")
        return self.find_by_id(account_id, guest_id)

    def delete(self, account_id: str, guest_id: str) -> None:
        self._check("delete guest")
        result = self.db.execute(delete(Guest).where(Guest.id == guest_id, Guest.account_id == account_id))
        if result.rowcount == 0:
            self.db.rollback()
            self.find_by_id(account_id, guest_id)
            raise NotFoundError("Guest")
        self._commit("delete guest")

    def delete_all(self, account_id: str) -> int:
        """Remove every guest of the account, leaving the account, prizes and uploads in place."""
        self._check("delete guests")
        deleted = self.db.execute(delete(Guest).where(Guest.account_id == account_id)).rowcount
        self._commit("delete guests")
        return deleted

    def delete_cascade(self, account_id: str) -> CascadeResult:
        """Remove every guest, prize and uploaded-file record of the account in one transaction."""
        self._check("delete account data")
        paths = [row[0] for row in self.db.query(UploadedFile.path).filter(UploadedFile.account_id == account_id).all()]
        guests = self.db.execute(delete(Guest).where(Guest.account_id == account_id)).rowcount
        prizes = self.db.execute(delete(Prize).where(Prize.account_id == account_id)).rowcount
        files = self.db.execute(delete(UploadedFile).where(UploadedFile.account_id == account_id)).rowcount
        self._commit("delete account data")
        return CascadeResult(guests=guests, prizes=prizes, files=files, file_paths=paths)

    def stats(self, account_id: str) -> GuestStats:
        self._check("guest stats")
        row = self.db.query(
            func.count(Guest.id),
            func.sum(case((Guest.is_invited.is_(True), 1), else_=0)),
            func.count(Guest.check_in_date),
            func.coalesce(func.sum(Guest.guest_count), 0),
            func.coalesce(func.sum(Guest.souvenir_count), 0),
            func.coalesce(func.sum(Guest.kado_count), 0),
            func.coalesce(func.sum(Guest.angpao_count), 0),
            func.count(Guest.gift_recorded_at),
        ).filter(Guest.account_id == account_id).one()

        total, invited, checked_in, attendees, souvenirs, kado, angpao, with_gifts = row
        invited = invited or 0
        return GuestStats(
            total_guests=total,
            invited_guests=invited,
            walk_in_guests=total - invited,
            checked_in_guests=checked_in,
            total_attendees=attendees,
            total_souvenirs=souvenirs,
            total_kado=kado,
            total_angpao=angpao,
            guests_with_gifts=with_gifts,
        )


# -------- Prize repository --------

class PrizeRepo(SqlRepo):
    def _scoped(self, account_id: str):
        return self.db.query(Prize).filter(Prize.account_id == account_id)

    def create(self, account_id: str, name: str, description: str = "") -> PrizeRead:
        self._check("create prize")
        prize = Prize(account_id=account_id, name=name, description=description, status=PRIZE_ACTIVE)
        self.db.add(prize)
        self._commit("create prize")
        self.db.refresh(prize)
        return PrizeRead.model_validate(prize)

    def list_prizes(self, account_id: str, status: Optional[str] = None) -> List[PrizeRead]:
        self._check("list prizes")
        query = self._scoped(account_id)
        if status:
            query = query.filter(Prize.status == status)
        return [PrizeRead.model_validate(p) for p in query.order_by(Prize.created_at.desc()).all()]

    def find_by_id(self, account_id: str, prize_id: str) -> PrizeRead:
        self._check("get prize")
        prize = self.db.query(Prize).filter(Prize.id == prize_id).first()
        if not prize:
            raise NotFoundError("Prize")
        if prize.account_id != account_id:
            raise reject_cross_account("Prize", prize_id, prize.account_id, account_id)
        return PrizeRead.model_validate(prize)

    def complete(self, account_id: str, prize_id: str, winner_guest_id: str, winner_name: str) -> PrizeRead:
        """active -> completed, only if the prize is still active."""
        self._check("record winner")
        now = datetime.utcnow()
        result = self.db.execute(
            update(Prize)
            .where(Prize.id == prize_id, Prize.account_id == account_id, Prize.status == PRIZE_ACTIVE)
            .values(
                status=PRIZE_COMPLETED,
                winner_guest_id=winner_guest_id,
                winner_name=winner_name,
                drawn_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            current = self.find_by_id(account_id, prize_id)
            if current.status == PRIZE_COMPLETED:
                raise PrizeCompletedError(prize_id)
            raise ConcurrentModificationError("Prize")
        self._commit("record winner")
        return self.find_by_id(account_id, prize_id)

    def stats(self, account_id: str) -> PrizeStats:
        self._check("prize stats")
        prizes = self._scoped(account_id).all()
        return PrizeStats(
            total_prizes=len(prizes),
            active_prizes=sum(1 for p in prizes if p.status == PRIZE_ACTIVE),
            completed_prizes=sum(1 for p in prizes if p.status == PRIZE_COMPLETED),
            total_winners=sum(1 for p in prizes if p.winner_guest_id),
        )


# -------- Uploaded file repository --------

class ArtifactRepo(SqlRepo):
    def add(self, account_id: str, filename: str, path: str) -> str:
        self._check("record upload")
        record = UploadedFile(account_id=account_id, filename=filename, path=path)
        self.db.add(record)
        self._commit("record upload")
        return record.id

    def list_paths(self, account_id: str) -> List[str]:
        self._check("list uploads")
        rows = self.db.query(UploadedFile.path).filter(UploadedFile.account_id == account_id).all()
        return [row[0] for row in rows]


# -------- Factory --------

@dataclass
class Repositories:
    accounts: Any
    guests: Any
    prizes: Any
    artifacts: Any


def get_repositories(db: Optional[Session], deadline: Optional[Deadline] = None) -> Repositories:
    """Build the repository set for one request on the configured backend."""
    deadline = deadline or Deadline()
    if use_firestore():
        from app.services.firestore_repositories import (
            FirestoreAccountRepo,
            FirestoreArtifactRepo,
            FirestoreGuestRepo,
            FirestorePrizeRepo,
        )
        return Repositories(
            accounts=FirestoreAccountRepo(deadline),
            guests=FirestoreGuestRepo(deadline),
            prizes=FirestorePrizeRepo(deadline),
            artifacts=FirestoreArtifactRepo(deadline),
        )
    return Repositories(
        accounts=AccountRepo(db, deadline),
        guests=GuestRepo(db, deadline),
        prizes=PrizeRepo(db, deadline),
        artifacts=ArtifactRepo(db, deadline),
    )
