"""
Firestore implementations of the repositories.

Documents live in flat collections keyed by our own 32-hex ids, each carrying
account_id. Conditional writes run inside Firestore transactions.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set
from urllib.parse import quote

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists

from app.core.errors import (
    CheckInConfirmationRequired,
    ConcurrentModificationError,
    NotFoundError,
    PrizeCompletedError,
    ValidationError,
)
from app.models.prize import PRIZE_ACTIVE, PRIZE_COMPLETED
from app.schemas.account import AccountRead
from app.schemas.guest import GuestFilter, GuestRead, GuestStats
from app.schemas.prize import PrizeRead, PrizeStats
from app.services.firebase_client import (
    ACCOUNTS_COLLECTION,
    GUEST_CODES_COLLECTION,
    GUESTS_COLLECTION,
    PRIZES_COLLECTION,
    UPLOADED_FILES_COLLECTION,
    get_firestore_client,
)
from app.services.repositories import (
    CascadeResult,
    check_protected_fields,
    matches_filter,
    reject_cross_account,
)
from app.utils.codes import new_id
from app.utils.deadline import Deadline

logger = logging.getLogger(__name__)

# Firestore batches are capped at 500 writes
BATCH_SIZE = 400


def _sort_key_checked_in(guest: GuestRead):
    return guest.check_in_date.timestamp() if guest.check_in_date else 0


class FirestoreRepo:
    collection_name = ""

    def __init__(self, deadline: Optional[Deadline] = None):
        self.deadline = deadline or Deadline()
        self.fs = get_firestore_client()

    @property
    def col(self):
        return self.fs.collection(self.collection_name)

    def _timeout(self, operation: str) -> Optional[float]:
        self.deadline.check(operation)
        return self.deadline.rpc_timeout()

    def _scoped_docs(self, account_id: str, operation: str, collection: Optional[str] = None):
        col = self.fs.collection(collection) if collection else self.col
        return col.where("account_id", "==", account_id).get(timeout=self._timeout(operation))

    def _delete_scoped(self, account_id: str, operation: str, collection: Optional[str] = None) -> int:
        docs = self._scoped_docs(account_id, operation, collection)
        deleted = 0
        for start in range(0, len(docs), BATCH_SIZE):
            batch = self.fs.batch()
            for doc in docs[start:start + BATCH_SIZE]:
                batch.delete(doc.reference)
            batch.commit(timeout=self._timeout(operation))
            deleted += len(docs[start:start + BATCH_SIZE])
        return deleted


# -------- Account repository --------

class FirestoreAccountRepo(FirestoreRepo):
    collection_name = ACCOUNTS_COLLECTION

    def get(self, account_id: str) -> AccountRead:
        doc = self.col.document(account_id).get(timeout=self._timeout("get account"))
        if not doc.exists:
            raise NotFoundError("Account")
        return AccountRead(id=doc.id, **doc.to_dict())

    def exists(self, account_id: str) -> bool:
        return self.col.document(account_id).get(timeout=self._timeout("get account")).exists

    def create(self, data: Dict[str, Any]) -> AccountRead:
        account_id = new_id()
        now = datetime.utcnow()
        payload = dict(data, created_at=now, updated_at=now)
        self.col.document(account_id).create(payload, timeout=self._timeout("create account"))
        return AccountRead(id=account_id, **payload)

    def update(self, account_id: str, fields: Dict[str, Any]) -> AccountRead:
        if "id" in fields:
            raise ValidationError("Account id cannot be changed")
        ref = self.col.document(account_id)
        if not ref.get(timeout=self._timeout("update account")).exists:
            raise NotFoundError("Account")
        ref.update(dict(fields, updated_at=datetime.utcnow()), timeout=self._timeout("update account"))
        return self.get(account_id)

    def delete(self, account_id: str) -> None:
        ref = self.col.document(account_id)
        if not ref.get(timeout=self._timeout("delete account")).exists:
            raise NotFoundError("Account")
        ref.delete(timeout=self._timeout("delete account"))


# -------- Guest repository --------

class FirestoreGuestRepo(FirestoreRepo):
    collection_name = GUESTS_COLLECTION

    @staticmethod
    def _to_read(doc_id: str, data: Dict[str, Any]) -> GuestRead:
        item = dict(data)
        item.pop("name_lower", None)
        item["id"] = doc_id
        return GuestRead(**item)

    def _all(self, account_id: str, operation: str = "find guests") -> List[GuestRead]:
        return [self._to_read(d.id, d.to_dict()) for d in self._scoped_docs(account_id, operation)]

    def find(self, account_id: str, flt: Optional[GuestFilter] = None) -> List[GuestRead]:
        flt = flt or GuestFilter()
        guests = [g for g in self._all(account_id) if matches_filter(g, flt)]
        guests.sort(key=lambda g: g.name.strip().lower())
        if flt.checked_in is True:
            guests.sort(key=_sort_key_checked_in, reverse=True)
        if flt.limit:
            guests = guests[:flt.limit]
        return guests

    def find_by_id(self, account_id: str, guest_id: str) -> GuestRead:
        doc = self.col.document(guest_id).get(timeout=self._timeout("get guest"))
        if not doc.exists:
            raise NotFoundError("Guest")
        data = doc.to_dict()
        if data.get("account_id") != account_id:
            raise reject_cross_account("Guest", guest_id, data.get("account_id"), account_id)
        return self._to_read(doc.id, data)

    def find_match(self, account_id: str, phone: str, name: str) -> Optional[GuestRead]:
        scoped = self.col.where("account_id", "==", account_id)
        if phone:
            docs = scoped.where("phone", "==", phone).limit(1).get(timeout=self._timeout("match guest"))
            if docs:
                return self._to_read(docs[0].id, docs[0].to_dict())
        docs = scoped.where("name_lower", "==", name.strip().lower()).limit(1).get(timeout=self._timeout("match guest"))
        if docs:
            return self._to_read(docs[0].id, docs[0].to_dict())
        return None

    def _code_ref(self, account_id: str, code: str):
        return self.fs.collection(GUEST_CODES_COLLECTION).document(f"{account_id}:{quote(code, safe='')}")

    def code_exists(self, account_id: str, code: str) -> bool:
        return self._code_ref(account_id, code).get(timeout=self._timeout("check code")).exists

    def name_exists(self, account_id: str, name: str) -> bool:
        docs = (
            self.col.where("account_id", "==", account_id).where("name_lower", "==", name.strip().lower())
            .limit(1).get(timeout=self._timeout("check name"))
        )
        return bool(docs)

    def categories_in_use(self, account_id: str) -> Set[str]:
        return {g.category for g in self._all(account_id, "list categories")}

    def insert(self, account_id: str, data: Dict[str, Any]) -> GuestRead:
        check_protected_fields(data)
        account_doc = self.fs.collection(ACCOUNTS_COLLECTION).document(account_id).get(timeout=self._timeout("insert guest"))
        if not account_doc.exists:
            raise NotFoundError("Account")
        categories = account_doc.to_dict().get("guest_categories") or []
        if data.get("category") not in categories:
            raise ValidationError(
                f"Category '{data.get('category')}' is not defined for this account",
                details={"allowed": categories},
            )
        guest_id = new_id()
        now = datetime.utcnow()
        payload = {
            "souvenir_count": 0,
            "kado_count": 0,
            "angpao_count": 0,
            "gift_note": "",
            "check_in_date": None,
            "guest_count": None,
            "souvenir_recorded_at": None,
            "gift_recorded_at": None,
            "is_invited": True,
        }
        payload.update(data)
        payload.update({
            "account_id": account_id,
            "name_lower": data["name"].strip().lower(),
            "version": 1,
            "created_at": now,
            "updated_at": now,
        })
        # The code marker and the guest land together or not at all
        batch = self.fs.batch()
        batch.create(self._code_ref(account_id, data["code"]), {
            "account_id": account_id,
            "guest_id": guest_id,
            "created_at": now,
        })
        batch.create(self.col.document(guest_id), payload)
        try:
            batch.commit(timeout=self._timeout("insert guest"))
        except AlreadyExists:
            raise ValidationError("Invitation code already in use", details={"code": data["code"]})
        logger.info(f"Inserted guest {guest_id} into account {account_id}")
        return self._to_read(guest_id, payload)

    def update_fields(
        self,
        account_id: str,
        guest_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
        require_unchecked: bool = False,
    ) -> GuestRead:
        check_protected_fields(fields)
        ref = self.col.document(guest_id)
        timeout = self._timeout("update guest")

        @firestore.transactional
        def apply(transaction):
            snapshot = ref.get(transaction=transaction, timeout=timeout)
            if not snapshot.exists:
                raise NotFoundError("Guest")
            data = snapshot.to_dict()
            if data.get("account_id") != account_id:
                raise reject_cross_account("Guest", guest_id, data.get("account_id"), account_id)
            if require_unchecked and data.get("check_in_date") is not None:
                raise CheckInConfirmationRequired(self._to_read(guest_id, data))
            if expected_version is not None and data.get("version", 1) != expected_version:
                raise ConcurrentModificationError("Guest")

            changes = dict(fields, version=data.get("version", 1) + 1, updated_at=datetime.utcnow())
            transaction.update(ref, changes)
            data.update(changes)
            return data

        data = apply(self.fs.transaction())
        return self._to_read(guest_id, data)

    def delete(self, account_id: str, guest_id: str) -> None:
        guest = self.find_by_id(account_id, guest_id)
        batch = self.fs.batch()
        batch.delete(self.col.document(guest_id))
        batch.delete(self._code_ref(account_id, guest.code))
        batch.commit(timeout=self._timeout("delete guest"))

    def delete_all(self, account_id: str) -> int:
        deleted = self._delete_scoped(account_id, "delete guests")
        self._delete_scoped(account_id, "delete guests", GUEST_CODES_COLLECTION)
        return deleted

    def delete_cascade(self, account_id: str) -> CascadeResult:
        file_docs = self.fs.collection(UPLOADED_FILES_COLLECTION).where("account_id", "==", account_id).get(
            timeout=self._timeout("delete account data")
        )
        paths = [d.to_dict().get("path") for d in file_docs]
        result = CascadeResult(file_paths=[p for p in paths if p])
        result.guests = self._delete_scoped(account_id, "delete account data")
        self._delete_scoped(account_id, "delete account data", GUEST_CODES_COLLECTION)
        result.prizes = self._delete_scoped(account_id, "delete account data", PRIZES_COLLECTION)
        result.files = self._delete_scoped(account_id, "delete account data", UPLOADED_FILES_COLLECTION)
        return result

    def stats(self, account_id: str) -> GuestStats:
        guests = self._all(account_id, "guest stats")
        invited = sum(1 for g in guests if g.is_invited)
        return GuestStats(
            total_guests=len(guests),
            invited_guests=invited,
            walk_in_guests=len(guests) - invited,
            checked_in_guests=sum(1 for g in guests if g.checked_in),
            total_attendees=sum(g.guest_count or 0 for g in guests),
            total_souvenirs=sum(g.souvenir_count for g in guests),
            total_kado=sum(g.kado_count for g in guests),
            total_angpao=sum(g.angpao_count for g in guests),
            guests_with_gifts=sum(1 for g in guests if g.gift_recorded_at is not None),
        )


# -------- Prize repository --------

class FirestorePrizeRepo(FirestoreRepo):
    collection_name = PRIZES_COLLECTION

    def create(self, account_id: str, name: str, description: str = "") -> PrizeRead:
        prize_id = new_id()
        now = datetime.utcnow()
        payload = {
            "account_id": account_id,
            "name": name,
            "description": description,
            "status": PRIZE_ACTIVE,
            "winner_guest_id": None,
            "winner_name": None,
            "drawn_at": None,
            "created_at": now,
            "updated_at": now,
        }
        self.col.document(prize_id).create(payload, timeout=self._timeout("create prize"))
        return PrizeRead(id=prize_id, **payload)

    def list_prizes(self, account_id: str, status: Optional[str] = None) -> List[PrizeRead]:
        prizes = [PrizeRead(id=d.id, **d.to_dict()) for d in self._scoped_docs(account_id, "list prizes")]
        if status:
            prizes = [p for p in prizes if p.status == status]
        prizes.sort(key=lambda p: p.created_at.timestamp() if p.created_at else 0, reverse=True)
        return prizes

    def find_by_id(self, account_id: str, prize_id: str) -> PrizeRead:
        doc = self.col.document(prize_id).get(timeout=self._timeout("get prize"))
        if not doc.exists:
            raise NotFoundError("Prize")
        data = doc.to_dict()
        if data.get("account_id") != account_id:
            raise reject_cross_account("Prize", prize_id, data.get("account_id"), account_id)
        return PrizeRead(id=doc.id, **data)

    def complete(self, account_id: str, prize_id: str, winner_guest_id: str, winner_name: str) -> PrizeRead:
        ref = self.col.document(prize_id)
        timeout = self._timeout("record winner")

        @firestore.transactional
        def apply(transaction):
            snapshot = ref.get(transaction=transaction, timeout=timeout)
            if not snapshot.exists:
                raise NotFoundError("Prize")
            data = snapshot.to_dict()
            if data.get("account_id") != account_id:
                raise reject_cross_account("Prize", prize_id, data.get("account_id"), account_id)
            if data.get("status") == PRIZE_COMPLETED:
                raise PrizeCompletedError(prize_id)
            now = datetime.utcnow()
            changes = {
                "status": PRIZE_COMPLETED,
                "winner_guest_id": winner_guest_id,
                "winner_name": winner_name,
                "drawn_at": now,
                "updated_at": now,
            }
            transaction.update(ref, changes)
            data.update(changes)
            return data

        data = apply(self.fs.transaction())
        return PrizeRead(id=prize_id, **data)

    def stats(self, account_id: str) -> PrizeStats:
        prizes = self.list_prizes(account_id)
        return PrizeStats(
            total_prizes=len(prizes),
            active_prizes=sum(1 for p in prizes if p.status == PRIZE_ACTIVE),
            completed_prizes=sum(1 for p in prizes if p.status == PRIZE_COMPLETED),
            total_winners=sum(1 for p in prizes if p.winner_guest_id),
        )


# -------- Uploaded file repository --------

class FirestoreArtifactRepo(FirestoreRepo):
    collection_name = UPLOADED_FILES_COLLECTION

    def add(self, account_id: str, filename: str, path: str) -> str:
        record_id = new_id()
        self.col.document(record_id).create(
            {"account_id": account_id, "filename": filename, "path": path, "created_at": datetime.utcnow()},
            timeout=self._timeout("record upload"),
        )
        return record_id

    def list_paths(self, account_id: str) -> List[str]:
        return [d.to_dict().get("path") for d in self._scoped_docs(account_id, "list uploads")]
