"""
Guest mutation commands.

Each command owns a disjoint set of guest fields and renders only those, so a
gift update can never touch check-in data and no command can reach account_id.
"""

from datetime import datetime
from typing import Annotated, Any, ClassVar, Dict, FrozenSet, Literal, Optional, Union
from pydantic import BaseModel, Field

CHECK_IN_FIELDS = frozenset({"check_in_date", "guest_count"})
GIFT_FIELDS = frozenset({"kado_count", "angpao_count", "gift_note", "gift_recorded_at"})
SOUVENIR_FIELDS = frozenset({"souvenir_count", "souvenir_recorded_at"})
DETAIL_FIELDS = frozenset({"name", "name_lower", "phone", "category", "info", "table_no", "session", "limit"})

class GuestCommand(BaseModel):
    owned_fields: ClassVar[FrozenSet[str]] = frozenset()

    def changes(self, now: datetime) -> Dict[str, Any]:
        raise NotImplementedError

class CheckInCommand(GuestCommand):
    owned_fields: ClassVar[FrozenSet[str]] = CHECK_IN_FIELDS
    kind: Literal["check_in"] = "check_in"
    guest_count: int = Field(1, ge=1)

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"check_in_date": now, "guest_count": self.guest_count}

class ClearCheckInCommand(GuestCommand):
    owned_fields: ClassVar[FrozenSet[str]] = CHECK_IN_FIELDS
    kind: Literal["clear_check_in"] = "clear_check_in"

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"check_in_date": None, "guest_count": None}

class GiftCommand(GuestCommand):
    owned_fields: ClassVar[FrozenSet[str]] = GIFT_FIELDS
    kind: Literal["gift"] = "gift"
    kado_count: int = Field(0, ge=0)
    angpao_count: int = Field(0, ge=0)
    note: str = ""

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {
            "kado_count": self.kado_count,
            "angpao_count": self.angpao_count,
            "gift_note": self.note,
            "gift_recorded_at": now,
        }

class ClearGiftCommand(GuestCommand):
    owned_fields: ClassVar[FrozenSet[str]] = GIFT_FIELDS
    kind: Literal["clear_gift"] = "clear_gift"

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"kado_count": 0, "angpao_count": 0, "gift_note": "", "gift_recorded_at": None}

class SouvenirCommand(GuestCommand):
    owned_fields: ClassVar[FrozenSet[str]] = SOUVENIR_FIELDS
    kind: Literal["souvenir"] = "souvenir"
    count: int = Field(..., ge=0)

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"souvenir_count": self.count, "souvenir_recorded_at": now}

class ClearSouvenirCommand(GuestCommand):
    owned_fields: ClassVar[FrozenSet[str]] = SOUVENIR_FIELDS
    kind: Literal["clear_souvenir"] = "clear_souvenir"

    def changes(self, now: datetime) -> Dict[str, Any]:
        return {"souvenir_count": 0, "souvenir_recorded_at": None}

class DetailsCommand(GuestCommand):
    """Already-normalized detail edits; unset fields are left alone."""
    owned_fields: ClassVar[FrozenSet[str]] = DETAIL_FIELDS
    kind: Literal["details"] = "details"
    name: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    info: Optional[str] = None
    table_no: Optional[str] = None
    session: Optional[str] = None
    limit: Optional[int] = None

    def changes(self, now: datetime) -> Dict[str, Any]:
        values = self.model_dump(exclude={"kind"}, exclude_unset=True)
        if "name" in values:
            values["name_lower"] = values["name"].strip().lower()
        return values

# Actions a front-desk walk-in submission can carry
WalkInAction = Annotated[
    Union[CheckInCommand, GiftCommand, SouvenirCommand],
    Field(discriminator="kind"),
]
