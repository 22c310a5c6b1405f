"""
Guest-related Pydantic schemas
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class GuestCreate(BaseModel):
    """Schema for registering an invited guest"""
    name: str = Field(..., min_length=1)
    phone: str = ""
    category: str = Field(..., min_length=1)
    info: str = ""
    table_no: str = ""
    session: str = ""
    limit: Optional[int] = Field(None, ge=0)
    code: Optional[str] = None

class GuestUpdate(BaseModel):
    """Editable guest details. Anything else, account_id included, is rejected."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    category: Optional[str] = None
    info: Optional[str] = None
    table_no: Optional[str] = None
    session: Optional[str] = None
    limit: Optional[int] = Field(None, ge=0)

class GuestRead(BaseModel):
    """Guest response schema"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    name: str
    phone: str = ""
    category: str
    info: str = ""
    table_no: str = ""
    session: str = ""
    limit: Optional[int] = None
    code: str
    is_invited: bool = True
    check_in_date: Optional[datetime] = None
    guest_count: Optional[int] = None
    souvenir_count: int = 0
    souvenir_recorded_at: Optional[datetime] = None
    kado_count: int = 0
    angpao_count: int = 0
    gift_note: str = ""
    gift_recorded_at: Optional[datetime] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def checked_in(self) -> bool:
        return self.check_in_date is not None

class GuestFilter(BaseModel):
    """Query filter for guest listings.

    There is no account field here: the repository adds the caller's scope itself.
    """
    model_config = ConfigDict(extra="ignore")

    search: Optional[str] = None
    category: Optional[str] = None
    is_invited: Optional[bool] = None
    checked_in: Optional[bool] = None
    table_no: Optional[str] = None
    checked_in_since: Optional[datetime] = None
    limit: Optional[int] = Field(None, ge=1)

class GuestStats(BaseModel):
    """Dashboard totals for one account"""
    total_guests: int = 0
    invited_guests: int = 0
    walk_in_guests: int = 0
    checked_in_guests: int = 0
    total_attendees: int = 0
    total_souvenirs: int = 0
    total_kado: int = 0
    total_angpao: int = 0
    guests_with_gifts: int = 0

class CheckInRequest(BaseModel):
    """Check-in request; confirm must be set to overwrite an existing check-in"""
    guest_count: int = Field(1, ge=1)
    confirm: bool = False

class GiftRequest(BaseModel):
    kado_count: int = Field(0, ge=0)
    angpao_count: int = Field(0, ge=0)
    note: str = ""

class SouvenirRequest(BaseModel):
    count: int = Field(..., ge=0)

class GuestImportRow(BaseModel):
    """One invited guest row from a bulk import"""
    name: str
    phone: str = ""
    category: str
    session: str = ""
    limit: Optional[int] = None
    table_no: str = ""
    info: str = ""
    code: Optional[str] = None

class GuestImportRequest(BaseModel):
    guests: List[GuestImportRow] = Field(..., min_length=1)

class ImportResult(BaseModel):
    total: int
    imported: int
    failed: int
    errors: List[str] = []
