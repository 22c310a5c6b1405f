"""
Walk-in (non-invited guest) schemas
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field

from app.schemas.commands import WalkInAction
from app.schemas.guest import GuestRead

class WalkInSubmission(BaseModel):
    """Front-desk submission for someone who may or may not be on the list"""
    name: str = Field(..., min_length=1)
    phone: str = ""
    category: Optional[str] = None
    info: str = ""
    table_no: str = ""
    session: str = ""
    limit: Optional[int] = Field(None, ge=0)
    code: Optional[str] = None
    action: WalkInAction

class WalkInCandidate(BaseModel):
    """Normalized submission waiting for the operator to confirm creation"""
    name: str
    phone: str = ""
    category: str
    info: str = ""
    table_no: str = ""
    session: str = ""
    limit: Optional[int] = None
    code: str
    action: WalkInAction

class WalkInOutcome(BaseModel):
    status: Literal["updated_existing", "needs_confirmation", "created"]
    message: str
    guest: Optional[GuestRead] = None
    candidate: Optional[WalkInCandidate] = None
