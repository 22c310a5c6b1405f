"""
Doorprize-related Pydantic schemas
"""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

class PrizeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""

class PrizeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    name: str
    description: str = ""
    status: Literal["active", "completed"] = "active"
    winner_guest_id: Optional[str] = None
    winner_name: Optional[str] = None
    drawn_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class PrizeStats(BaseModel):
    total_prizes: int = 0
    active_prizes: int = 0
    completed_prizes: int = 0
    total_winners: int = 0

class DrawRequest(BaseModel):
    """One spin. exclude_ids holds winners already drawn in this session."""
    exclude_ids: List[str] = []
    prize_id: Optional[str] = None

class RecordWinnerRequest(BaseModel):
    guest_id: str
