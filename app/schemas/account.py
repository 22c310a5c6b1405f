"""
Account-related Pydantic schemas
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class AccountCreate(BaseModel):
    """Schema for provisioning an account"""
    title: str = Field(..., min_length=1)
    event_datetime: Optional[datetime] = None
    location: str = ""
    welcome_text: str = ""
    youtube_url: str = ""
    guest_categories: Optional[List[str]] = None

class AccountUpdate(BaseModel):
    """Schema for editing an account; unknown fields are rejected"""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1)
    event_datetime: Optional[datetime] = None
    location: Optional[str] = None
    welcome_text: Optional[str] = None
    youtube_url: Optional[str] = None
    guest_categories: Optional[List[str]] = None

class AccountRead(BaseModel):
    """Account response"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    event_datetime: Optional[datetime] = None
    location: str = ""
    welcome_text: str = ""
    youtube_url: str = ""
    guest_categories: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class AccountProvisioned(BaseModel):
    """Account plus the bearer token its front desk will use"""
    account: AccountRead
    access_token: str
    token_type: str = "bearer"
