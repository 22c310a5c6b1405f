"""
Pydantic schemas package
"""

from .common import *
from .account import *
from .guest import *
from .commands import *
from .prize import *
from .walkin import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "AccountCreate",
    "AccountUpdate",
    "AccountRead",
    "AccountProvisioned",
    "GuestCreate",
    "GuestUpdate",
    "GuestRead",
    "GuestFilter",
    "GuestStats",
    "CheckInRequest",
    "GiftRequest",
    "SouvenirRequest",
    "GuestImportRow",
    "GuestImportRequest",
    "ImportResult",
    "CheckInCommand",
    "ClearCheckInCommand",
    "GiftCommand",
    "ClearGiftCommand",
    "SouvenirCommand",
    "ClearSouvenirCommand",
    "DetailsCommand",
    "WalkInAction",
    "PrizeCreate",
    "PrizeRead",
    "PrizeStats",
    "DrawRequest",
    "RecordWinnerRequest",
    "WalkInSubmission",
    "WalkInCandidate",
    "WalkInOutcome",
]
