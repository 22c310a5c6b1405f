"""
Database models package
"""

from .account import Account
from .guest import Guest
from .prize import Prize, PRIZE_ACTIVE, PRIZE_COMPLETED
from .uploaded_file import UploadedFile

__all__ = ["Account", "Guest", "Prize", "UploadedFile", "PRIZE_ACTIVE", "PRIZE_COMPLETED"]
