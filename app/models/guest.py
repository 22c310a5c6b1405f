"""
Guest model - invited guests and walk-ins share this one table
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.utils.codes import new_id

class Guest(Base):
    __tablename__ = "guests"

    id = Column(String(32), primary_key=True, default=new_id)
    account_id = Column(String(32), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    name_lower = Column(String(255), nullable=False)  # trimmed, lowercased; dedup key
    phone = Column(String(32), default="")
    category = Column(String(100), nullable=False)
    info = Column(Text, default="")
    table_no = Column(String(50), default="")
    session = Column(String(100), default="")
    limit = Column(Integer, nullable=True)
    code = Column(String(50), nullable=False)
    is_invited = Column(Boolean, default=True, nullable=False)

    # Check-in axis
    check_in_date = Column(DateTime, nullable=True)
    guest_count = Column(Integer, nullable=True)

    # Gift/souvenir axis
    souvenir_count = Column(Integer, default=0, nullable=False)
    souvenir_recorded_at = Column(DateTime, nullable=True)
    kado_count = Column(Integer, default=0, nullable=False)
    angpao_count = Column(Integer, default=0, nullable=False)
    gift_note = Column(Text, default="")
    gift_recorded_at = Column(DateTime, nullable=True)

    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    account = relationship("Account", back_populates="guests")

    __table_args__ = (
        UniqueConstraint("account_id", "code", name="uq_guests_account_code"),
        Index("ix_guests_account_phone", "account_id", "phone"),
        Index("ix_guests_account_name_lower", "account_id", "name_lower"),
        Index("ix_guests_account_checkin", "account_id", "check_in_date"),
    )
