"""
Doorprize model
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.utils.codes import new_id

PRIZE_ACTIVE = "active"
PRIZE_COMPLETED = "completed"

class Prize(Base):
    __tablename__ = "prizes"

    id = Column(String(32), primary_key=True, default=new_id)
    account_id = Column(String(32), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    status = Column(String(20), nullable=False, default=PRIZE_ACTIVE)
    winner_guest_id = Column(String(32), nullable=True)
    winner_name = Column(String(255), nullable=True)
    drawn_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    account = relationship("Account", back_populates="prizes")
