"""
Account model - one tenant per wedding
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.utils.codes import new_id

class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    event_datetime = Column(DateTime, nullable=True)
    location = Column(String(255), default="")
    welcome_text = Column(Text, default="")
    youtube_url = Column(String(500), default="")
    guest_categories = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    guests = relationship("Guest", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    prizes = relationship("Prize", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    files = relationship("UploadedFile", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
