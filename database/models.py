"""
SQLAlchemy ORM models for the SQL credential store.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class StoredCredential(Base):
    __tablename__ = "stored_credentials"

    user_key = Column(String(255), primary_key=True)
    client_id = Column(String(512), nullable=False, default="")
    client_secret = Column(Text)
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_type = Column(String(32), default="Bearer")
    expires_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
