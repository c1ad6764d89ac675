"""Persistent response cache table."""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from app.database import Base


class ApiResponseCache(Base):
    """Generic key/value cache entry with expiry. Never invalidated, only expires."""

    __tablename__ = "api_response_cache"

    cache_key = Column(String, primary_key=True)
    cache_type = Column(String, nullable=False)  # e.g. "digital_twin_simulation"
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    response_data = Column(JSONB, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
