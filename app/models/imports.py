"""Import job model - progress record for one CSV upload."""
import enum

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base
from app.models.base import generate_id


class ImportJobStatus(str, enum.Enum):
    """Import job lifecycle. There is no terminal failure state."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"


class ImportJob(Base):
    """Mutable progress record updated as CSV rows are processed."""

    __tablename__ = "import_jobs"

    id = Column(String, primary_key=True, default=lambda: generate_id("import"))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    file_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ImportJobStatus.QUEUED.value)

    # Progress counters
    total_rows = Column(Integer, nullable=False, default=0)
    processed_rows = Column(Integer, nullable=False, default=0)
    successful_rows = Column(Integer, nullable=False, default=0)
    failed_rows = Column(Integer, nullable=False, default=0)

    # [{"row": 7, "error": "Invalid date format"}, ...] - truncated on completion
    error_log = Column(JSONB, nullable=False, default=list)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="import_jobs")
