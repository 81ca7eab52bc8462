"""
Job Execution Log Model

Tracks the execution history of background jobs for monitoring.
"""

from sqlalchemy import Column, String, DateTime, Integer, Float, Text, Boolean
from sqlalchemy.dialects.postgresql import UUID
from price_tracker.core.database import Base
import uuid
from datetime import datetime, timezone


class JobExecutionLog(Base):
    """Log entries for background job executions"""
    __tablename__ = "job_execution_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    # Job identification
    job_name = Column(String(100), nullable=False, index=True)
    job_id = Column(String(100), nullable=False)

    # Execution timing
    started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Execution results
    status = Column(String(20), nullable=False, index=True)  # 'success', 'error'
    error_message = Column(Text, nullable=True)

    # Ingestion metrics
    products_processed = Column(Integer, default=0)
    categories_processed = Column(Integer, default=0)
    history_purged = Column(Integer, default=0)

    # Metadata
    triggered_manually = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    def __repr__(self):
        return f"<JobExecutionLog(job_name='{self.job_name}', status='{self.status}', duration={self.duration_seconds}s)>"

    @property
    def execution_summary(self) -> dict:
        """Return a summary of the job execution"""
        return {
            "job_name": self.job_name,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "products_processed": self.products_processed,
            "categories_processed": self.categories_processed,
            "history_purged": self.history_purged,
            "error_message": self.error_message,
            "triggered_manually": self.triggered_manually
        }
