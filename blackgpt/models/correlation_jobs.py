"""Correlation job database model."""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String, Float, TIMESTAMP, Integer, JSON, Text, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from blackgpt.models.base import Base

class JobStatus(str, Enum):
    """Correlation job status. COMPLETED and FAILED are final."""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class CorrelationJob(Base):
    """
    One attempt to corroborate a signal against public sources.
    """
    __tablename__ = 'correlation_jobs'
    __table_args__ = (
        # At most one running job per signal
        Index(
            'uq_correlation_jobs_one_in_progress',
            'signal_id',
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    # Primary key
    id = Column(Integer, primary_key=True)
    job_id = Column(String(64), unique=True, nullable=False, index=True)
    signal_id = Column(String(64), ForeignKey('signals.signal_id'), nullable=False, index=True)

    # State
    status = Column(String(20), nullable=False, default=JobStatus.IN_PROGRESS.value)
    initiated_by = Column(String(64), nullable=False)
    started_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    finished_at = Column(TIMESTAMP)

    # Outcome
    keywords = Column(JSON)
    result_gist = Column(Text)
    correlation_confidence = Column(Float)
    contradiction_confidence = Column(Float)
    sources_queried = Column(JSON)
    raw_results = Column(JSON)
    model_used = Column(String(64))
    error_message = Column(Text)

    signal = relationship("Signal", back_populates="correlation_jobs")
