"""Signal database model."""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String, Float, TIMESTAMP, Integer, JSON, Boolean, Text
from sqlalchemy.orm import relationship
from blackgpt.models.base import Base

class SignalStatus(str, Enum):
    """Signal lifecycle states. REJECTED is the only terminal state."""
    UNVERIFIED = "UNVERIFIED"
    REQUIRES_REVIEW = "REQUIRES_REVIEW"
    HUMAN_VERIFIED = "HUMAN_VERIFIED"
    REJECTED = "REJECTED"
    CORRELATED = "CORRELATED"

class SourceType(str, Enum):
    """Legal source categories a signal may originate from."""
    MANUAL_UPLOAD = "MANUAL_UPLOAD"
    REDDIT = "REDDIT"
    TWITTER = "TWITTER"
    NEWS_API = "NEWS_API"
    BLOCKCHAIN = "BLOCKCHAIN"
    LICENSED_FEED = "LICENSED_FEED"
    EXCHANGE_OTC = "EXCHANGE_OTC"

class Signal(Base):
    """
    User-submitted market observation with provenance metadata.
    Never hard-deleted; rejection is a status.
    """
    __tablename__ = 'signals'

    # Primary key
    id = Column(Integer, primary_key=True)
    signal_id = Column(String(64), unique=True, nullable=False, index=True)

    # Observation
    script_name = Column(String(200), nullable=False)
    date_from = Column(TIMESTAMP, nullable=False)
    date_to = Column(TIMESTAMP, nullable=False)
    gist_text = Column(Text, nullable=False)

    # Provenance
    provenance_tags = Column(JSON, nullable=False)
    source_type = Column(String(32), nullable=False, index=True)

    # Confidence (0.0 to 1.0)
    confidence_score = Column(Float, nullable=False, default=0.0)

    # State
    status = Column(String(20), nullable=False, default=SignalStatus.UNVERIFIED.value, index=True)
    requires_attention = Column(Boolean, nullable=False, default=False)
    contradiction_flag = Column(Boolean, nullable=False, default=False)
    contradiction_note = Column(Text)
    last_correlated_at = Column(TIMESTAMP)

    # Audit
    created_by = Column(String(64), nullable=False)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    audits = relationship(
        "AuditLog",
        back_populates="signal",
        order_by="[AuditLog.timestamp.desc(), AuditLog.id.desc()]",
    )
    correlation_jobs = relationship(
        "CorrelationJob",
        back_populates="signal",
        order_by="[CorrelationJob.started_at.desc(), CorrelationJob.id.desc()]",
    )
