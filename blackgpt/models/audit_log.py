"""Audit log database model."""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String, TIMESTAMP, Integer, Text, ForeignKey, event
from sqlalchemy.orm import relationship
from blackgpt.models.base import Base

class AuditAction(str, Enum):
    """Lifecycle transitions recorded in the audit trail."""
    CREATED = "CREATED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    FLAGGED = "FLAGGED"
    CORRELATED = "CORRELATED"

class AuditLog(Base):
    """
    Immutable audit trail with blockchain-like integrity.
    Each entry hashes over the previous entry of the same signal.
    """
    __tablename__ = 'audit_log'

    # Primary key
    id = Column(Integer, primary_key=True)
    timestamp = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, index=True)

    # Event details
    signal_id = Column(String(64), ForeignKey('signals.signal_id'), nullable=False, index=True)
    action = Column(String(20), nullable=False)

    # Actor and reason
    actor = Column(String(64), nullable=False)
    notes = Column(Text)

    # Cryptographic integrity
    event_hash = Column(String(64), nullable=False)
    previous_hash = Column(String(64))

    signal = relationship("Signal", back_populates="audits")

class AuditImmutableError(RuntimeError):
    """Raised when code attempts to modify a written audit entry."""

@event.listens_for(AuditLog, "before_update")
def _block_audit_update(mapper, connection, target):
    raise AuditImmutableError(f"Audit entry {target.id} is append-only")

@event.listens_for(AuditLog, "before_delete")
def _block_audit_delete(mapper, connection, target):
    raise AuditImmutableError(f"Audit entry {target.id} is append-only")
