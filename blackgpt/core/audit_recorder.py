"""
Audit Recorder

Sole writer of audit_log rows. Entries are appended to the caller's session so
they commit in the same transaction as the mutation they document.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from blackgpt.models.audit_log import AuditAction, AuditLog
from blackgpt.utils.hashing import create_event_hash, verify_audit_chain

class AuditRecorder:
    """Append-only access to the audit trail."""

    def __init__(self, db: Session):
        self.db = db

    def append(self, signal_id: str, actor_id: str, action: AuditAction,
               notes: Optional[str] = None) -> AuditLog:
        """Stage a new audit entry. The caller commits."""
        action_value = action.value if isinstance(action, AuditAction) else AuditAction(action).value
        previous = self._latest(signal_id)
        previous_hash = previous.event_hash if previous else None
        timestamp = datetime.utcnow()

        # Same-transaction entries may share a clock reading; keep order strict
        if previous and timestamp <= previous.timestamp:
            timestamp = previous.timestamp + timedelta(microseconds=1)

        entry = AuditLog(
            signal_id=signal_id,
            actor=str(actor_id),
            action=action_value,
            notes=notes,
            timestamp=timestamp,
            previous_hash=previous_hash,
            event_hash=create_event_hash(
                timestamp, action_value, signal_id, str(actor_id), notes, previous_hash
            ),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def trail(self, signal_id: str) -> List[AuditLog]:
        """Audit entries for a signal, newest first."""
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.signal_id == signal_id)
            .order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
            .all()
        )

    def verify(self, signal_id: str) -> bool:
        """Recompute the hash chain for a signal."""
        return verify_audit_chain(list(reversed(self.trail(signal_id))))

    def _latest(self, signal_id: str) -> Optional[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.signal_id == signal_id)
            .order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
            .first()
        )
