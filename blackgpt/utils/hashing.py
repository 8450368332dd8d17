"""Cryptographic hashing for audit trail integrity."""
import hashlib
import json
from datetime import datetime
from typing import Optional

def create_event_hash(
    timestamp: datetime,
    action: str,
    signal_id: str,
    actor: str,
    notes: Optional[str],
    previous_hash: Optional[str]
) -> str:
    """
    Create SHA-256 hash of an audit event.
    Including previous_hash chains every entry to the one before it.
    """
    event_data = {
        'timestamp': timestamp.isoformat(),
        'action': action,
        'signal_id': signal_id,
        'actor': actor,
        'notes': notes,
        'previous_hash': previous_hash
    }

    canonical_json = json.dumps(event_data, sort_keys=True)

    hash_obj = hashlib.sha256(canonical_json.encode('utf-8'))
    return hash_obj.hexdigest()

def verify_audit_chain(audit_logs: list) -> bool:
    """
    Verify integrity of an audit log chain.
    Expects entries oldest first.
    """
    previous = None
    for entry in audit_logs:
        expected_previous = previous.event_hash if previous is not None else None
        if entry.previous_hash != expected_previous:
            return False

        recomputed = create_event_hash(
            entry.timestamp,
            entry.action,
            entry.signal_id,
            entry.actor,
            entry.notes,
            entry.previous_hash
        )
        if recomputed != entry.event_hash:
            return False

        previous = entry

    return True
