"""
Audit trail endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends

from blackgpt.api.dependencies import get_lifecycle
from blackgpt.api.schemas import AuditChainResponse, AuditResponse
from blackgpt.core.signal_lifecycle import SignalLifecycleManager

router = APIRouter()

@router.get("/{signal_id}", response_model=List[AuditResponse])
def get_audit_logs(signal_id: str, lifecycle: SignalLifecycleManager = Depends(get_lifecycle)):
    """
    Audit entries for a signal, newest first.
    """
    return lifecycle.get_audit_trail(signal_id)

@router.get("/{signal_id}/verify", response_model=AuditChainResponse)
def verify_audit_chain(signal_id: str, lifecycle: SignalLifecycleManager = Depends(get_lifecycle)):
    """
    Recompute the signal's audit hash chain.
    """
    entries = lifecycle.get_audit_trail(signal_id)
    return AuditChainResponse(
        signal_id=signal_id,
        entries=len(entries),
        valid=lifecycle.verify_audit_chain(signal_id),
    )
