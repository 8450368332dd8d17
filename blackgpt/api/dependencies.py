"""
Request-scoped dependencies.
Long-lived services live on app.state; a lifecycle manager is built per request.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from blackgpt.core.signal_lifecycle import SignalLifecycleManager
from blackgpt.models.base import get_db

def get_lifecycle(request: Request, db: Session = Depends(get_db)) -> SignalLifecycleManager:
    """Lifecycle manager bound to this request's database session."""
    return SignalLifecycleManager(
        db=db,
        validator=request.app.state.validator,
        aggregator=request.app.state.aggregator,
    )
