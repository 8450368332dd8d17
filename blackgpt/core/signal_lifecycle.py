"""
Signal Lifecycle Manager

Owns the signal state machine:

    upload ──valid──────────▶ UNVERIFIED
    upload ──valid+flagged──▶ REQUIRES_REVIEW
    verify(accept)  ─▶ HUMAN_VERIFIED
    verify(reject)  ─▶ REJECTED          (terminal)
    verify(followup)─▶ REQUIRES_REVIEW
    research-public ─▶ CORRELATED, or REQUIRES_REVIEW on a contradiction

Every transition writes exactly one audit entry in the same commit as the
signal mutation. The manager is the only writer of signals and correlation
jobs; one manager is built per request around that request's session.
"""
import asyncio
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from blackgpt.core.audit_recorder import AuditRecorder
from blackgpt.core.correlation_aggregator import CorrelationAggregator, CorrelationResult
from blackgpt.core.exceptions import (
    ConflictError,
    CorrelationError,
    InvalidActionError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from blackgpt.core.provenance_validator import ProvenanceValidator
from blackgpt.core.summarizer import Contradiction
from blackgpt.models.audit_log import AuditAction, AuditLog
from blackgpt.models.correlation_jobs import CorrelationJob, JobStatus
from blackgpt.models.signals import Signal, SignalStatus, SourceType
from blackgpt.utils import metrics
from blackgpt.utils.constants import (
    DEFAULT_CONFIDENCE_SCORE,
    DEFAULT_PAGE_SIZE,
    MAX_CONFIDENCE,
    MAX_GIST_LENGTH,
    MAX_PAGE_SIZE,
    MAX_SCRIPT_NAME_LENGTH,
    MIN_CONFIDENCE,
    MIN_GIST_LENGTH,
    MIN_SCRIPT_NAME_LENGTH,
)
from blackgpt.utils.logging import get_logger

logger = get_logger(__name__)

class VerificationAction(str, Enum):
    """Reviewer decisions."""
    ACCEPT = "accept"
    REJECT = "reject"
    FOLLOWUP = "followup"

# action -> (new status, audit action, requires attention)
VERIFICATION_TRANSITIONS = {
    VerificationAction.ACCEPT: (SignalStatus.HUMAN_VERIFIED, AuditAction.VERIFIED, False),
    VerificationAction.REJECT: (SignalStatus.REJECTED, AuditAction.REJECTED, False),
    VerificationAction.FOLLOWUP: (SignalStatus.REQUIRES_REVIEW, AuditAction.FLAGGED, True),
}

@dataclass
class SignalInput:
    """Upload payload after HTTP-level parsing."""
    script_name: str
    date_from: datetime
    date_to: datetime
    gist_text: str
    provenance_tags: List[str]
    created_by: str
    source_type: SourceType = SourceType.MANUAL_UPLOAD
    confidence_score: Optional[float] = None

@dataclass
class SignalFilters:
    status: Optional[SignalStatus] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_confidence: Optional[float] = None
    max_confidence: Optional[float] = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

@dataclass
class SignalPage:
    signals: List[Signal]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

@dataclass
class ResearchOutcome:
    """What research_public_web hands back to the HTTP layer."""
    job: CorrelationJob
    summary: str
    contradiction: Contradiction
    sources: List[str]
    confidence: float

class SignalLifecycleManager:
    """
    Applies validation, persistence, verification and correlation to signals.
    """

    def __init__(self, db: Session, validator: ProvenanceValidator,
                 aggregator: CorrelationAggregator):
        self.db = db
        self.validator = validator
        self.aggregator = aggregator
        self.audit = AuditRecorder(db)

    # ========== CREATE ==========
    def create_signal(self, data: SignalInput) -> Signal:
        """
        Validate and persist a new signal with its CREATED audit entry.

        Raises:
            ValidationError: input or provenance rejected; nothing is written
        """
        self._check_input(data)

        validation = self.validator.validate(data.provenance_tags, data.source_type, data.gist_text)
        if not validation.is_valid:
            if validation.matched:
                logger.error(
                    "SECURITY ALERT: disallowed pattern detected",
                    pattern=validation.matched,
                    source_type=str(data.source_type),
                    uploader=data.created_by
                )
            else:
                logger.warning("Signal creation blocked", reason=validation.reason, uploader=data.created_by)
            metrics.record_upload_rejected()
            raise ValidationError(validation.reason or "Invalid provenance")

        if validation.flagged:
            logger.warning("Suspicious keyword detected - flagging for review", keyword=validation.matched)

        status = SignalStatus.REQUIRES_REVIEW if validation.flagged else SignalStatus.UNVERIFIED
        source_type = data.source_type.value if isinstance(data.source_type, SourceType) else data.source_type
        now = datetime.utcnow()

        signal = Signal(
            signal_id=f"sig_{uuid.uuid4().hex}",
            script_name=data.script_name.strip(),
            date_from=data.date_from,
            date_to=data.date_to,
            gist_text=data.gist_text,
            provenance_tags=list(data.provenance_tags),
            source_type=source_type,
            confidence_score=(
                data.confidence_score if data.confidence_score is not None else DEFAULT_CONFIDENCE_SCORE
            ),
            status=status.value,
            requires_attention=validation.flagged,
            contradiction_flag=False,
            created_by=str(data.created_by),
            created_at=now,
            updated_at=now,
        )

        try:
            self.db.add(signal)
            self.db.flush()
            self.audit.append(
                signal.signal_id,
                data.created_by,
                AuditAction.CREATED,
                notes="Signal flagged for review due to suspicious content" if validation.flagged else None,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to store signal: {e}") from e
        self._commit()

        metrics.record_signal_created(status.value)
        logger.info("Signal created", signal_id=signal.signal_id, status=signal.status)
        return signal

    def _check_input(self, data: SignalInput):
        script_name = (data.script_name or '').strip()
        if not MIN_SCRIPT_NAME_LENGTH <= len(script_name) <= MAX_SCRIPT_NAME_LENGTH:
            raise ValidationError(
                f"scriptName must be {MIN_SCRIPT_NAME_LENGTH}-{MAX_SCRIPT_NAME_LENGTH} characters"
            )
        if not MIN_GIST_LENGTH <= len(data.gist_text or '') <= MAX_GIST_LENGTH:
            raise ValidationError(f"gistText must be {MIN_GIST_LENGTH}-{MAX_GIST_LENGTH} characters")
        if data.date_from is None or data.date_to is None:
            raise ValidationError("dateFrom and dateTo are required")
        if data.date_from > data.date_to:
            raise ValidationError("dateFrom must not be after dateTo")
        if not data.created_by:
            raise ValidationError("uploaderId is required")
        if data.confidence_score is not None and not MIN_CONFIDENCE <= data.confidence_score <= MAX_CONFIDENCE:
            raise ValidationError(f"confidenceScore must be between {MIN_CONFIDENCE} and {MAX_CONFIDENCE}")

    # ========== READ ==========
    def get_signal(self, signal_id: str) -> Signal:
        """Signal with audits and correlation jobs reachable newest first."""
        signal = self.db.query(Signal).filter(Signal.signal_id == signal_id).first()
        if not signal:
            raise NotFoundError(f"Signal {signal_id} not found")
        return signal

    def list_signals(self, filters: Optional[SignalFilters] = None) -> SignalPage:
        """Filtered, newest-first page of signals. Page size is clamped to MAX_PAGE_SIZE."""
        filters = filters or SignalFilters()
        if filters.page < 1:
            raise ValidationError("page must be >= 1")
        if filters.limit < 1:
            raise ValidationError("limit must be >= 1")
        limit = min(filters.limit, MAX_PAGE_SIZE)

        query = self.db.query(Signal)

        if filters.status:
            status = filters.status.value if isinstance(filters.status, SignalStatus) else filters.status
            query = query.filter(Signal.status == status)
        if filters.date_from:
            query = query.filter(Signal.created_at >= filters.date_from)
        if filters.date_to:
            query = query.filter(Signal.created_at <= filters.date_to)
        if filters.min_confidence is not None:
            query = query.filter(Signal.confidence_score >= filters.min_confidence)
        if filters.max_confidence is not None:
            query = query.filter(Signal.confidence_score <= filters.max_confidence)

        total = query.count()
        signals = (
            query.order_by(desc(Signal.created_at), desc(Signal.id))
            .offset((filters.page - 1) * limit)
            .limit(limit)
            .all()
        )

        return SignalPage(signals=signals, total=total, page=filters.page, limit=limit)

    def get_audit_trail(self, signal_id: str) -> List[AuditLog]:
        """Audit entries newest first."""
        self.get_signal(signal_id)
        return self.audit.trail(signal_id)

    def verify_audit_chain(self, signal_id: str) -> bool:
        self.get_signal(signal_id)
        return self.audit.verify(signal_id)

    def signal_stats(self) -> Dict:
        """Signal statistics summary."""
        counts = dict(
            self.db.query(Signal.status, func.count(Signal.id)).group_by(Signal.status).all()
        )
        attention = self.db.query(Signal).filter(Signal.requires_attention.is_(True)).count()

        return {
            "total": sum(counts.values()),
            "requires_attention": attention,
            "by_status": {status.value: counts.get(status.value, 0) for status in SignalStatus},
        }

    # ========== VERIFY ==========
    def verify_signal(self, signal_id: str, reviewer_id: str, action,
                      notes: Optional[str] = None) -> Signal:
        """
        Apply a reviewer decision.

        Raises:
            InvalidActionError: action is not accept/reject/followup
            NotFoundError: unknown signal
            InvalidTransitionError: signal already REJECTED
        """
        try:
            action = VerificationAction(action)
        except ValueError:
            raise InvalidActionError(f"Invalid action '{action}'. Expected accept, reject or followup") from None

        if not reviewer_id:
            raise ValidationError("reviewerId is required")

        signal = self.get_signal(signal_id)
        if signal.status == SignalStatus.REJECTED.value:
            raise InvalidTransitionError(f"Signal {signal_id} is rejected and cannot be re-reviewed")

        new_status, audit_action, requires_attention = VERIFICATION_TRANSITIONS[action]
        previous_status = signal.status

        signal.status = new_status.value
        signal.requires_attention = requires_attention
        signal.updated_at = datetime.utcnow()

        try:
            self.audit.append(signal.signal_id, reviewer_id, audit_action, notes=notes)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to record verification: {e}") from e
        self._commit()

        metrics.record_verification(action.value)
        logger.info(
            "Signal verified",
            signal_id=signal_id,
            action=action.value,
            reviewer_id=reviewer_id,
            from_status=previous_status,
            to_status=new_status.value
        )
        return signal

    # ========== CORRELATE ==========
    async def research_public_web(self, signal_id: str, initiated_by: str) -> ResearchOutcome:
        """
        Correlate a signal against public sources.

        The IN_PROGRESS job is committed before any connector is dispatched,
        so a concurrent trigger for the same signal observes it and gets a
        ConflictError. The partial unique index catches the remaining race.
        Session work runs in worker threads; only the aggregator awaits on
        the event loop.

        Raises:
            NotFoundError: unknown signal
            InvalidTransitionError: signal is REJECTED
            ConflictError: a job is already in progress
            CorrelationError: aggregation failed; job recorded as FAILED
            PersistenceError: result could not be stored; job recorded as FAILED
        """
        if not initiated_by:
            raise ValidationError("initiatedBy is required")

        signal, job = await asyncio.to_thread(self._begin_research, signal_id, initiated_by)

        try:
            result = await self.aggregator.correlate(signal)
        except Exception as e:
            await asyncio.to_thread(self._fail_job, job, str(e) or e.__class__.__name__)
            logger.error("Correlation failed", signal_id=signal_id, job_id=job.job_id, error=str(e))
            raise CorrelationError(f"Correlation failed: {e}", job_id=job.job_id) from e

        return await asyncio.to_thread(self._complete_research, signal, job, result, initiated_by)

    def _begin_research(self, signal_id: str, initiated_by: str) -> Tuple[Signal, CorrelationJob]:
        signal = self.get_signal(signal_id)
        if signal.status == SignalStatus.REJECTED.value:
            raise InvalidTransitionError(f"Signal {signal_id} is rejected and cannot be correlated")

        job = self._start_job(signal, initiated_by)
        # Reload after commit so the event loop never triggers a lazy load
        self.db.refresh(signal)
        self.db.refresh(job)
        return signal, job

    def _complete_research(self, signal: Signal, job: CorrelationJob, result: CorrelationResult,
                           initiated_by: str) -> ResearchOutcome:
        now = datetime.utcnow()
        contradiction = result.contradiction

        job.status = JobStatus.COMPLETED.value
        job.finished_at = now
        job.keywords = result.keywords
        job.result_gist = result.result_gist
        job.correlation_confidence = result.confidence
        job.contradiction_confidence = contradiction.confidence
        job.sources_queried = result.sources_queried
        job.raw_results = [source.to_dict() for source in result.sources]
        job.model_used = result.model_used

        signal.confidence_score = max(signal.confidence_score or 0.0, result.confidence)
        signal.last_correlated_at = now
        signal.updated_at = now
        if contradiction.requires_review:
            signal.status = SignalStatus.REQUIRES_REVIEW.value
            signal.requires_attention = True
            signal.contradiction_flag = True
            signal.contradiction_note = contradiction.note
        else:
            signal.status = SignalStatus.CORRELATED.value
            signal.requires_attention = False
            signal.contradiction_flag = False
            signal.contradiction_note = None

        notes = f"Public web correlation completed. Confidence: {result.confidence * 100:.1f}%"
        if contradiction.requires_review:
            notes += f". Contradiction confidence {contradiction.confidence * 100:.0f}% - requires review"

        try:
            self.audit.append(signal.signal_id, initiated_by, AuditAction.CORRELATED, notes=notes)
            self._commit()
        except (SQLAlchemyError, PersistenceError) as e:
            self.db.rollback()
            self._fail_job(job, f"Failed to store correlation result: {e}")
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to store correlation result: {e}") from e

        self.db.refresh(signal)
        self.db.refresh(job)

        metrics.record_correlation_job(JobStatus.COMPLETED.value, result.confidence)
        logger.info(
            "Correlation completed",
            signal_id=signal.signal_id,
            job_id=job.job_id,
            confidence=result.confidence,
            status=signal.status
        )

        return ResearchOutcome(
            job=job,
            summary=result.result_gist,
            contradiction=contradiction,
            sources=result.sources_queried,
            confidence=result.confidence,
        )

    def _start_job(self, signal: Signal, initiated_by: str) -> CorrelationJob:
        running = (
            self.db.query(CorrelationJob)
            .filter(
                CorrelationJob.signal_id == signal.signal_id,
                CorrelationJob.status == JobStatus.IN_PROGRESS.value
            )
            .first()
        )
        if running:
            raise ConflictError(
                f"Correlation job {running.job_id} is already in progress for signal {signal.signal_id}"
            )

        job = CorrelationJob(
            job_id=f"job_{uuid.uuid4().hex}",
            signal_id=signal.signal_id,
            status=JobStatus.IN_PROGRESS.value,
            initiated_by=str(initiated_by),
            started_at=datetime.utcnow(),
        )
        self.db.add(job)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(
                f"Correlation job already in progress for signal {signal.signal_id}"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to create correlation job: {e}") from e

        logger.info("Correlation job started", signal_id=signal.signal_id, job_id=job.job_id)
        return job

    def _fail_job(self, job: CorrelationJob, message: str):
        """Record a job as FAILED; the signal itself is left untouched."""
        job.status = JobStatus.FAILED.value
        job.finished_at = datetime.utcnow()
        job.error_message = message[:2000]
        self._commit()
        metrics.record_correlation_job(JobStatus.FAILED.value)

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Database write failed: {e}") from e
