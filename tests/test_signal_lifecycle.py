"""Tests for the signal state machine, audit trail and correlation jobs."""
import asyncio
import threading
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from blackgpt.core.correlation_aggregator import CorrelationAggregator
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
from blackgpt.core.signal_lifecycle import SignalFilters, SignalLifecycleManager
from blackgpt.core.summarizer import Contradiction
from blackgpt.models.audit_log import AuditImmutableError, AuditLog
from blackgpt.models.base import SessionLocal
from blackgpt.models.correlation_jobs import CorrelationJob
from blackgpt.models.signals import Signal, SignalStatus

from conftest import StubConnector, StubSummarizer, make_input, standard_connectors


def actions(trail):
    return [entry.action for entry in trail]


class TestCreateSignal:

    def test_valid_signal_is_unverified_with_created_audit(self, lifecycle):
        signal = lifecycle.create_signal(make_input())

        assert signal.signal_id.startswith("sig_")
        assert signal.status == SignalStatus.UNVERIFIED.value
        assert signal.confidence_score == 0.0
        assert not signal.requires_attention
        assert actions(lifecycle.get_audit_trail(signal.signal_id)) == ["CREATED"]

    def test_supplied_confidence_kept(self, lifecycle):
        signal = lifecycle.create_signal(make_input(confidence_score=0.75))
        assert signal.confidence_score == 0.75

    def test_soft_flag_requires_review(self, lifecycle):
        signal = lifecycle.create_signal(make_input(gist_text="Anonymous whale moved 5,000 BTC"))

        assert signal.status == SignalStatus.REQUIRES_REVIEW.value
        assert signal.requires_attention
        trail = lifecycle.get_audit_trail(signal.signal_id)
        assert actions(trail) == ["CREATED"]
        assert "flagged" in trail[0].notes

    def test_disallowed_content_writes_nothing(self, lifecycle, db_session):
        with pytest.raises(ValidationError, match="disallowed"):
            lifecycle.create_signal(make_input(gist_text="Bought on the dark web last night"))

        assert db_session.query(Signal).count() == 0
        assert db_session.query(AuditLog).count() == 0

    @pytest.mark.parametrize("overrides", [
        {"provenance_tags": []},
        {"provenance_tags": ["random:scrape"]},
        {"gist_text": "too short"},
        {"gist_text": "x" * 5001},
        {"script_name": "   "},
        {"date_from": datetime(2024, 2, 1), "date_to": datetime(2024, 1, 1)},
        {"confidence_score": 1.5},
        {"created_by": ""},
    ])
    def test_invalid_input_rejected(self, lifecycle, db_session, overrides):
        with pytest.raises(ValidationError):
            lifecycle.create_signal(make_input(**overrides))
        assert db_session.query(Signal).count() == 0

    def test_commit_failure_writes_nothing(self, lifecycle, db_session, monkeypatch):
        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(PersistenceError, match="Database write failed"):
            lifecycle.create_signal(make_input())
        monkeypatch.undo()

        assert db_session.query(Signal).count() == 0
        assert db_session.query(AuditLog).count() == 0

    def test_audit_write_failure_writes_nothing(self, lifecycle, db_session, monkeypatch):
        def failing_append(*args, **kwargs):
            raise SQLAlchemyError("audit table locked")

        monkeypatch.setattr(lifecycle.audit, "append", failing_append)
        with pytest.raises(PersistenceError, match="Failed to store signal"):
            lifecycle.create_signal(make_input())

        assert db_session.query(Signal).count() == 0
        assert db_session.query(AuditLog).count() == 0


class TestReadSignals:

    def test_get_signal_is_stable(self, lifecycle):
        signal_id = lifecycle.create_signal(make_input()).signal_id

        first = lifecycle.get_signal(signal_id)
        snapshot = (first.signal_id, first.status, first.confidence_score, first.gist_text)
        second = lifecycle.get_signal(signal_id)

        assert (second.signal_id, second.status, second.confidence_score, second.gist_text) == snapshot

    def test_get_unknown_signal(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.get_signal("sig_missing")

    def test_audit_trail_of_unknown_signal(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.get_audit_trail("sig_missing")

    def test_list_filters_and_paginates(self, lifecycle):
        created = [lifecycle.create_signal(make_input(script_name=f"Signal {i}")) for i in range(5)]
        lifecycle.verify_signal(created[0].signal_id, "reviewer", "accept")

        page = lifecycle.list_signals(SignalFilters(page=1, limit=2))
        assert page.total == 5
        assert page.total_pages == 3
        assert [s.script_name for s in page.signals] == ["Signal 4", "Signal 3"]

        verified = lifecycle.list_signals(SignalFilters(status=SignalStatus.HUMAN_VERIFIED))
        assert [s.signal_id for s in verified.signals] == [created[0].signal_id]

    def test_list_confidence_range(self, lifecycle):
        lifecycle.create_signal(make_input(confidence_score=0.2))
        lifecycle.create_signal(make_input(confidence_score=0.9))

        page = lifecycle.list_signals(SignalFilters(min_confidence=0.5))
        assert [s.confidence_score for s in page.signals] == [0.9]

    def test_list_limit_clamped(self, lifecycle):
        page = lifecycle.list_signals(SignalFilters(limit=1000))
        assert page.limit == 100

    def test_list_rejects_bad_page(self, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.list_signals(SignalFilters(page=0))

    def test_stats(self, lifecycle):
        lifecycle.create_signal(make_input())
        lifecycle.create_signal(make_input(gist_text="Untraceable wallet accumulating coins"))

        stats = lifecycle.signal_stats()
        assert stats["total"] == 2
        assert stats["requires_attention"] == 1
        assert stats["by_status"]["UNVERIFIED"] == 1
        assert stats["by_status"]["REQUIRES_REVIEW"] == 1
        assert stats["by_status"]["REJECTED"] == 0


class TestVerifySignal:

    @pytest.mark.parametrize("action,status,audit,attention", [
        ("accept", SignalStatus.HUMAN_VERIFIED, "VERIFIED", False),
        ("reject", SignalStatus.REJECTED, "REJECTED", False),
        ("followup", SignalStatus.REQUIRES_REVIEW, "FLAGGED", True),
    ])
    def test_transitions(self, lifecycle, action, status, audit, attention):
        signal_id = lifecycle.create_signal(make_input()).signal_id

        signal = lifecycle.verify_signal(signal_id, "reviewer-7", action, notes="looked at it")

        assert signal.status == status.value
        assert signal.requires_attention is attention
        trail = lifecycle.get_audit_trail(signal_id)
        assert actions(trail) == [audit, "CREATED"]
        assert trail[0].actor == "reviewer-7"
        assert trail[0].notes == "looked at it"

    def test_accept_clears_attention_on_flagged_signal(self, lifecycle):
        signal_id = lifecycle.create_signal(make_input(gist_text="Anonymous desk buying ETH")).signal_id
        signal = lifecycle.verify_signal(signal_id, "reviewer", "accept")
        assert not signal.requires_attention

    def test_invalid_action(self, lifecycle):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        with pytest.raises(InvalidActionError):
            lifecycle.verify_signal(signal_id, "reviewer", "approve")
        assert actions(lifecycle.get_audit_trail(signal_id)) == ["CREATED"]

    def test_invalid_action_is_validation_error(self):
        assert issubclass(InvalidActionError, ValidationError)

    def test_unknown_signal(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.verify_signal("sig_missing", "reviewer", "accept")

    def test_rejected_is_terminal(self, lifecycle):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        lifecycle.verify_signal(signal_id, "reviewer", "reject")

        for action in ("accept", "reject", "followup"):
            with pytest.raises(InvalidTransitionError):
                lifecycle.verify_signal(signal_id, "reviewer", action)

        assert lifecycle.get_signal(signal_id).status == SignalStatus.REJECTED.value
        assert actions(lifecycle.get_audit_trail(signal_id)) == ["REJECTED", "CREATED"]

    def test_reject_from_any_non_terminal_state(self, lifecycle):
        for first in ("accept", "followup"):
            signal_id = lifecycle.create_signal(make_input()).signal_id
            lifecycle.verify_signal(signal_id, "reviewer", first)
            assert lifecycle.verify_signal(signal_id, "reviewer", "reject").status == SignalStatus.REJECTED.value


class TestResearchPublicWeb:

    @pytest.mark.asyncio
    async def test_correlates_and_raises_confidence(self, lifecycle):
        signal_id = lifecycle.create_signal(make_input()).signal_id

        outcome = await lifecycle.research_public_web(signal_id, "user-1")

        assert outcome.confidence == pytest.approx(0.5333, abs=1e-3)
        assert outcome.sources == ["NewsAPI", "Reddit", "CoinGecko"]
        assert outcome.job.status == "COMPLETED"
        assert outcome.job.finished_at is not None
        assert outcome.job.correlation_confidence == pytest.approx(outcome.confidence)

        signal = lifecycle.get_signal(signal_id)
        assert signal.status == SignalStatus.CORRELATED.value
        assert signal.confidence_score == pytest.approx(0.5333, abs=1e-3)
        assert signal.last_correlated_at is not None
        trail = lifecycle.get_audit_trail(signal_id)
        assert actions(trail) == ["CORRELATED", "CREATED"]
        assert "53.3%" in trail[0].notes

    @pytest.mark.asyncio
    async def test_confidence_never_lowered(self, lifecycle):
        signal_id = lifecycle.create_signal(make_input(confidence_score=0.9)).signal_id
        outcome = await lifecycle.research_public_web(signal_id, "user-1")

        assert outcome.confidence < 0.9
        assert lifecycle.get_signal(signal_id).confidence_score == 0.9

    @pytest.mark.asyncio
    async def test_contradiction_requires_review(self, db_session):
        summarizer = StubSummarizer(contradiction=Contradiction(flag=True, confidence=0.6, note="Volumes fell"))
        lifecycle = SignalLifecycleManager(
            db_session, ProvenanceValidator(), CorrelationAggregator(standard_connectors(), summarizer)
        )
        signal_id = lifecycle.create_signal(make_input()).signal_id

        outcome = await lifecycle.research_public_web(signal_id, "user-1")

        assert outcome.summary == "Summarized gist"
        assert outcome.contradiction.requires_review
        signal = lifecycle.get_signal(signal_id)
        assert signal.status == SignalStatus.REQUIRES_REVIEW.value
        assert signal.requires_attention
        assert signal.contradiction_flag
        assert signal.contradiction_note == "Volumes fell"
        assert outcome.job.contradiction_confidence == pytest.approx(0.6)
        assert outcome.job.model_used == "stub-model"

    @pytest.mark.asyncio
    async def test_contradiction_at_threshold_is_correlated(self, db_session):
        summarizer = StubSummarizer(contradiction=Contradiction(flag=True, confidence=0.4, note="minor"))
        lifecycle = SignalLifecycleManager(
            db_session, ProvenanceValidator(), CorrelationAggregator(standard_connectors(), summarizer)
        )
        signal_id = lifecycle.create_signal(make_input()).signal_id

        await lifecycle.research_public_web(signal_id, "user-1")

        signal = lifecycle.get_signal(signal_id)
        assert signal.status == SignalStatus.CORRELATED.value
        assert not signal.contradiction_flag

    @pytest.mark.asyncio
    async def test_rejected_signal_cannot_be_researched(self, lifecycle, db_session):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        lifecycle.verify_signal(signal_id, "reviewer", "reject")

        with pytest.raises(InvalidTransitionError):
            await lifecycle.research_public_web(signal_id, "user-1")
        assert db_session.query(CorrelationJob).count() == 0

    @pytest.mark.asyncio
    async def test_unknown_signal(self, lifecycle):
        with pytest.raises(NotFoundError):
            await lifecycle.research_public_web("sig_missing", "user-1")

    @pytest.mark.asyncio
    async def test_research_allowed_after_correlation(self, lifecycle):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        await lifecycle.research_public_web(signal_id, "user-1")
        await lifecycle.research_public_web(signal_id, "user-2")

        assert len(lifecycle.get_signal(signal_id).correlation_jobs) == 2
        assert actions(lifecycle.get_audit_trail(signal_id)) == ["CORRELATED", "CORRELATED", "CREATED"]

    @pytest.mark.asyncio
    async def test_concurrent_triggers_create_one_job(self, db_session):
        slow = StubConnector("NewsAPI", 0.8, delay=0.3)
        aggregator = CorrelationAggregator([slow, StubConnector("Reddit", 0.2)])
        first = SignalLifecycleManager(db_session, ProvenanceValidator(), aggregator)
        other_session = SessionLocal()
        second = SignalLifecycleManager(other_session, ProvenanceValidator(), aggregator)
        signal_id = first.create_signal(make_input()).signal_id

        async def trigger_while_running():
            await asyncio.to_thread(slow.started.wait, 5)
            return await second.research_public_web(signal_id, "user-2")

        try:
            results = await asyncio.gather(
                first.research_public_web(signal_id, "user-1"),
                trigger_while_running(),
                return_exceptions=True,
            )
        finally:
            other_session.close()

        assert isinstance(results[1], ConflictError)
        assert results[0].job.status == "COMPLETED"
        assert db_session.query(CorrelationJob).count() == 1
        assert actions(first.get_audit_trail(signal_id)) == ["CORRELATED", "CREATED"]

    @pytest.mark.asyncio
    async def test_session_work_runs_off_the_event_loop(self, lifecycle, db_session, monkeypatch):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        loop_thread = threading.get_ident()
        commit_threads = []
        real_commit = db_session.commit

        def tracking_commit():
            commit_threads.append(threading.get_ident())
            real_commit()

        monkeypatch.setattr(db_session, "commit", tracking_commit)
        await lifecycle.research_public_web(signal_id, "user-1")

        assert len(commit_threads) == 2
        assert loop_thread not in commit_threads

    @pytest.mark.asyncio
    async def test_aggregation_failure_marks_job_failed(self, lifecycle, db_session, monkeypatch):
        signal_id = lifecycle.create_signal(make_input()).signal_id

        async def broken(signal):
            raise RuntimeError("aggregator exploded")

        monkeypatch.setattr(lifecycle.aggregator, "correlate", broken)

        with pytest.raises(CorrelationError) as excinfo:
            await lifecycle.research_public_web(signal_id, "user-1")

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        job = db_session.query(CorrelationJob).one()
        assert excinfo.value.job_id == job.job_id
        assert job.status == "FAILED"
        assert "aggregator exploded" in job.error_message

        signal = lifecycle.get_signal(signal_id)
        assert signal.status == SignalStatus.UNVERIFIED.value
        assert signal.confidence_score == 0.0
        assert actions(lifecycle.get_audit_trail(signal_id)) == ["CREATED"]

    @pytest.mark.asyncio
    async def test_failed_job_does_not_block_retry(self, lifecycle, monkeypatch):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        original = lifecycle.aggregator.correlate

        async def broken(signal):
            raise RuntimeError("transient")

        monkeypatch.setattr(lifecycle.aggregator, "correlate", broken)
        with pytest.raises(CorrelationError):
            await lifecycle.research_public_web(signal_id, "user-1")

        monkeypatch.setattr(lifecycle.aggregator, "correlate", original)
        outcome = await lifecycle.research_public_web(signal_id, "user-1")
        assert outcome.job.status == "COMPLETED"

    @pytest.mark.asyncio
    async def test_result_commit_failure_marks_job_failed(self, lifecycle, db_session, monkeypatch):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        real_commit = db_session.commit
        calls = []

        def commit_failing_on_result():
            calls.append(1)
            if len(calls) == 2:
                raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
            real_commit()

        monkeypatch.setattr(db_session, "commit", commit_failing_on_result)
        with pytest.raises(PersistenceError):
            await lifecycle.research_public_web(signal_id, "user-1")
        monkeypatch.setattr(db_session, "commit", real_commit)

        job = db_session.query(CorrelationJob).one()
        assert job.status == "FAILED"
        assert "Failed to store correlation result" in job.error_message

        signal = lifecycle.get_signal(signal_id)
        assert signal.status == SignalStatus.UNVERIFIED.value
        assert signal.confidence_score == 0.0
        assert signal.last_correlated_at is None
        assert actions(lifecycle.get_audit_trail(signal_id)) == ["CREATED"]


class TestAuditTrail:

    @pytest.mark.asyncio
    async def test_hash_chain_verifies_after_transitions(self, lifecycle):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        lifecycle.verify_signal(signal_id, "reviewer", "followup")
        await lifecycle.research_public_web(signal_id, "user-1")
        lifecycle.verify_signal(signal_id, "reviewer", "accept")

        trail = lifecycle.get_audit_trail(signal_id)
        assert actions(trail) == ["VERIFIED", "CORRELATED", "FLAGGED", "CREATED"]
        assert trail[-1].previous_hash is None
        for newer, older in zip(trail, trail[1:]):
            assert newer.previous_hash == older.event_hash
            assert newer.timestamp > older.timestamp
        assert lifecycle.verify_audit_chain(signal_id)

    def test_tampering_breaks_chain(self, lifecycle, db_session):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        lifecycle.verify_signal(signal_id, "reviewer", "accept")

        db_session.execute(
            AuditLog.__table__.update()
            .where(AuditLog.signal_id == signal_id)
            .where(AuditLog.action == "VERIFIED")
            .values(notes="edited later")
        )
        db_session.commit()
        db_session.expire_all()

        assert not lifecycle.verify_audit_chain(signal_id)

    def test_orm_update_blocked(self, lifecycle, db_session):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        entry = lifecycle.get_audit_trail(signal_id)[0]

        entry.notes = "rewritten"
        with pytest.raises(AuditImmutableError):
            db_session.flush()
        db_session.rollback()

    def test_orm_delete_blocked(self, lifecycle, db_session):
        signal_id = lifecycle.create_signal(make_input()).signal_id
        entry = lifecycle.get_audit_trail(signal_id)[0]

        db_session.delete(entry)
        with pytest.raises(AuditImmutableError):
            db_session.flush()
        db_session.rollback()

    def test_audits_isolated_per_signal(self, lifecycle):
        first = lifecycle.create_signal(make_input()).signal_id
        second = lifecycle.create_signal(make_input()).signal_id
        lifecycle.verify_signal(first, "reviewer", "accept")

        assert actions(lifecycle.get_audit_trail(second)) == ["CREATED"]
        assert lifecycle.get_audit_trail(second)[0].previous_hash is None
