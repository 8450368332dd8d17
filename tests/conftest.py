"""Shared fixtures. Tests run against in-memory SQLite with stub connectors."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"
os.environ["DEMO_MODE"] = "true"
os.environ["OPENAI_API_KEY"] = ""

import asyncio
import threading
import time
from datetime import datetime
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from blackgpt.core.correlation_aggregator import CorrelationAggregator
from blackgpt.core.provenance_validator import ProvenanceValidator
from blackgpt.core.signal_lifecycle import SignalInput, SignalLifecycleManager
from blackgpt.core.summarizer import Contradiction, Summarizer, SummaryResult
from blackgpt.data.base_connector import CorrelationSource, SourceItem
from blackgpt.models.base import Base, SessionLocal, engine
from blackgpt.models import audit_log, correlation_jobs, signals  # noqa: F401
from config.settings import Settings


class StubConnector:
    """Connector double with a fixed confidence, optional delay or failure."""

    def __init__(self, name: str, confidence: float, results: int = 1,
                 delay: float = 0.0, error: Optional[Exception] = None, timeout: float = 5.0):
        self.name = name
        self.confidence = confidence
        self.results = results
        self.delay = delay
        self.error = error
        self.timeout = timeout
        self.calls: List[List[str]] = []
        self.started = threading.Event()

    def query(self, keywords):
        self.calls.append(list(keywords))
        self.started.set()
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        items = [
            SourceItem(title=f"{self.name} item {i}", content="related coverage", url=f"https://example.org/{i}")
            for i in range(self.results)
        ]
        return CorrelationSource(source_name=self.name, results=items, confidence=self.confidence)


class StubSummarizer(Summarizer):
    """Summarizer double returning canned output."""

    def __init__(self, gist: str = "Summarized gist", contradiction: Optional[Contradiction] = None,
                 error: Optional[Exception] = None):
        self.gist = gist
        self.contradiction = contradiction or Contradiction()
        self.error = error

    async def summarize(self, sources, original_gist):
        if self.error:
            raise self.error
        return SummaryResult(gist=self.gist, confidence=0.9, model_used="stub-model")

    async def detect_contradictions(self, gist, sources):
        await asyncio.sleep(0)
        return self.contradiction


def standard_connectors():
    """News/social/market stand-ins reporting 0.8, 0.2 and 0.6."""
    return [
        StubConnector("NewsAPI", 0.8),
        StubConnector("Reddit", 0.2, results=0),
        StubConnector("CoinGecko", 0.6),
    ]


def make_input(**overrides) -> SignalInput:
    data = dict(
        script_name="BTC Test",
        date_from=datetime(2024, 1, 1),
        date_to=datetime(2024, 1, 7),
        gist_text="Trading volume increased across major bitcoin exchanges",
        provenance_tags=["manual:human-upload"],
        created_by="user-1",
    )
    data.update(overrides)
    return SignalInput(**data)


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def connectors():
    return standard_connectors()


@pytest.fixture
def aggregator(connectors):
    return CorrelationAggregator(connectors, summarizer=None, default_timeout=5.0)


@pytest.fixture
def lifecycle(db_session, aggregator):
    return SignalLifecycleManager(db=db_session, validator=ProvenanceValidator(), aggregator=aggregator)


@pytest.fixture
def test_settings():
    return Settings(DATABASE_URL="sqlite://", ENV="test", DEMO_MODE=True, OPENAI_API_KEY="")


@pytest.fixture
def make_client(db_session, test_settings):
    """Factory for a TestClient over an app wired with the given doubles."""
    from blackgpt.api.main import create_app

    def _make(connectors=None, summarizer=None):
        app = create_app(
            settings=test_settings,
            connectors=standard_connectors() if connectors is None else connectors,
            summarizer=summarizer,
        )
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    with make_client() as test_client:
        yield test_client
