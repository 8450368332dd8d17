"""
Correlation Aggregator

Fans a signal's keywords out to every configured public source connector,
merges the results and scores the correlation.

Process:
1. Extract up to MAX_KEYWORDS keywords from the gist
2. Query all connectors concurrently, each under its own timeout
3. Aggregate confidence = mean of the connector confidences
4. Build a mechanical gist from the connectors that found something
5. Refine gist and assess contradictions with the summarizer, if any
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from blackgpt.core.summarizer import Contradiction, Summarizer
from blackgpt.data.base_connector import BaseConnector, CorrelationSource
from blackgpt.utils.constants import DEFAULT_API_TIMEOUT, MAX_KEYWORDS, MIN_KEYWORD_LENGTH, STOP_WORDS
from blackgpt.utils.logging import get_logger
from blackgpt.utils.metrics import record_connector_query

logger = get_logger(__name__)

NO_CORRELATION_GIST = (
    "No significant correlations found in public sources. "
    "This may indicate a unique or emerging signal."
)

@dataclass
class CorrelationResult:
    """Outcome of one correlation run."""
    result_gist: str
    confidence: float
    sources_queried: List[str]
    sources: List[CorrelationSource] = field(default_factory=list)
    contradiction: Contradiction = field(default_factory=Contradiction)
    keywords: List[str] = field(default_factory=list)
    model_used: Optional[str] = None

def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """
    Extract query keywords from free text.
    Lowercased, punctuation stripped, short tokens and stop words dropped,
    deduplicated in order of first appearance.
    """
    words = re.sub(r'[^\w\s]', '', (text or '').lower()).split()

    keywords = []
    for word in words:
        if len(word) < MIN_KEYWORD_LENGTH or word in STOP_WORDS or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords

def aggregate_confidence(sources: Sequence[CorrelationSource]) -> float:
    """Arithmetic mean of connector confidences; sources that found nothing still count."""
    if not sources:
        return 0.0
    return float(np.mean([source.confidence for source in sources]))

def generate_correlation_gist(sources: Sequence[CorrelationSource]) -> str:
    """Human-readable summary of which sources corroborated the signal."""
    findings = [
        f"{source.source_name}: Found {len(source.results)} related items "
        f"(confidence: {source.confidence * 100:.0f}%)"
        for source in sources
        if source.results
    ]

    if not findings:
        return NO_CORRELATION_GIST

    relevance = 'high' if len(findings) > 1 else 'moderate'
    return (
        "Correlation analysis:\n" + "\n".join(findings) +
        f"\n\nOriginal signal relevance appears {relevance} based on public data."
    )

class CorrelationAggregator:
    """Queries connectors in parallel and scores the combined evidence."""

    def __init__(self, connectors: Sequence[BaseConnector], summarizer: Optional[Summarizer] = None,
                 default_timeout: float = DEFAULT_API_TIMEOUT):
        self.connectors = list(connectors)
        self.summarizer = summarizer
        self.default_timeout = default_timeout

    async def correlate(self, signal) -> CorrelationResult:
        """Correlate a signal (anything with gist_text) against public sources."""
        keywords = extract_keywords(signal.gist_text)
        logger.info("Starting correlation", signal_id=getattr(signal, 'signal_id', None), keywords=keywords)

        sources = await asyncio.gather(
            *(self._query_connector(connector, keywords) for connector in self.connectors)
        )
        sources = list(sources)

        confidence = aggregate_confidence(sources)
        result_gist = generate_correlation_gist(sources)
        contradiction = Contradiction()
        model_used = None

        if self.summarizer is not None:
            try:
                summary = await self.summarizer.summarize(sources, signal.gist_text)
                result_gist = summary.gist or result_gist
                model_used = summary.model_used
                contradiction = await self.summarizer.detect_contradictions(result_gist, sources)
            except Exception as e:
                # Summarization is optional; keep the mechanical gist
                logger.warning("Summarizer unavailable, using mechanical gist", error=str(e))
                result_gist = generate_correlation_gist(sources)
                contradiction = Contradiction()
                model_used = None

        logger.info(
            "Correlation aggregated",
            sources=[s.source_name for s in sources],
            confidence=confidence,
            contradiction_confidence=contradiction.confidence
        )

        return CorrelationResult(
            result_gist=result_gist,
            confidence=confidence,
            sources_queried=[s.source_name for s in sources],
            sources=sources,
            contradiction=contradiction,
            keywords=keywords,
            model_used=model_used,
        )

    async def _query_connector(self, connector: BaseConnector, keywords: List[str]) -> CorrelationSource:
        """Run one blocking connector query in a worker thread under its timeout."""
        timeout = getattr(connector, 'timeout', None) or self.default_timeout
        started = time.monotonic()
        try:
            return await asyncio.wait_for(asyncio.to_thread(connector.query, keywords), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Connector exceeded timeout", source=connector.name, timeout=timeout)
            record_connector_query(connector.name, 'timeout', time.monotonic() - started)
            return CorrelationSource.failed(connector.name, f"timed out after {timeout}s")
        except Exception as e:
            # A connector broke its no-raise contract; isolate it all the same
            logger.error("Connector raised", source=connector.name, error=str(e))
            record_connector_query(connector.name, 'error', time.monotonic() - started)
            return CorrelationSource.failed(connector.name, str(e))
