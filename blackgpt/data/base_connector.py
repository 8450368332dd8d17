"""
Abstract public source connector interface.
All connectors must implement this interface.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import requests

from blackgpt.core.exceptions import ConnectorError
from blackgpt.utils.constants import DEFAULT_API_TIMEOUT
from blackgpt.utils.logging import get_logger
from blackgpt.utils.metrics import record_connector_query

logger = get_logger(__name__)

@dataclass
class SourceItem:
    """Normalized item returned by a connector."""
    title: str
    content: str
    url: Optional[str] = None
    published_at: Optional[datetime] = None
    relevance: float = 0.0

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['published_at'] = self.published_at.isoformat() if self.published_at else None
        return data

@dataclass
class CorrelationSource:
    """Standardized connector response."""
    source_name: str
    results: List[SourceItem] = field(default_factory=list)
    confidence: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'source_name': self.source_name,
            'results': [item.to_dict() for item in self.results],
            'confidence': self.confidence,
            'error': self.error,
        }

    @classmethod
    def failed(cls, source_name: str, error: str) -> "CorrelationSource":
        """Zero-confidence, empty result used for any connector failure."""
        return cls(source_name=source_name, results=[], confidence=0.0, error=error)

class BaseConnector(ABC):
    """
    Public source connector.

    query() never raises: transport errors, bad payloads and missing
    credentials all become a zero-confidence empty result.
    """

    name: str = "base"

    def __init__(self, config: Optional[Dict] = None, demo_mode: bool = False,
                 timeout: float = DEFAULT_API_TIMEOUT, session: Optional[requests.Session] = None):
        config = config or {}
        self.base_url = config.get('base_url', '')
        self.page_size = int(config.get('page_size', 10))
        self.timeout = float(timeout)
        self.demo_mode = demo_mode
        self.session = session or requests.Session()

    @property
    def has_credentials(self) -> bool:
        """Whether live queries are possible. Override for keyed APIs."""
        return True

    def query(self, keywords: Sequence[str]) -> CorrelationSource:
        """Query the source for the given keywords."""
        keywords = list(keywords)
        started = time.monotonic()

        if self.demo_mode or not self.has_credentials:
            logger.info("Connector in demo mode", source=self.name, keywords=keywords)
            result = CorrelationSource(
                source_name=self.name,
                results=self._mock_results(keywords),
                confidence=self.demo_confidence,
            )
            record_connector_query(self.name, 'demo', time.monotonic() - started)
            return result

        try:
            result = self._fetch(keywords)
        except requests.Timeout as e:
            logger.warning("Connector timed out", source=self.name, error=str(e))
            record_connector_query(self.name, 'timeout', time.monotonic() - started)
            return CorrelationSource.failed(self.name, f"timeout: {e}")
        except (requests.RequestException, ConnectorError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Connector query failed", source=self.name, error=str(e))
            record_connector_query(self.name, 'error', time.monotonic() - started)
            return CorrelationSource.failed(self.name, str(e))

        record_connector_query(self.name, 'ok', time.monotonic() - started)
        logger.info(
            "Connector query complete",
            source=self.name,
            results=len(result.results),
            confidence=result.confidence
        )
        return result

    def _get_json(self, url: str, **kwargs) -> Dict:
        """GET a JSON document with this connector's timeout."""
        response = self.session.get(url, timeout=self.timeout, **kwargs)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ConnectorError(self.name, "unexpected response shape")
        return payload

    @property
    @abstractmethod
    def demo_confidence(self) -> float:
        """Confidence reported alongside mock data."""
        pass

    @abstractmethod
    def _fetch(self, keywords: List[str]) -> CorrelationSource:
        """Perform the live query. May raise; query() isolates failures."""
        pass

    @abstractmethod
    def _mock_results(self, keywords: List[str]) -> List[SourceItem]:
        """Deterministic mock data for demo / no-credential mode."""
        pass
