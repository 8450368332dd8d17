"""
NewsAPI connector for licensed news coverage.
Requires NEWS_API_KEY; without it the connector serves mock articles.
"""
from datetime import datetime
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from blackgpt.data.base_connector import BaseConnector, CorrelationSource, SourceItem

class NewsApiConnector(BaseConnector):
    """Searches https://newsapi.org/v2/everything."""

    name = "NewsAPI"
    demo_confidence = 0.7

    def __init__(self, api_key: str = "", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    def _fetch(self, keywords: List[str]) -> CorrelationSource:
        if not keywords:
            return CorrelationSource(source_name=self.name, results=[], confidence=0.2)

        payload = self._get_json(
            f"{self.base_url}/everything",
            params={
                'q': ' OR '.join(keywords),
                'language': 'en',
                'sortBy': 'relevancy',
                'pageSize': self.page_size,
            },
            headers={'X-Api-Key': self.api_key},
        )

        articles = [a for a in payload.get('articles') or [] if isinstance(a, dict)]
        results = [self._to_item(article) for article in articles[:self.page_size]]
        total = payload.get('totalResults') or 0

        return CorrelationSource(
            source_name=self.name,
            results=results,
            confidence=0.8 if total > 0 else 0.2,
        )

    def _to_item(self, article: Dict) -> SourceItem:
        description = article.get('description') or ''
        # Descriptions frequently carry inline HTML
        description = BeautifulSoup(description, 'html.parser').get_text(' ', strip=True)
        return SourceItem(
            title=article.get('title') or '',
            content=description,
            url=article.get('url'),
            published_at=self._parse_date(article.get('publishedAt')),
            relevance=0.8,
        )

    def _parse_date(self, text: Optional[str]) -> Optional[datetime]:
        """Parse ISO timestamp, tolerating a trailing Z."""
        if not text:
            return None
        try:
            return datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            return None

    def _mock_results(self, keywords: List[str]) -> List[SourceItem]:
        topic = ' '.join(keywords) or 'market'
        return [
            SourceItem(
                title=f"Demo: {topic} shows significant market movement",
                content="Demo article from licensed news feed",
                url="https://newsapi.org/demo",
                relevance=0.8,
            )
        ]
