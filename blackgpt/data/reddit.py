"""Reddit public discussion connector."""
from datetime import datetime
from typing import Dict, List

from blackgpt.core.exceptions import ConnectorError
from blackgpt.data.base_connector import BaseConnector, CorrelationSource, SourceItem

class RedditConnector(BaseConnector):
    """
    Searches public Reddit posts via the search JSON endpoint.
    Serves mock posts unless REDDIT_CLIENT_ID/SECRET are configured.
    """

    name = "Reddit"
    demo_confidence = 0.6

    def __init__(self, client_id: str = "", client_secret: str = "",
                 user_agent: str = "BlackGPT:v1.0.0", **kwargs):
        super().__init__(**kwargs)
        self.client_id = client_id
        self.client_secret = client_secret
        self.session.headers.update({'User-Agent': user_agent})

    @property
    def has_credentials(self) -> bool:
        """
        Switch between live and mock mode only. search.json is public and
        queried unauthenticated; the client id and secret are not sent.
        """
        return bool(self.client_id and self.client_secret)

    def _fetch(self, keywords: List[str]) -> CorrelationSource:
        if not keywords:
            return CorrelationSource(source_name=self.name, results=[], confidence=0.2)

        payload = self._get_json(
            f"{self.base_url}/search.json",
            params={
                'q': ' OR '.join(keywords),
                'limit': self.page_size,
                'sort': 'relevance',
            },
        )

        listing = payload.get('data') or {}
        if not isinstance(listing, dict):
            raise ConnectorError(self.name, "unexpected listing shape")

        posts = [
            child['data'] for child in listing.get('children') or []
            if isinstance(child, dict) and isinstance(child.get('data'), dict)
        ]
        results = [self._to_item(post) for post in posts]

        return CorrelationSource(
            source_name=self.name,
            results=results,
            confidence=0.6 if results else 0.2,
        )

    def _to_item(self, post: Dict) -> SourceItem:
        created = post.get('created_utc')
        score = post.get('score') or 0
        return SourceItem(
            title=post.get('title') or '',
            content=post.get('selftext') or '',
            url=f"https://reddit.com{post['permalink']}" if post.get('permalink') else None,
            published_at=datetime.utcfromtimestamp(created) if created else None,
            relevance=min(1.0, max(0.0, score / 1000)),
        )

    def _mock_results(self, keywords: List[str]) -> List[SourceItem]:
        topic = ' '.join(keywords) or 'market trends'
        return [
            SourceItem(
                title=f"Demo: Discussion about {topic}",
                content="Demo thread on r/CryptoCurrency",
                url="https://reddit.com/r/CryptoCurrency/demo",
                relevance=0.75,
            )
        ]
