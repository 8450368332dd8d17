"""
CoinGecko market data connector.
Free tier, no API key needed.
"""
from typing import Dict, List

from blackgpt.data.base_connector import BaseConnector, CorrelationSource, SourceItem

class CoinGeckoConnector(BaseConnector):
    """Searches coins on https://api.coingecko.com/api/v3/search."""

    name = "CoinGecko"
    demo_confidence = 0.8

    def _fetch(self, keywords: List[str]) -> CorrelationSource:
        results: List[SourceItem] = []
        seen = set()

        # CoinGecko search takes a single term, so query each keyword
        for keyword in keywords:
            payload = self._get_json(f"{self.base_url}/search", params={'query': keyword})
            for coin in payload.get('coins') or []:
                if not isinstance(coin, dict):
                    continue
                coin_id = coin.get('id')
                if not coin_id or coin_id in seen:
                    continue
                seen.add(coin_id)
                results.append(self._to_item(coin))
            if len(results) >= self.page_size:
                break

        results = results[:self.page_size]
        return CorrelationSource(
            source_name=self.name,
            results=results,
            confidence=0.7 if results else 0.2,
        )

    def _to_item(self, coin: Dict) -> SourceItem:
        rank = coin.get('market_cap_rank') or 'N/A'
        return SourceItem(
            title=f"{coin.get('name')} ({coin.get('symbol')})",
            content=f"Market Cap Rank: {rank}",
            url=f"https://www.coingecko.com/en/coins/{coin['id']}",
            relevance=0.7,
        )

    def _mock_results(self, keywords: List[str]) -> List[SourceItem]:
        return [
            SourceItem(
                title="Bitcoin (BTC)",
                content="Demo: price 45000 USD, 24h change +2.5%, volume 28B USD",
                url="https://www.coingecko.com/en/coins/bitcoin",
                relevance=0.7,
            )
        ]
