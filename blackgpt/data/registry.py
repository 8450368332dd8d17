"""Builds the configured set of public source connectors."""
from typing import Dict, List, Optional

from config.settings import Settings, get_data_sources_config
from blackgpt.data.base_connector import BaseConnector
from blackgpt.data.coingecko import CoinGeckoConnector
from blackgpt.data.news_api import NewsApiConnector
from blackgpt.data.reddit import RedditConnector
from blackgpt.utils.logging import get_logger

logger = get_logger(__name__)

def build_connectors(settings: Settings, sources_config: Optional[Dict] = None) -> List[BaseConnector]:
    """
    Instantiate enabled connectors in a fixed order (news, social, market).
    The order is the order of sources_queried in correlation results.
    """
    sources_config = sources_config if sources_config is not None else get_data_sources_config()
    common = {
        'demo_mode': settings.DEMO_MODE,
        'timeout': settings.CONNECTOR_TIMEOUT_SECONDS,
    }

    factories = [
        ('news_api', lambda cfg: NewsApiConnector(api_key=settings.NEWS_API_KEY, config=cfg, **common)),
        ('reddit', lambda cfg: RedditConnector(
            client_id=settings.REDDIT_CLIENT_ID,
            client_secret=settings.REDDIT_CLIENT_SECRET,
            user_agent=settings.REDDIT_USER_AGENT,
            config=cfg,
            **common
        )),
        ('coingecko', lambda cfg: CoinGeckoConnector(config=cfg, **common)),
    ]

    connectors = []
    for key, factory in factories:
        cfg = sources_config.get(key) or {}
        if not cfg.get('enabled', True):
            logger.info("Connector disabled", source=key)
            continue
        connectors.append(factory(cfg))

    logger.info("Connectors configured", sources=[c.name for c in connectors], demo_mode=settings.DEMO_MODE)
    return connectors
