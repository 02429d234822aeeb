"""
Scrapers Module
Scraping provider boundary and the Apify implementation
"""
from .base import BaseScrapingProvider
from .apify_provider import ApifyProvider, encode_webhooks
from .actors import ACTORS, MAX_RESULTS_LIMIT, build_actor_input, get_actor_id


def get_scraping_provider() -> BaseScrapingProvider:
    """Default provider used by the web app and CLI"""
    return ApifyProvider()


__all__ = [
    "BaseScrapingProvider",
    "ApifyProvider",
    "ACTORS",
    "MAX_RESULTS_LIMIT",
    "build_actor_input",
    "encode_webhooks",
    "get_actor_id",
    "get_scraping_provider",
]
