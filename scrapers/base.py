"""
Base Scraping Provider
Abstract boundary for the external service that runs scrapers
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

from core import ProviderRun, SourceKind


logger = logging.getLogger(__name__)


class BaseScrapingProvider(ABC):
    """
    Scraping provider abstraction.

    The pipeline only ever talks to this interface, so tests substitute
    fakes and production plugs in the Apify client. Concrete providers raise
    ProviderError (or BadRequestError for rejected input) on failure.
    """

    def __init__(self):
        self._session = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name used in logs and run metadata"""
        pass

    @abstractmethod
    async def start(
        self,
        source_kind: SourceKind,
        config: Dict[str, Any],
        callback_url: Optional[str] = None,
    ) -> ProviderRun:
        """
        Start a run for ``source_kind``.

        Args:
            source_kind: which source to scrape
            config: the job's validated config dict
            callback_url: where completion events should be posted

        Returns:
            the provider's run handle
        """
        pass

    @abstractmethod
    async def status(self, run_handle: str) -> ProviderRun:
        """Current provider-side state of a run"""
        pass

    @abstractmethod
    async def fetch_dataset(self, run_handle: str, limit: int = 1000) -> List[Dict[str, Any]]:
        """Raw items produced by a finished run"""
        pass

    @abstractmethod
    async def abort(self, run_handle: str) -> ProviderRun:
        """Stop a run that is still going"""
        pass

    def is_configured(self) -> bool:
        """Override to check for credentials"""
        return True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Release the HTTP session"""
        if self._session is not None:
            await self._session.aclose()
            self._session = None

    def _log_error(self, message: str, error: Exception):
        logger.error(f"[{self.name}] {message}: {error}")
