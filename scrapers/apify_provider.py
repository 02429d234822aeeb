"""
Apify Provider
Starts actor runs over the Apify REST API and reads back their datasets
API docs: https://docs.apify.com/api/v2
"""
import base64
import json
from typing import Any, Dict, List, Optional
import logging

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import get_apify_settings
from core import ProviderRun, SourceKind
from utils.exceptions import BadRequestError, ConfigurationError, ProviderError
from .actors import (
    WEBHOOK_EVENT_TYPES,
    build_actor_input,
    get_actor_id,
    get_memory_mb,
    get_timeout_secs,
)
from .base import BaseScrapingProvider


logger = logging.getLogger(__name__)


def encode_webhooks(callback_url: str) -> str:
    """Ad-hoc webhook definition in the base64 form the run endpoint expects"""
    webhooks = [{"eventTypes": WEBHOOK_EVENT_TYPES, "requestUrl": callback_url}]
    return base64.b64encode(json.dumps(webhooks).encode("utf-8")).decode("ascii")


def _provider_run(data: Dict[str, Any]) -> ProviderRun:
    return ProviderRun(
        id=str(data.get("id") or ""),
        actor_id=data.get("actId"),
        status=str(data.get("status") or "READY"),
        started_at=data.get("startedAt"),
        finished_at=data.get("finishedAt"),
    )


class ApifyProvider(BaseScrapingProvider):
    """
    Apify scraping provider

    - one actor per source kind (see scrapers.actors)
    - completion is reported through an ad-hoc webhook per run
    - transport errors are retried, HTTP errors are not
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        settings = get_apify_settings()
        self.token = token or settings.token
        self.base_url = (base_url or settings.base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout
        self._session = client

    @property
    def name(self) -> str:
        return "Apify"

    def is_configured(self) -> bool:
        return bool(self.token)

    def _get_session(self) -> httpx.AsyncClient:
        if not self.is_configured():
            raise ConfigurationError("APIFY_TOKEN is required to talk to Apify")
        if self._session is None:
            self._session = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=httpx.Timeout(self.timeout),
            )
        return self._session

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        session = self._get_session()
        response = await session.request(method, path, **kwargs)
        response.raise_for_status()
        return response

    async def _call(self, action: str, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._send(method, path, **kwargs)
        except httpx.HTTPStatusError as e:
            self._log_error(f"{action} failed", e)
            detail = e.response.text[:500]
            if 400 <= e.response.status_code < 500:
                raise BadRequestError(
                    f"{action} rejected: {e.response.status_code}",
                    {"status_code": e.response.status_code, "body": detail},
                ) from e
            raise ProviderError(
                f"{action} failed: {e.response.status_code}",
                provider=self.name,
                status_code=e.response.status_code,
                body=detail,
            ) from e
        except httpx.HTTPError as e:
            self._log_error(f"{action} failed", e)
            raise ProviderError(f"{action} failed: {e}", provider=self.name) from e

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{action} returned invalid JSON", provider=self.name) from e

    async def start(
        self,
        source_kind: SourceKind,
        config: Dict[str, Any],
        callback_url: Optional[str] = None,
    ) -> ProviderRun:
        source_kind = SourceKind(source_kind)
        actor_id = get_actor_id(source_kind)
        actor_input = build_actor_input(source_kind, config)

        params: Dict[str, Any] = {
            "memory": get_memory_mb(source_kind),
            "timeout": get_timeout_secs(source_kind),
        }
        if callback_url:
            params["webhooks"] = encode_webhooks(callback_url)

        logger.info(f"[Apify] Starting actor {actor_id} for source type: {source_kind.value}")
        payload = await self._call(
            "Start actor run",
            "POST",
            f"/acts/{actor_id.replace('/', '~')}/runs",
            params=params,
            json=actor_input,
        )
        run = _provider_run((payload or {}).get("data") or {})
        if not run.id:
            raise ProviderError("Start actor run returned no run id", provider=self.name)
        logger.info(f"[Apify] Started run {run.id}")
        return run

    async def status(self, run_handle: str) -> ProviderRun:
        payload = await self._call("Get run status", "GET", f"/actor-runs/{run_handle}")
        return _provider_run((payload or {}).get("data") or {})

    async def fetch_dataset(self, run_handle: str, limit: int = 1000) -> List[Dict[str, Any]]:
        run = await self.status(run_handle)
        if run.status != "SUCCEEDED":
            raise ProviderError(
                f"Run not completed successfully. Status: {run.status}",
                provider=self.name,
                run_id=run_handle,
            )

        items = await self._call(
            "Fetch dataset",
            "GET",
            f"/actor-runs/{run_handle}/dataset/items",
            params={"limit": limit, "clean": "true", "format": "json"},
        )
        if not isinstance(items, list):
            raise ProviderError("Dataset response is not a list", provider=self.name, run_id=run_handle)

        logger.info(f"[Apify] Retrieved {len(items)} items from run {run_handle}")
        return [item for item in items if isinstance(item, dict)]

    async def abort(self, run_handle: str) -> ProviderRun:
        payload = await self._call("Abort run", "POST", f"/actor-runs/{run_handle}/abort")
        logger.info(f"[Apify] Aborted run {run_handle}")
        return _provider_run((payload or {}).get("data") or {})
