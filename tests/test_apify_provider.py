from __future__ import annotations

import base64
import json

import httpx
import pytest

from core import SourceKind
from scrapers import ApifyProvider, build_actor_input, encode_webhooks, get_actor_id
from utils.exceptions import BadRequestError, ConfigurationError, ProviderError


BASE_URL = "https://api.apify.test/v2"
CALLBACK_URL = "https://hooks.example.com/api/webhooks/apify"


def _provider(handler) -> ApifyProvider:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return ApifyProvider(token="test-token", base_url=BASE_URL, client=client)


@pytest.mark.asyncio
async def test_start_posts_actor_input_with_webhook() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            201,
            json={"data": {"id": "run_abc", "actId": "compass~google-maps-reviews-scraper", "status": "READY"}},
        )

    async with _provider(handler) as provider:
        run = await provider.start(SourceKind.GOOGLE_REVIEWS, {"placeIds": ["ChIJ123"], "max_results": 500}, CALLBACK_URL)

    assert run.id == "run_abc"
    assert seen["method"] == "POST"
    assert seen["path"] == "/v2/acts/compass~google-maps-reviews-scraper/runs"
    assert seen["params"]["memory"] == "1024"
    assert seen["params"]["timeout"] == "3600"
    webhooks = json.loads(base64.b64decode(seen["params"]["webhooks"]))
    assert webhooks[0]["requestUrl"] == CALLBACK_URL
    assert "ACTOR.RUN.SUCCEEDED" in webhooks[0]["eventTypes"]
    assert seen["body"]["placeIds"] == ["ChIJ123"]
    assert seen["body"]["maxReviews"] == 50


@pytest.mark.asyncio
async def test_fetch_dataset_requires_succeeded_run() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/dataset/items"):
            return httpx.Response(200, json=[{"reviewId": "a", "text": "hi"}, "junk"])
        return httpx.Response(200, json={"data": {"id": "run_abc", "status": "SUCCEEDED"}})

    async with _provider(handler) as provider:
        items = await provider.fetch_dataset("run_abc", limit=10)

    assert items == [{"reviewId": "a", "text": "hi"}]


@pytest.mark.asyncio
async def test_fetch_dataset_of_unfinished_run_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"id": "run_abc", "status": "RUNNING"}})

    async with _provider(handler) as provider:
        with pytest.raises(ProviderError):
            await provider.fetch_dataset("run_abc")


@pytest.mark.asyncio
async def test_http_errors_are_classified() -> None:
    def rejecting(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "invalid input"}})

    def broken(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    async with _provider(rejecting) as provider:
        with pytest.raises(BadRequestError):
            await provider.start(SourceKind.TWITTER, {"handles": ["@acme"]}, CALLBACK_URL)

    async with _provider(broken) as provider:
        with pytest.raises(ProviderError) as excinfo:
            await provider.status("run_abc")
    assert excinfo.value.provider == "Apify"


@pytest.mark.asyncio
async def test_missing_token_is_a_configuration_error() -> None:
    provider = ApifyProvider(token="unused", base_url=BASE_URL)
    provider.token = None

    with pytest.raises(ConfigurationError):
        await provider.abort("run_abc")


def test_actor_catalogue_and_input_shapes() -> None:
    assert get_actor_id(SourceKind.INSTAGRAM_COMMENTS) == "apify/instagram-comment-scraper"
    with pytest.raises(BadRequestError):
        get_actor_id(SourceKind.FORUMS)

    instagram = build_actor_input(SourceKind.INSTAGRAM, {"usernames": ["@acme"], "hashtags": ["#coffee"]})
    assert instagram["directUrls"] == [
        "https://www.instagram.com/acme/",
        "https://www.instagram.com/explore/tags/coffee/",
    ]
    assert instagram["resultsLimit"] == 50

    booking = build_actor_input(SourceKind.BOOKING_COM, {"search_query": "Lisbon", "max_results": 30})
    assert booking["maxPages"] == 2

    assert build_actor_input(SourceKind.LINKEDIN, {"company": "acme"}) == {"company": "acme"}

    decoded = json.loads(base64.b64decode(encode_webhooks(CALLBACK_URL)))
    assert decoded[0]["requestUrl"] == CALLBACK_URL
