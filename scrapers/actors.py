"""
Actor Catalogue
Which Apify actor serves each source kind, and how its input is shaped
"""
import json
import math
from typing import Any, Callable, Dict, List

from core import SourceKind
from utils.exceptions import BadRequestError


# Cost control cap applied to every actor
MAX_RESULTS_LIMIT = 50

ACTORS: Dict[SourceKind, str] = {
    SourceKind.GOOGLE_REVIEWS: "compass/google-maps-reviews-scraper",
    SourceKind.GOOGLE_MAPS: "drobnikj/google-maps-scraper",
    SourceKind.FACEBOOK: "apify/facebook-posts-scraper",
    SourceKind.INSTAGRAM: "apify/instagram-scraper",
    SourceKind.INSTAGRAM_COMMENTS: "apify/instagram-comment-scraper",
    SourceKind.TWITTER: "quacker/twitter-scraper",
    SourceKind.TRIPADVISOR: "maxcopell/tripadvisor-reviews",
    SourceKind.BOOKING_COM: "drobnikj/booking-scraper",
    SourceKind.NEWS_SITES: "apify/web-scraper",
    SourceKind.YOUTUBE: "bernardo/youtube-scraper",
}

# MB
MEMORY_MB: Dict[SourceKind, int] = {
    SourceKind.GOOGLE_MAPS: 2048,
    SourceKind.FACEBOOK: 2048,
}
DEFAULT_MEMORY_MB = 1024

# seconds
TIMEOUT_SECS: Dict[SourceKind, int] = {
    SourceKind.GOOGLE_MAPS: 7200,
    SourceKind.TWITTER: 1800,
    SourceKind.NEWS_SITES: 1800,
    SourceKind.YOUTUBE: 1800,
    SourceKind.INSTAGRAM_COMMENTS: 1800,
}
DEFAULT_TIMEOUT_SECS = 3600

WEBHOOK_EVENT_TYPES = [
    "ACTOR.RUN.SUCCEEDED",
    "ACTOR.RUN.FAILED",
    "ACTOR.RUN.ABORTED",
    "ACTOR.RUN.TIMED_OUT",
]


def get_actor_id(source_kind: SourceKind) -> str:
    actor_id = ACTORS.get(SourceKind(source_kind))
    if not actor_id:
        raise BadRequestError(f"Unsupported source type: {SourceKind(source_kind).value}")
    return actor_id


def get_memory_mb(source_kind: SourceKind) -> int:
    return MEMORY_MB.get(source_kind, DEFAULT_MEMORY_MB)


def get_timeout_secs(source_kind: SourceKind) -> int:
    return TIMEOUT_SECS.get(source_kind, DEFAULT_TIMEOUT_SECS)


def _capped(config: Dict[str, Any], key: str = "max_results", default: int = MAX_RESULTS_LIMIT) -> int:
    try:
        requested = int(config.get(key) or default)
    except (TypeError, ValueError):
        requested = default
    return max(1, min(requested, MAX_RESULTS_LIMIT))


def _google_reviews_input(config: Dict[str, Any]) -> Dict[str, Any]:
    actor_input: Dict[str, Any] = {
        "maxReviews": _capped(config),
        "reviewsSort": config.get("sort") or "newest",
        "language": config.get("language") or "en",
    }
    start_urls = config.get("startUrls") or []
    if start_urls:
        actor_input["startUrls"] = [
            {"url": url if isinstance(url, str) else url.get("url"), "method": "GET"}
            for url in start_urls
        ]
    if config.get("placeIds"):
        actor_input["placeIds"] = list(config["placeIds"])
    if config.get("searchStringsArray"):
        actor_input["searchStringsArray"] = list(config["searchStringsArray"])
        if config.get("locationQuery"):
            actor_input["locationQuery"] = config["locationQuery"]

    if not any(key in actor_input for key in ("startUrls", "placeIds", "searchStringsArray")):
        raise BadRequestError(
            "Google Reviews scraper requires either startUrls, placeIds, or searchStringsArray in config"
        )
    return actor_input


def _google_maps_input(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "searchStringsArray": list(config.get("search_terms") or []),
        "locationQuery": config.get("location") or "",
        "maxCrawledPlaces": _capped(config),
        "language": config.get("language") or "en",
        "includeReviews": True,
        "maxReviews": min(int(config.get("max_reviews_per_place") or 10), 10),
    }


def _facebook_input(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "startUrls": list(config.get("page_urls") or []),
        "maxPosts": _capped(config),
        "commentsMode": config.get("include_comments") or "DISABLED",
    }


def _instagram_input(config: Dict[str, Any]) -> Dict[str, Any]:
    targets: List[str] = list(config.get("directUrls") or [])
    targets += [f"https://www.instagram.com/{name.lstrip('@')}/" for name in config.get("usernames") or []]
    targets += [
        f"https://www.instagram.com/explore/tags/{tag.lstrip('#')}/" for tag in config.get("hashtags") or []
    ]
    return {
        "directUrls": targets,
        "resultsType": "posts",
        "resultsLimit": _capped(config),
        "addParentData": False,
    }


def _instagram_comments_input(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "directUrls": list(config.get("directUrls") or []),
        "resultsLimit": _capped(config, key="resultsLimit", default=20),
    }


def _twitter_input(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "searchTerms": list(config.get("search_terms") or []),
        "twitterHandles": [handle.lstrip("@") for handle in config.get("handles") or []],
        "maxTweets": _capped(config),
        "language": config.get("language") or "en",
    }


def _tripadvisor_input(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "locationFullName": config.get("location") or "",
        "maxItems": _capped(config),
        "checkInDate": config.get("check_in_date"),
        "checkOutDate": config.get("check_out_date"),
    }


def _booking_input(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "search": config.get("search_query") or "",
        "destType": config.get("destination_type") or "city",
        "maxPages": math.ceil(_capped(config) / 25),
    }


def _news_input(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "startUrls": [{"url": url} for url in config.get("urls") or []],
        "linkSelector": config.get("link_selector") or "a[href]",
        "pageFunction": news_page_function(config.get("keywords") or []),
        "maxRequestsPerCrawl": _capped(config),
    }


def _youtube_input(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "searchKeywords": list(config.get("search_terms") or []),
        "maxResults": _capped(config),
        "searchType": "video",
    }


INPUT_BUILDERS: Dict[SourceKind, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    SourceKind.GOOGLE_REVIEWS: _google_reviews_input,
    SourceKind.GOOGLE_MAPS: _google_maps_input,
    SourceKind.FACEBOOK: _facebook_input,
    SourceKind.INSTAGRAM: _instagram_input,
    SourceKind.INSTAGRAM_COMMENTS: _instagram_comments_input,
    SourceKind.TWITTER: _twitter_input,
    SourceKind.TRIPADVISOR: _tripadvisor_input,
    SourceKind.BOOKING_COM: _booking_input,
    SourceKind.NEWS_SITES: _news_input,
    SourceKind.YOUTUBE: _youtube_input,
}


def build_actor_input(source_kind: SourceKind, config: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a job config into the actor's input document.

    Kinds without a dedicated builder pass their config through unchanged.
    """
    builder = INPUT_BUILDERS.get(SourceKind(source_kind))
    if builder is None:
        return dict(config)
    return builder(dict(config))


def news_page_function(keywords: List[str]) -> str:
    """Browser-side page function for the generic web scraper actor"""
    return f"""
async function pageFunction(context) {{
    const {{ page, request }} = context;
    const title = await page.title();
    const url = request.url;

    const content = await page.evaluate(() => {{
        const article = document.querySelector('article') ||
            document.querySelector('[role="main"]') ||
            document.querySelector('.content') ||
            document.querySelector('#content') ||
            document.body;
        return article ? article.innerText : '';
    }});

    const publishedAt = await page.evaluate(() => {{
        const selectors = ['time[datetime]', '[datetime]', '.published', '.date', '.post-date'];
        for (const selector of selectors) {{
            const element = document.querySelector(selector);
            if (element) {{
                return element.getAttribute('datetime') || element.textContent;
            }}
        }}
        return null;
    }});

    const keywords = {json.dumps(list(keywords))};
    const haystack = (title + ' ' + content).toLowerCase();
    if (keywords.length > 0 && !keywords.some(k => haystack.includes(k.toLowerCase()))) {{
        return null;
    }}

    return {{
        url,
        title,
        content: content.substring(0, 5000),
        publishedAt,
        scrapedAt: new Date().toISOString(),
    }};
}}
"""
