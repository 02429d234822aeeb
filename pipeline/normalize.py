"""Normalization of raw provider items into mention candidates."""

from __future__ import annotations

from datetime import datetime, timezone
import hashlib
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core import Job, MentionCandidate, Run, SourceKind


logger = logging.getLogger(__name__)

NATIVE_ID_FIELDS = ("id", "reviewId", "postId", "commentId", "shortCode", "tweetId", "videoId")

_URL_ID_PATTERNS = (
    re.compile(r"/reviews/([^/?#]+)"),
    re.compile(r"/posts/([^/?#]+)"),
    re.compile(r"/p/([^/?#]+)"),
    re.compile(r"/([A-Za-z0-9_-]+)/?$"),
    re.compile(r"[?&]id=([^&#]+)"),
)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

# epoch values above this are taken as milliseconds
_EPOCH_MS_THRESHOLD = 100_000_000_000

_TWITTER_DATE_FORMAT = "%a %b %d %H:%M:%S %z %Y"

# shared fallback chains; dotted keys walk nested dicts
FIELD_CHAINS: Dict[str, Sequence[str]] = {
    "content": ("text", "reviewText", "content", "description", "caption", "full_text", "message"),
    "title": ("title", "name"),
    "url": ("url", "reviewUrl", "postUrl", "link"),
    "author": ("author", "reviewer", "username", "ownerUsername", "user.name", "authorName"),
    "author_url": ("authorUrl", "profileUrl", "reviewerUrl", "user.url"),
    "author_followers": ("followers", "followerCount", "ownerFollowersCount", "user.followers_count"),
    "published_at": ("publishedAt", "createdAt", "date", "timestamp", "time", "created_at"),
    "language": ("language", "lang"),
}

# per-kind chains tried before the shared ones
SOURCE_FIELD_CHAINS: Dict[SourceKind, Dict[str, Sequence[str]]] = {
    SourceKind.GOOGLE_REVIEWS: {
        "author": ("name", "reviewerName"),
        "published_at": ("publishedAtDate",),
        "title": ("title",),
    },
    SourceKind.GOOGLE_MAPS: {
        "author": ("name", "reviewerName"),
        "published_at": ("publishedAtDate",),
    },
    SourceKind.FACEBOOK: {
        "author": ("pageName", "user.name"),
        "url": ("url", "facebookUrl"),
    },
    SourceKind.INSTAGRAM: {
        "content": ("caption",),
        "author": ("ownerUsername",),
    },
    SourceKind.INSTAGRAM_COMMENTS: {
        "author": ("ownerUsername",),
        "url": ("postUrl", "url"),
        "author_url": ("ownerProfileUrl",),
    },
    SourceKind.TWITTER: {
        "content": ("full_text", "text"),
        "author": ("author.userName", "user.screen_name", "username"),
        "author_followers": ("author.followers", "user.followers_count"),
        "published_at": ("createdAt", "created_at"),
    },
    SourceKind.TRIPADVISOR: {
        "author": ("user.username", "user.name"),
        "published_at": ("publishedDate", "travelDate"),
    },
    SourceKind.YOUTUBE: {
        "author": ("channelName",),
        "author_url": ("channelUrl",),
        "author_followers": ("numberOfSubscribers",),
    },
}

METRIC_CHAINS: Dict[str, Sequence[str]] = {
    "rating": ("rating", "stars"),
    "likes": ("likes", "likeCount", "likesCount"),
    "shares": ("shares", "shareCount"),
    "replies": ("replies", "replyCount", "repliesCount"),
    "comments": ("comments", "commentsCount", "commentCount"),
    "views": ("views", "viewCount", "videoViewCount"),
}


def _lookup(item: Dict[str, Any], key: str) -> Any:
    value: Any = item
    for part in key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return not (isinstance(value, (list, dict)) and not value)


def first_value(item: Dict[str, Any], keys: Iterable[str], *, scalar: bool = False) -> Any:
    """First non-empty value among ``keys``; ``scalar`` skips nested objects."""
    for key in keys:
        value = _lookup(item, key)
        if scalar and isinstance(value, (dict, list)):
            continue
        if _present(value):
            return value
    return None


def _field(item: Dict[str, Any], kind: SourceKind, name: str) -> Any:
    specific = SOURCE_FIELD_CHAINS.get(kind, {}).get(name, ())
    value = first_value(item, specific, scalar=True)
    if value is None:
        value = first_value(item, FIELD_CHAINS[name], scalar=True)
    return value


def _to_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(str(value).replace(",", "").strip()))
    except (TypeError, ValueError):
        return None


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def stable_hash(text: str) -> str:
    """Short base36 digest, stable across processes."""
    digest = hashlib.sha1(text.encode("utf-8")).hexdigest()[:12]
    return _to_base36(int(digest, 16))


def id_from_url(text: str) -> Optional[str]:
    for pattern in _URL_ID_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def derive_source_id(item: Dict[str, Any], index: int, run_id: str = "") -> str:
    """
    Stable source-native id for one raw item.

    Priority: native id field, then an id found in the URL or title text,
    then a deterministic hash of that text combined with the item position.
    """
    native = first_value(item, NATIVE_ID_FIELDS, scalar=True)
    if native is not None:
        return str(native).strip()

    text = _to_text(first_value(item, FIELD_CHAINS["url"], scalar=True)) or _to_text(
        first_value(item, FIELD_CHAINS["title"], scalar=True)
    )
    if not text:
        return f"generated_{run_id}_{index}" if run_id else f"generated_{index}"

    from_url = id_from_url(text)
    if from_url:
        return from_url
    return f"hash_{stable_hash(text)}_{index}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse ISO strings, epoch seconds/milliseconds or Twitter-style dates.

    Returns None for anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = _from_epoch(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        if re.fullmatch(r"-?\d+(\.\d+)?", text):
            dt = _from_epoch(float(text))
        else:
            dt = _from_text(text)
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_epoch(value: float) -> Optional[datetime]:
    seconds = value / 1000.0 if abs(value) >= _EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _from_text(text: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return datetime.strptime(text, _TWITTER_DATE_FORMAT)
    except ValueError:
        return None


def _metrics(item: Dict[str, Any]) -> Dict[str, Any]:
    metrics: Dict[str, Any] = {}
    for name, keys in METRIC_CHAINS.items():
        value = first_value(item, keys, scalar=True)
        if value is None:
            continue
        metrics[name] = value
    return metrics


def normalize_item(item: Dict[str, Any], index: int, run: Run, job: Job) -> Optional[MentionCandidate]:
    """Map one raw item; None when it carries no content."""
    kind = SourceKind(run.metadata.get("source_kind") or job.source_kind)

    content = _to_text(_field(item, kind, "content"))
    if not content:
        return None

    metadata: Dict[str, Any] = _metrics(item)
    if kind in (SourceKind.INSTAGRAM, SourceKind.INSTAGRAM_COMMENTS) and item.get("hashtags"):
        metadata["hashtags"] = list(item["hashtags"])
    if run.is_dependent_phase:
        metadata["parent_run_id"] = run.metadata.get("parent_run_id")
    metadata["platform_data"] = dict(item)

    return MentionCandidate(
        tenant_id=run.tenant_id,
        brand_id=job.brand_id,
        run_id=run.id,
        source_kind=kind,
        source_id=derive_source_id(item, index, run.id),
        source_url=_to_text(_field(item, kind, "url")),
        title=_to_text(_field(item, kind, "title")),
        content=content,
        author=_to_text(_field(item, kind, "author")),
        author_url=_to_text(_field(item, kind, "author_url")),
        author_followers=_to_int(_field(item, kind, "author_followers")),
        published_at=parse_timestamp(_field(item, kind, "published_at")),
        language=_to_text(_field(item, kind, "language")) or "en",
        metadata=metadata,
    )


def normalize(raw_items: Sequence[Any], run: Run, job: Job) -> List[MentionCandidate]:
    """
    Normalize a provider dataset, keeping input order.

    Items that are not objects or have no content are dropped. Repeated
    source ids are kept; the store upsert collapses them.
    """
    candidates: List[MentionCandidate] = []
    dropped = 0
    for index, item in enumerate(raw_items):
        if not isinstance(item, dict):
            dropped += 1
            continue
        candidate = normalize_item(item, index, run, job)
        if candidate is None:
            dropped += 1
            continue
        candidates.append(candidate)

    if dropped:
        logger.debug("normalize dropped=%s kept=%s run_id=%s", dropped, len(candidates), run.id)
    return candidates
