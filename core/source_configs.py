"""Per-source job configuration, validated as a union keyed by source kind."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from utils.exceptions import BadRequestError


class SourceKind(str, Enum):
    """Supported collection sources."""

    GOOGLE_REVIEWS = "google_reviews"
    GOOGLE_MAPS = "google_maps"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    INSTAGRAM_COMMENTS = "instagram_comments"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    TRIPADVISOR = "tripadvisor"
    BOOKING_COM = "booking_com"
    NEWS_SITES = "news_sites"
    FORUMS = "forums"
    YOUTUBE = "youtube"


# first-phase kind -> kind of the run that fetches its nested content
DEPENDENT_PHASES: Dict[SourceKind, SourceKind] = {
    SourceKind.INSTAGRAM: SourceKind.INSTAGRAM_COMMENTS,
}

# kinds only ever started by the pipeline itself
INTERNAL_KINDS = frozenset({SourceKind.INSTAGRAM_COMMENTS})


def has_dependent_phase(kind: SourceKind) -> bool:
    return kind in DEPENDENT_PHASES


class BaseSourceConfig(BaseModel):
    """Fields every source understands; unknown keys are kept as extensions."""

    model_config = ConfigDict(extra="allow")

    max_results: int = Field(default=50, ge=1)
    language: str = "en"


class GoogleReviewsConfig(BaseSourceConfig):
    startUrls: List[Any] = Field(default_factory=list)
    placeIds: List[str] = Field(default_factory=list)
    searchStringsArray: List[str] = Field(default_factory=list)
    locationQuery: Optional[str] = None
    sort: str = "newest"

    @model_validator(mode="after")
    def _require_target(self) -> "GoogleReviewsConfig":
        if not (self.startUrls or self.placeIds or self.searchStringsArray):
            raise ValueError("google_reviews requires startUrls, placeIds or searchStringsArray")
        return self


class GoogleMapsConfig(BaseSourceConfig):
    search_terms: List[str] = Field(min_length=1)
    location: str = ""
    max_reviews_per_place: int = 10


class FacebookConfig(BaseSourceConfig):
    page_urls: List[str] = Field(min_length=1)
    include_comments: str = "DISABLED"


class InstagramConfig(BaseSourceConfig):
    directUrls: List[str] = Field(default_factory=list)
    usernames: List[str] = Field(default_factory=list)
    hashtags: List[str] = Field(default_factory=list)
    max_comment_posts: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _require_target(self) -> "InstagramConfig":
        if not (self.directUrls or self.usernames or self.hashtags):
            raise ValueError("instagram requires directUrls, usernames or hashtags")
        return self


class InstagramCommentsConfig(BaseSourceConfig):
    directUrls: List[str] = Field(min_length=1)
    resultsLimit: int = 20


class TwitterConfig(BaseSourceConfig):
    search_terms: List[str] = Field(default_factory=list)
    handles: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_target(self) -> "TwitterConfig":
        if not (self.search_terms or self.handles):
            raise ValueError("twitter requires search_terms or handles")
        return self


class TripadvisorConfig(BaseSourceConfig):
    location: str = Field(min_length=1)
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None


class BookingComConfig(BaseSourceConfig):
    search_query: str = Field(min_length=1)
    destination_type: str = "city"


class NewsSitesConfig(BaseSourceConfig):
    urls: List[str] = Field(min_length=1)
    keywords: List[str] = Field(default_factory=list)
    link_selector: str = "a[href]"


class YoutubeConfig(BaseSourceConfig):
    search_terms: List[str] = Field(min_length=1)


class GenericSourceConfig(BaseSourceConfig):
    """Sources whose actor input is passed through unchanged."""


SourceConfig = Union[
    GoogleReviewsConfig,
    GoogleMapsConfig,
    FacebookConfig,
    InstagramConfig,
    InstagramCommentsConfig,
    TwitterConfig,
    TripadvisorConfig,
    BookingComConfig,
    NewsSitesConfig,
    YoutubeConfig,
    GenericSourceConfig,
]

SOURCE_CONFIG_MODELS: Dict[SourceKind, Type[BaseSourceConfig]] = {
    SourceKind.GOOGLE_REVIEWS: GoogleReviewsConfig,
    SourceKind.GOOGLE_MAPS: GoogleMapsConfig,
    SourceKind.FACEBOOK: FacebookConfig,
    SourceKind.INSTAGRAM: InstagramConfig,
    SourceKind.INSTAGRAM_COMMENTS: InstagramCommentsConfig,
    SourceKind.TWITTER: TwitterConfig,
    SourceKind.LINKEDIN: GenericSourceConfig,
    SourceKind.TRIPADVISOR: TripadvisorConfig,
    SourceKind.BOOKING_COM: BookingComConfig,
    SourceKind.NEWS_SITES: NewsSitesConfig,
    SourceKind.FORUMS: GenericSourceConfig,
    SourceKind.YOUTUBE: YoutubeConfig,
}


def parse_source_config(kind: SourceKind | str, raw: Optional[Dict[str, Any]]) -> SourceConfig:
    """Validate a raw config dict against the model registered for ``kind``."""
    try:
        source_kind = SourceKind(kind)
    except ValueError as exc:
        raise BadRequestError(f"Unsupported source kind: {kind}") from exc
    model = SOURCE_CONFIG_MODELS[source_kind]
    try:
        return model.model_validate(dict(raw or {}))
    except ValidationError as exc:
        raise BadRequestError(
            f"Invalid config for {source_kind.value}",
            {"errors": [err.get("msg", "") for err in exc.errors()]},
        ) from exc
