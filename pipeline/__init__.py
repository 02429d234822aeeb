"""Normalization, ingestion and enrichment stages."""

from .normalize import derive_source_id, normalize, normalize_item, parse_timestamp
from .ingest import IngestionWriter, IngestResult
from .enrichment import (
    EnrichmentFanOut,
    EnrichmentReport,
    SentimentEnricher,
    TagEnricher,
)

__all__ = [
    "EnrichmentFanOut",
    "EnrichmentReport",
    "IngestResult",
    "IngestionWriter",
    "SentimentEnricher",
    "TagEnricher",
    "derive_source_id",
    "normalize",
    "normalize_item",
    "parse_timestamp",
]
