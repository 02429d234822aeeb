"""
Configuration Management Module
"""
from .settings import (
    Settings,
    ApifySettings,
    LLMSettings,
    EnrichmentSettings,
    PipelineSettings,
    ServerSettings,
    get_settings,
    get_apify_settings,
    get_llm_settings,
    get_enrichment_settings,
    get_pipeline_settings,
    get_server_settings,
)

__all__ = [
    "Settings",
    "ApifySettings",
    "LLMSettings",
    "EnrichmentSettings",
    "PipelineSettings",
    "ServerSettings",
    "get_settings",
    "get_apify_settings",
    "get_llm_settings",
    "get_enrichment_settings",
    "get_pipeline_settings",
    "get_server_settings",
]
