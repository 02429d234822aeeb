"""
Settings Configuration
Pydantic-validated configuration for providers, pipeline and server
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class ApifySettings(BaseSettings):
    """Scraping provider (Apify) settings"""
    token: Optional[str] = Field(default=None, description="Apify API token")
    base_url: str = Field(default="https://api.apify.com/v2", description="Apify REST base URL")
    request_timeout: float = Field(default=30.0, description="HTTP timeout (seconds)")

    class Config:
        env_prefix = "APIFY_"


class LLMSettings(BaseSettings):
    """AI provider settings"""
    provider: str = Field(default="openai", description="LLM provider: openai, deepseek")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    sentiment_model: str = Field(default="gpt-4o-mini", description="Model used for sentiment judgments")
    tagging_model: str = Field(default="gpt-4o-mini", description="Model used for tag judgments")
    temperature: float = Field(default=0.1, description="Sampling temperature")
    max_tokens: int = Field(default=500, description="Max completion tokens")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    deepseek_api_key: Optional[str] = Field(default=None, description="DeepSeek API Key")

    class Config:
        env_prefix = "LLM_"


class EnrichmentSettings(BaseSettings):
    """Background enrichment settings"""
    sentiment_delay_seconds: float = Field(default=0.1, description="Pause between sentiment calls")
    tagging_delay_seconds: float = Field(default=0.5, description="Pause between tagging calls")
    queue_maxsize: int = Field(default=100, description="Max pending enrichment batches")
    workers: int = Field(default=2, description="Background worker tasks")

    class Config:
        env_prefix = "ENRICHMENT_"


class PipelineSettings(BaseSettings):
    """Ingestion and chaining settings"""
    dataset_limit: int = Field(default=1000, description="Max items fetched from one dataset")
    max_dependent_references: int = Field(default=10, description="Max references handed to a dependent run")
    comments_per_reference: int = Field(default=20, description="Comments requested per referenced post")
    stale_run_timeout_seconds: int = Field(default=7200, description="Age after which a running run is reconciled")
    default_schedule_cron: str = Field(default="0 */6 * * *", description="Schedule for jobs without one")

    class Config:
        env_prefix = "PIPELINE_"


class ServerSettings(BaseSettings):
    """HTTP surface settings"""
    api_base_url: str = Field(default="http://localhost:3000", description="Public base URL for callbacks")
    webhook_path: str = Field(default="/api/webhooks/apify", description="Callback route")
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, description="Bind port")

    class Config:
        env_prefix = "SERVER_"


class Settings(BaseSettings):
    """Aggregate settings"""

    apify: ApifySettings = Field(default_factory=ApifySettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def callback_url(self) -> str:
        return f"{self.server.api_base_url.rstrip('/')}{self.server.webhook_path}"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings, reading config/.env first when present"""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            apify=ApifySettings(),
            llm=LLMSettings(),
            enrichment=EnrichmentSettings(),
            pipeline=PipelineSettings(),
            server=ServerSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_apify_settings() -> ApifySettings:
    return get_settings().apify


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_enrichment_settings() -> EnrichmentSettings:
    return get_settings().enrichment


def get_pipeline_settings() -> PipelineSettings:
    return get_settings().pipeline


def get_server_settings() -> ServerSettings:
    return get_settings().server
