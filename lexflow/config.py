"""Application configuration loaded from environment variables."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    openai_api_key: Optional[str] = Field(
        default=None, description="Secret key for OpenAI APIs."
    )
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_chat: str = "gpt-4.1-mini"
    openai_model_embed: str = "text-embedding-3-small"
    embedding_dimensions: int = 1024
    embedding_max_input_tokens: int = 8000

    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: Optional[str] = None
    qdrant_collection: str = "source_chunks"

    storage_root: str = "data/sources"

    embed_batch_size: int = 50
    embed_concurrency: int = 10
    embed_max_attempts: int = 3
    embed_backoff_step: float = 1.0
    embed_backoff_cap: float = 5.0

    generation_max_attempts: int = 6
    generation_backoff_step: float = 2.0
    generation_backoff_cap: float = 10.0
    throttle_signal_threshold: int = 3

    lock_stale_seconds: float = 300.0
    queue_max_wait_seconds: float = 600.0
    queue_cooldown_seconds: float = 120.0
    queue_item_delay_seconds: float = 1.0
    queue_mode_item_delay_seconds: float = 5.0
    queue_wait_estimate_seconds: int = 60

    max_upload_bytes: int = 200 * 1024 * 1024
    min_upload_bytes: int = 100
    upload_concurrency: int = 3
    insert_batch_size: int = 500
    min_chunk_chars: int = 10
    max_evidence_chars: int = 50_000

    log_level: str = "INFO"
    allow_tiktoken_fallback: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def storage_root_path(self) -> Path:
        return Path(self.storage_root)


settings = Settings()
