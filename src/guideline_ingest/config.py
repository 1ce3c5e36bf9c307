"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


DEFAULT_EMBEDDING_MODELS = {
    "huggingface": "sentence-transformers/all-MiniLM-L6-v2",
    "openai": "text-embedding-3-small",
}


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Chunking
    chunk_size: int = Field(default=800, gt=0, description="Characters per chunk")
    chunk_overlap: int = Field(default=100, ge=0, description="Characters shared by consecutive chunks")

    # Embedding
    embedding_provider: Literal["huggingface", "openai"] = "huggingface"
    embedding_model: str = Field(default="", description="Empty selects the provider default")
    openai_api_key: str = Field(default="", description="Only read when embedding_provider='openai'")
    embed_batch_size: int = Field(default=10, gt=0, description="Concurrent embedding calls per batch")
    embed_max_retries: int = Field(default=2, ge=0)
    embed_backoff_seconds: float = Field(default=0.5, ge=0)

    # Fetch
    fetch_timeout_seconds: float = Field(default=60.0, gt=0)
    fetch_max_retries: int = Field(default=2, ge=0)
    fetch_user_agent: str = "guideline-ingest/0.1 (+https://github.com/guideline-ingest)"
    strict_signature: bool = Field(
        default=False,
        description="Reject downloads whose first bytes are not a PDF header instead of warning.",
    )

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "guidelines"
    chroma_distance: Literal["cosine", "l2", "ip"] = "cosine"

    # Record metadata
    source_tag: str = "guideline"

    # Job registry
    max_finished_jobs: int = Field(default=1000, ge=0, description="Completed or failed jobs kept in memory")

    # Logging
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "INGEST_"}

    @model_validator(mode="after")
    def _check_overlap(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self

    @model_validator(mode="after")
    def _default_embedding_model(self) -> Settings:
        if not self.embedding_model:
            self.embedding_model = DEFAULT_EMBEDDING_MODELS[self.embedding_provider]
        return self


# Singleton for entry-points only; components receive values explicitly.
settings = Settings()
