"""
Centralized configuration using Pydantic Settings.

All settings are loaded from environment variables with SYNAPSE_ prefix.
Example: SYNAPSE_LOG_LEVEL=DEBUG
"""

import logging
from pathlib import Path
from typing import List, Literal, Optional
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """SynapseIndex configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="SYNAPSE_",
        env_file=".env",
        env_file_encoding="utf-8"
    )

    # Core paths
    project_root: str = "."
    storage_path: Optional[str] = None  # Auto-detect if not set
    storage_backend: Literal["json", "sqlite", "memory"] = "json"

    # Logging
    log_level: str = "INFO"
    log_structured: bool = False  # JSON log lines instead of plain text

    # Chunking
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=50, ge=0)
    sentence_lookahead: int = Field(default=100, ge=0)  # How far past a boundary to look for ". "

    # Embedding / keywords
    max_embedding_terms: int = Field(default=100, ge=1)
    max_keywords: int = Field(default=10, ge=1)

    # Auto-linking
    min_shared_keywords: int = Field(default=3, ge=1)

    # Search
    cache_capacity: int = Field(default=100, ge=1)
    default_limit: int = Field(default=10, ge=1)
    default_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    context_limit: int = Field(default=5, ge=1)
    context_threshold: float = Field(default=0.2, ge=0.0, le=1.0)

    # Source tags that always exist in a fresh index
    default_sources: List[str] = ["zenith", "canvas", "chat", "chronos"]

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        return self

    def get_storage_path(self) -> str:
        """
        Determine storage path.

        Priority:
        1. storage_path setting (explicit override via SYNAPSE_STORAGE_PATH)
        2. <project_root>/.synapse/storage

        The directory is created if it does not exist.
        """
        if self.storage_path:
            Path(self.storage_path).mkdir(parents=True, exist_ok=True)
            return self.storage_path

        storage = Path(self.project_root).resolve() / ".synapse" / "storage"
        storage.mkdir(parents=True, exist_ok=True)
        logger.info(f"Using project storage: {storage}")

        return str(storage)


# Singleton instance
settings = Settings()
