"""Application settings and configuration management."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    MAX_TREE_DEPTH: int = Field(default=50, ge=1)
    MAX_TREE_NODES: int = Field(default=10_000, ge=1)

    MAX_PROMPT_CHARS: int = 10_000
    MAX_RESPONSE_CHARS: int = 50_000
    MAX_TOPIC_CHARS: int = 500
    MAX_ID_CHARS: int = 255

    SCORE_MIN: float = 0.0
    SCORE_MAX: float = 2.0

    CAPABILITY_TIMEOUT_S: float = Field(default=10.0, ge=0.0)
    CAPABILITY_WORKERS: int = Field(default=8, ge=1)
    FALLBACK_LABEL_WORDS: int = 3
    RELATIONSHIP_BIAS_CONFIDENCE: float = 0.4
    FALLBACK_RELATIONSHIP_CONFIDENCE: float = 0.5
    TOPIC_SHIFT_CONFIDENCE: float = 0.6

    SESSION_MAX_AGE_MS: int = 60 * 60 * 1000
    AUTOSAVE_INTERVAL_S: float = 0.0
    CHECKPOINT_DIR: str = "data/checkpoints"
    CONTENT_GUARD_PATH: str = "config/content_guard.yaml"
    TOP_BUZZWORDS: int = 50

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True)


settings = Settings()
