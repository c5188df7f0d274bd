# medimind/config.py
"""
MediMind Configuration — Single source of truth via Pydantic Settings.

Resolution order: CLI flags > env vars (MEDIMIND_*) > .env file > defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MedimindConfig(BaseSettings):
    """Central configuration for MediMind."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIMIND_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- LLM ---
    lm: str = "gemini/gemini-1.5-flash"
    api_key: str = ""
    api_base: Optional[str] = None
    lm_temperature: float = 0.0
    lm_max_tokens: int = 4000
    adapter: Literal["json", "chat"] = "json"

    # --- Processing ---
    batch_workers: int = 1

    # --- Logging ---
    log_level: str = "INFO"
    # Characters of prompt / raw response echoed into DEBUG logs.
    prompt_preview_chars: int = 2000

    # --- Paths ---
    home_dir: Path = Field(default_factory=lambda: Path.home() / ".medimind")

    @property
    def log_dir(self) -> Path:
        return self.home_dir / "logs"

    @property
    def cache_dir(self) -> Path:
        return self.home_dir / ".dspy_cache"


@lru_cache(maxsize=1)
def get_config() -> MedimindConfig:
    """Return the global config singleton."""
    return MedimindConfig()
