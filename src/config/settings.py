# src/config/settings.py — v3
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === LLM PROVIDERS ===
    llm_default_provider: str = "google"
    llm_default_model: str = "gemini-2.5-pro"
    google_api_key: str = ""

    # Per-group LLM assignment ("provider:model")
    llm_group_analysis: str = ""
    llm_group_composition: str = ""
    llm_group_quality: str = ""

    # Per-capability LLM assignment (highest priority)
    llm_context_extraction: str = ""
    llm_emotion: str = ""
    llm_research: str = ""
    llm_draft: str = ""
    llm_compliance: str = ""
    llm_review: str = ""
    llm_format: str = ""
    llm_chat: str = ""

    # === RATE LIMITS ===
    rate_limit_window_ms: int = 60_000
    rate_limit_global_max: int = 12
    rate_limit_default_max: int = 10
    rate_limit_chat_max: int = 20
    rate_limit_research_max: int = 8
    rate_limit_draft_max: int = 5

    # === RETRY / DEADLINES ===
    retry_max_retries: int = 2
    retry_initial_delay_s: float = 2.0
    retry_backoff_factor: float = 2.0
    call_timeout_s: float = 30.0
    draft_timeout_s: float = 60.0
    stream_buffer_size: int = 64
    run_deadline_s: float | None = None

    # === WORKFLOW ===
    inter_stage_delay_s: float = 2.0
    finalize_grace_s: float = 2.0
    originality_warning_threshold: int = 70
    soft_fallback_min_chars: int = 50
    max_input_length: int = 2000

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "rate_limit_window_ms",
        "rate_limit_global_max",
        "rate_limit_default_max",
        "rate_limit_chat_max",
        "rate_limit_research_max",
        "rate_limit_draft_max",
        "stream_buffer_size",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("retry_max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("retry_max_retries must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.call_timeout_s <= 0 or self.draft_timeout_s <= 0:
            errors.append("CALL_TIMEOUT_S and DRAFT_TIMEOUT_S must be > 0")

        if self.draft_timeout_s < self.call_timeout_s:
            errors.append("DRAFT_TIMEOUT_S must be >= CALL_TIMEOUT_S")

        if self.inter_stage_delay_s < 0 or self.finalize_grace_s < 0:
            errors.append("Workflow delays must be >= 0")

        if not 0 <= self.originality_warning_threshold <= 100:
            errors.append("ORIGINALITY_WARNING_THRESHOLD must be within 0-100")

        if self.run_deadline_s is not None and self.run_deadline_s <= 0:
            errors.append("RUN_DEADLINE_S must be > 0 when set")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
