"""Settings schema for the storyboard director.

Values come from ``DIRECTOR_*`` environment variables (the API key is also
read from ``GEMINI_API_KEY``), an optional ``.env`` file, and programmatic
overrides.
"""

import os
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DirectorSettings(BaseSettings):
    """Pydantic settings schema for the director and extraction pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="DIRECTOR_",
        env_file=None,  # Only used when explicitly requested
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Model ---

    api_key: str | None = Field(
        default=None,
        description="Google Gemini API key",
        # GEMINI_API_KEY is consulted only when no other source sets a key
    )

    model: str = Field(
        default="gemini-2.0-flash",
        description="Gemini model identifier",
        min_length=1,
    )

    temperature: float = Field(
        default=0.7,
        description="Sampling temperature for director rounds",
        ge=0.0,
        le=2.0,
    )

    use_real_api: bool = Field(
        default=False,
        description="Call the Gemini API instead of the scripted adapter",
    )

    max_retries: int = Field(
        default=2,
        description="Extra attempts for a failed analysis or storyboard request",
        ge=0,
        le=10,
    )

    # --- Loop ---

    iteration_budget: int = Field(
        default=5,
        description="Model rounds plus result-less evaluations before aborting",
        ge=1,
        le=50,
    )

    quality_threshold: float = Field(
        default=70.0,
        description="Critique score (0-100) a storyboard must reach",
        ge=0.0,
        le=100.0,
    )

    target_prompt_count: int = Field(
        default=10,
        description="Number of prompts requested from the model",
        ge=1,
    )

    # --- Extraction ---

    max_text_size: int = Field(
        default=1_000_000,
        description="Responses longer than this are truncated before parsing",
        ge=1,
    )

    fallback_min_overlap: float = Field(
        default=0.3,
        description="Key-term preservation below this flags fallback output",
        ge=0.0,
        le=1.0,
    )

    fallback_max_prompts: int = Field(
        default=10,
        description="Upper bound on prompts mined by the fallback",
        ge=1,
    )

    scene_interval_seconds: int = Field(
        default=15,
        description="Spacing of synthesized timestamps",
        ge=1,
    )

    # --- Validation Rules ---

    @model_validator(mode="before")
    @classmethod
    def fallback_gemini_api_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("api_key"):
            gemini_key = os.getenv("GEMINI_API_KEY")
            if gemini_key:
                data = {**data, "api_key": gemini_key}
        return data

    @field_validator("api_key", mode="before")
    @classmethod
    def blank_key_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_api_key_requirement(self) -> "DirectorSettings":
        """Ensure api_key is provided when use_real_api is True."""
        if self.use_real_api and not self.api_key:
            raise ValueError(
                "api_key is required when use_real_api=True. "
                "Set DIRECTOR_API_KEY or GEMINI_API_KEY, or pass it programmatically."
            )
        return self
