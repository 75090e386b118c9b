from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the promptloom engine and API."""

    model_config = SettingsConfigDict(
        env_prefix="PROMPTLOOM_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    genres_path: Path | None = Field(
        default=None,
        description="Override the packaged genre catalog JSON.",
    )
    traits_path: Path | None = Field(
        default=None,
        description="Override the packaged genre trait table JSON.",
    )
    max_instrument_items: int = Field(
        default=6,
        ge=1,
        le=32,
        description="Cap on comma-separated items in an Instruments field.",
    )
    max_prompt_chars: int = Field(
        default=1000,
        ge=1,
        le=20_000,
        description="Character budget applied by post-processing.",
    )
    min_prompt_chars: int = Field(
        default=20,
        ge=0,
        description="Post-processed output shorter than this falls back to the input.",
    )
    repeated_word_threshold: int = Field(
        default=2,
        ge=2,
        le=16,
        description="Occurrences at which a content word counts as repeated.",
    )
    bpm_blend_spread: int | None = Field(
        default=None,
        ge=10,
        le=200,
        description="Narrow non-overlapping blended BPM spans to this width (None keeps the full span).",
    )

    @model_validator(mode="after")
    def _align_prompt_bounds(self) -> "Settings":
        if self.min_prompt_chars > self.max_prompt_chars:
            self.min_prompt_chars = self.max_prompt_chars
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
