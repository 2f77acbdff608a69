from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .heuristics import DEFAULT_COMPILATION_NAMES
from .models import ExecutionMode


class LibrarySettings(BaseModel):
    roots: List[Path]
    include_extensions: List[str] = Field(default_factory=lambda: [".mp3", ".flac", ".m4a", ".ogg"])
    exclude_patterns: List[str] = Field(default_factory=list)
    compilation_folder_names: List[str] = Field(default_factory=lambda: list(DEFAULT_COMPILATION_NAMES))

    @field_validator("roots", mode="before")
    @classmethod
    def _expand_roots(cls, values: List[str]) -> List[Path]:
        return [Path(v).expanduser().resolve() for v in values]


class ProviderSettings(BaseModel):
    catalog: Literal["musicbrainz", "discogs"] = "musicbrainz"
    musicbrainz_useragent: str = "audio-reconcile/0.1 (unknown@example.com)"
    discogs_token: Optional[str] = None
    discogs_useragent: str = "audio-reconcile/0.1 +https://example.com"
    request_timeout_seconds: float = 10.0
    search_limit: int = Field(default=10, ge=1, le=100)

    @model_validator(mode="after")
    def _discogs_needs_token(self) -> "ProviderSettings":
        if self.catalog == "discogs" and not self.discogs_token:
            raise ValueError("providers.discogs_token is required when providers.catalog is 'discogs'")
        return self


class RateLimitSettings(BaseModel):
    min_interval_seconds: float = Field(default=1.0, ge=0.0)
    slow_call_seconds: float = Field(default=2.0, gt=0.0)
    slow_streak: int = Field(default=3, ge=1)
    backoff_multiplier: float = Field(default=1.5, ge=1.0)
    max_backoff_seconds: float = Field(default=30.0, gt=0.0)
    max_retries: int = Field(default=3, ge=0)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0)
    rolling_window: int = Field(default=10, ge=1)


class MatchingSettings(BaseModel):
    album_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    artist_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    top: int = Field(default=5, ge=1)
    threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    high_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    vote_name_similarity: float = Field(default=0.7, ge=0.0, le=1.0)
    vote_album_score: float = Field(default=0.3, ge=0.0, le=1.0)
    evaluation_candidates: int = Field(default=3, ge=1)
    evaluation_min_average: float = Field(default=0.5, ge=0.0)
    catalog_page_limit: int = Field(default=50, ge=1)
    short_name_length: int = Field(default=10, ge=0)
    limited_fallback_cut: float = Field(default=0.5, ge=0.0, le=1.0)


class DurationSettings(BaseModel):
    enabled: bool = True
    mode: Literal["percentage", "empirical"] = "percentage"
    strictness: Literal["strict", "normal", "lenient"] = "normal"
    blend_weight: float = Field(default=0.3, ge=0.0, le=1.0)


class RunSettings(BaseModel):
    mode: ExecutionMode = ExecutionMode.SMART
    preview: bool = False
    worker_concurrency: int = Field(default=2, ge=1)
    output_path: Optional[Path] = None

    @field_validator("output_path", mode="before")
    @classmethod
    def _expand_output(cls, value: Optional[str | Path]) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser().resolve()


class Settings(BaseModel):
    library: LibrarySettings
    providers: ProviderSettings = ProviderSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    matching: MatchingSettings = MatchingSettings()
    duration: DurationSettings = DurationSettings()
    run: RunSettings = RunSettings()

    @classmethod
    def load(cls, path: Path) -> "Settings":
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        return cls.model_validate(raw or {})


def find_config(explicit_path: Optional[Path]) -> Path:
    if explicit_path:
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    raise FileNotFoundError("Could not find config.yaml - pass --config explicitly.")
