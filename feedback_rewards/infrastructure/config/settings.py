"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclasses
- Single source of truth for all configurable values

EXTENSIBILITY:
- To add another speech provider: add a field group to SpeechSettings
- To switch LLM provider: point LLM_API_URL at any OpenAI-compatible endpoint
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present (development convenience)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class LLMSettings:
    """Language model settings for structured review analysis."""

    api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    api_url: str = field(
        default_factory=lambda: os.getenv("LLM_API_URL", "https://api.openai.com/v1/chat/completions")
    )
    model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))

    # Near-deterministic output
    temperature: float = 0.3
    timeout_seconds: int = 15
    max_tokens: int = 800


@dataclass(frozen=True)
class SpeechSettings:
    """Speech-to-text provider settings."""

    # Primary: OpenAI Whisper
    whisper_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    whisper_api_url: str = field(
        default_factory=lambda: os.getenv("WHISPER_API_URL", "https://api.openai.com/v1/audio/transcriptions")
    )
    whisper_model: str = field(default_factory=lambda: os.getenv("WHISPER_MODEL", "whisper-1"))
    whisper_timeout_seconds: int = field(default_factory=lambda: _env_int("WHISPER_TIMEOUT", 30))

    # Secondary: Lelapa Vulavula
    lelapa_api_token: str = field(default_factory=lambda: os.getenv("LELAPA_API_TOKEN", ""))
    lelapa_api_url: str = field(
        default_factory=lambda: os.getenv(
            "LELAPA_API_URL",
            "https://vulavula-services.lelapa.ai/api/v2alpha/transcribe/sync/file",
        )
    )
    lelapa_timeout_seconds: int = field(default_factory=lambda: _env_int("LELAPA_TIMEOUT", 25))

    # Transcripts shorter than this are treated as "no result"
    min_transcript_length: int = field(default_factory=lambda: _env_int("MIN_TRANSCRIPT_LENGTH", 10))

    # Optional fire-and-forget archive of submitted recordings
    audio_archive_dir: Optional[Path] = field(
        default_factory=lambda: Path(os.environ["AUDIO_ARCHIVE_DIR"]) if os.getenv("AUDIO_ARCHIVE_DIR") else None
    )


@dataclass(frozen=True)
class PointsSettings:
    """Points awarded per qualifying action (at most one award per day)."""

    feedback_saved: int = field(default_factory=lambda: _env_int("POINTS_FEEDBACK_SAVED", 2))
    review_shared: int = field(default_factory=lambda: _env_int("POINTS_REVIEW_SHARED", 1))


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from feedback_rewards.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.llm.api_key)
    """

    # Sub-settings groups
    llm: LLMSettings = field(default_factory=LLMSettings)
    speech: SpeechSettings = field(default_factory=SpeechSettings)
    points: PointsSettings = field(default_factory=PointsSettings)

    database_file: Path = field(
        default_factory=lambda: Path(os.getenv("DATABASE_FILE", "feedback_rewards.db"))
    )
    default_restaurant_id: str = field(
        default_factory=lambda: os.getenv("DEFAULT_RESTAURANT_ID", "default_restaurant")
    )
    # Google Business place id; without it share links fall back to a Maps search
    google_place_id: str = field(default_factory=lambda: os.getenv("GOOGLE_PLACE_ID", "").strip())

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.llm.api_key:
            issues.append(
                "WARNING: OPENAI_API_KEY not set. "
                "Review analysis will use the keyword fallback."
            )

        if not self.speech.whisper_api_key and not self.speech.lelapa_api_token:
            issues.append(
                "WARNING: No speech-to-text credentials (OPENAI_API_KEY, LELAPA_API_TOKEN). "
                "Only typed feedback will be accepted."
            )

        if self.points.feedback_saved <= 0 or self.points.review_shared <= 0:
            issues.append("WARNING: Point awards must be positive integers.")

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
