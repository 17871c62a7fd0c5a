"""Environment-driven settings.

Values come from the process environment, after loading the nearest ``.env``
file at or above the working directory. Tuning constants stay in constants.py.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from podcast_producer.constants import (
    CROSSFADE_SECONDS,
    MAX_PROCESSING_SECONDS,
    OUTPUT_DIR,
    OUTPUT_FORMAT,
)

OUTPUT_FORMATS = ("mp3", "wav")
API_KEY_ENV = {
    "elevenlabs": "ELEVENLABS_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def _env(key: str, default: str | None = None) -> str | None:
    value = os.getenv(key)
    return value if value else default


def _env_float(key: str, default: float) -> float:
    value = _env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {value!r}") from None


@dataclass
class Settings:
    db_path: str = str(Path(OUTPUT_DIR) / "podcast.db")
    storage_dir: str = str(Path(OUTPUT_DIR) / "storage")
    public_base_url: str | None = None
    intro_url: str | None = None
    outro_url: str | None = None
    intro_crossfade_seconds: float = CROSSFADE_SECONDS
    outro_crossfade_seconds: float = CROSSFADE_SECONDS
    output_format: str = OUTPUT_FORMAT
    max_processing_seconds: float = MAX_PROCESSING_SECONDS
    api_keys: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(find_dotenv(usecwd=True))
        output_format = _env("PODCAST_OUTPUT_FORMAT", OUTPUT_FORMAT).lower()
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"PODCAST_OUTPUT_FORMAT must be one of {', '.join(OUTPUT_FORMATS)}, got {output_format!r}"
            )
        # Keyed by provider name, as SynthesisClient expects
        api_keys = {
            provider: value
            for provider, env_key in API_KEY_ENV.items()
            if (value := _env(env_key))
        }
        return cls(
            db_path=_env("PODCAST_DB_PATH", cls.db_path),
            storage_dir=_env("PODCAST_STORAGE_DIR", cls.storage_dir),
            public_base_url=_env("PODCAST_PUBLIC_BASE_URL"),
            intro_url=_env("PODCAST_INTRO_URL"),
            outro_url=_env("PODCAST_OUTRO_URL"),
            intro_crossfade_seconds=_env_float("PODCAST_INTRO_CROSSFADE_SEC", CROSSFADE_SECONDS),
            outro_crossfade_seconds=_env_float("PODCAST_OUTRO_CROSSFADE_SEC", CROSSFADE_SECONDS),
            output_format=output_format,
            max_processing_seconds=_env_float("PODCAST_MAX_PROCESSING_SECONDS", MAX_PROCESSING_SECONDS),
            api_keys=api_keys,
        )
