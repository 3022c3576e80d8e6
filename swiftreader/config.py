"""Configuration defaults, reader settings, and .env loading.

WHY: Reading speed, pause intensity, chunking, and header/footer
stripping are user preferences that every layer (CLI, HTTP API, session
controller) needs to agree on. Keeping the defaults and their bounds in
one place means nobody re-invents the clamping rules.

HOW: python-dotenv loads the .env file on import. Defaults are module
constants overridable via SWIFTREADER_* environment variables.
ReaderSettings is a plain dataclass; normalized() returns a copy with
every field clamped into its valid range.

RULES:
- wpm ∈ [150, 1200], pause_intensity ∈ [0, 200], chunk_size ∈ [1, 4]
- Invalid environment values fall back to the built-in default
- ignore_phrases is newline-separated text ("|" also accepted in env vars)
- The data directory defaults to ~/.swiftreader
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from swiftreader.core.timing import (
    DEFAULT_PAUSE_INTENSITY,
    DEFAULT_WPM,
    MAX_PAUSE_INTENSITY,
    MAX_WPM,
    MIN_PAUSE_INTENSITY,
    MIN_WPM,
    clamp_wpm,
)

# Load .env from the project root (where the script is run from)
load_dotenv()

MIN_CHUNK_SIZE = 1
MAX_CHUNK_SIZE = 4


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)).strip())
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


DATA_DIR = Path(os.getenv("SWIFTREADER_DATA_DIR", str(Path.home() / ".swiftreader"))).expanduser()


@dataclass
class ReaderSettings:
    """User-facing playback and import settings.

    RULES:
    - wpm: words per minute (clamped to [150, 1200] by normalized())
    - pause_intensity: punctuation pause slider, [0, 200], default 80
    - auto_pause: when False punctuation adds no delay
    - chunk_size: words shown per step, [1, 4]
    - strip_headers: enable header/footer stripping for paginated imports
    - ignore_phrases: newline-separated literal phrases always stripped
    """

    wpm: int = DEFAULT_WPM
    pause_intensity: int = DEFAULT_PAUSE_INTENSITY
    auto_pause: bool = True
    chunk_size: int = MIN_CHUNK_SIZE
    strip_headers: bool = True
    ignore_phrases: str = ""

    @classmethod
    def from_env(cls) -> "ReaderSettings":
        """Settings populated from SWIFTREADER_* environment variables."""
        phrases = os.getenv("SWIFTREADER_IGNORE_PHRASES", "").replace("|", "\n")
        return cls(
            wpm=_env_int("SWIFTREADER_WPM", DEFAULT_WPM),
            pause_intensity=_env_int("SWIFTREADER_PAUSE_INTENSITY", DEFAULT_PAUSE_INTENSITY),
            auto_pause=_env_bool("SWIFTREADER_AUTO_PAUSE", True),
            chunk_size=_env_int("SWIFTREADER_CHUNK_SIZE", MIN_CHUNK_SIZE),
            strip_headers=_env_bool("SWIFTREADER_STRIP_HEADERS", True),
            ignore_phrases=phrases,
        ).normalized()

    def normalized(self) -> "ReaderSettings":
        """Copy with every numeric field clamped into range."""
        return replace(
            self,
            wpm=clamp_wpm(self.wpm),
            pause_intensity=_clamp(int(self.pause_intensity), MIN_PAUSE_INTENSITY, MAX_PAUSE_INTENSITY),
            chunk_size=_clamp(int(self.chunk_size), MIN_CHUNK_SIZE, MAX_CHUNK_SIZE),
        )

    def ignore_phrase_list(self) -> List[str]:
        """Non-blank ignore phrases, one per line."""
        return [line.strip() for line in (self.ignore_phrases or "").splitlines() if line.strip()]

    def bump_wpm(self, delta: int) -> int:
        """Adjust wpm by *delta* within bounds and return the new value."""
        self.wpm = _clamp(clamp_wpm(self.wpm) + int(delta), MIN_WPM, MAX_WPM)
        return self.wpm
