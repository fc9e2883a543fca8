"""Configuration constants, voice catalogue, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Voice names, playback rates, pacing delays, and
API defaults are plain data structures, not buried in logic, so both
humans and tooling can modify them confidently.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level dicts, tuples, and strings. The load_api_key() function
provides a clear error when the key is missing.

RULES:
- VOICE_LABELS maps every prebuilt Gemini voice to a display label
- PLAYBACK_RATES is the closed set of selectable playback speeds
- API key is loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
- An unknown TTS_READER_DEFAULT_VOICE falls back to Puck with a warning
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from the project root (where the script is run from)
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


# ---------------------------------------------------------------------------
# Voices and playback
# ---------------------------------------------------------------------------

VOICE_LABELS: dict[str, str] = {
    "Kore": "Kore (female, bright)",
    "Zephyr": "Zephyr (female, soft)",
    "Puck": "Puck (male, trustworthy)",
    "Charon": "Charon (male, calm)",
    "Fenrir": "Fenrir (male, deep)",
}

FALLBACK_VOICE = "Puck"


def _env_voice(name: str, default: str = FALLBACK_VOICE) -> str:
    """Read a voice name from the environment; unknown names fall back to default."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    if raw not in VOICE_LABELS:
        logger.warning(
            "Ignoring %s=%r: not one of %s; using %s",
            name, raw, ", ".join(VOICE_LABELS), default,
        )
        return default
    return raw


DEFAULT_VOICE = _env_voice("TTS_READER_DEFAULT_VOICE")

PLAYBACK_RATES: tuple[float, ...] = (0.8, 1.0, 1.15, 1.25, 1.5)
"""Selectable playback speeds, slowest first."""

DEFAULT_PLAYBACK_RATE = 1.15

# ---------------------------------------------------------------------------
# Sectioning and pacing
# ---------------------------------------------------------------------------

SUPPORTED_TEXT_FORMATS: set[str] = {".txt", ".text"}
"""Accepted upload extensions (lowercase, with dot)."""

MAX_CHARS_PER_SECTION = _env_int("TTS_READER_MAX_CHARS", 3000)
ITEMS_PER_PAGE = _env_int("TTS_READER_ITEMS_PER_PAGE", 10)

AUTO_NEXT_DELAY_S = _env_float("TTS_READER_AUTO_NEXT_DELAY", 1.5)
"""Pause between the end of one section and synthesis of the next."""

GENERATE_ALL_DELAY_S = _env_float("TTS_READER_GENERATE_ALL_DELAY", 1.0)
"""Pause between sequential requests when generating a whole page."""

DOWNLOAD_STAGGER_S = _env_float("TTS_READER_DOWNLOAD_STAGGER", 0.3)
"""Gap between consecutive downloads in the bulk audio download."""

# ---------------------------------------------------------------------------
# Audio format of the synthesis endpoint
# ---------------------------------------------------------------------------

TTS_SAMPLE_RATE = 24000
TTS_CHANNEL_COUNT = 1
TTS_MAX_INPUT_CHARS = 4000

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

STORAGE_KEY = "tts_reader_state_v17"
VIEW_STORAGE_KEY = "tts_reader_view_v17"
STATE_DIR = Path(
    os.getenv("TTS_READER_STATE_DIR", str(Path.home() / ".tts_reader"))
).expanduser()

# ---------------------------------------------------------------------------
# API configuration defaults
# ---------------------------------------------------------------------------

GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
REFLOW_MODEL = os.getenv("TTS_READER_REFLOW_MODEL", "gemini-3-flash-preview")
TTS_MODEL = os.getenv("TTS_READER_TTS_MODEL", "gemini-2.5-flash-preview-tts")


def load_api_key() -> str:
    """Load the Gemini API key from the environment.

    WHY: The API key is required for every reflow and synthesis call.
    Loading it from the environment (via .env) keeps it out of source code.

    HOW: Reads GEMINI_API_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("GEMINI_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "Gemini API key not configured. "
            "Add GEMINI_API_KEY to the .env file in the app folder."
        )
    return key
