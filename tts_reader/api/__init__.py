"""Gemini API client package: async HTTP interface to reflow and speech.

WHY: Every section needs a paragraph reflow and a speech synthesis call.
This package encapsulates all Gemini communication behind an async
client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. The GeminiClient class
provides one method per remote step. Response data is parsed into typed
dataclasses defined in models.py.

RULES:
- All HTTP calls go through GeminiClient (no direct httpx usage elsewhere)
- Authentication is via the x-goog-api-key header from config
"""

from tts_reader.api.client import GeminiAPIError, GeminiClient, NoAudioPayloadError
from tts_reader.api.models import GeneratedText, InlineAudio

__all__ = [
    "GeminiAPIError",
    "GeminiClient",
    "GeneratedText",
    "InlineAudio",
    "NoAudioPayloadError",
]
