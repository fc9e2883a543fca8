"""Async HTTP client for the Gemini text and speech generation API.

WHY: Every section goes through two remote steps: a text model reflows
the raw section into readable paragraphs, then a speech model reads it
aloud. This module keeps both calls behind a single client class so
callers (CLI, HTTP API, tests) don't need to know HTTP details.

HOW: Uses httpx.AsyncClient for non-blocking HTTP against the REST
generateContent endpoint. GeminiClient is an async context manager:
enter it to get an authenticated client, exit to close the connection
pool. reflow_text() and synthesize_speech() are independent methods;
the caller sequences them.

RULES:
- Always use the async context manager (async with GeminiClient() as client:)
- Authentication is the x-goog-api-key header
- Reflow must never lose text: an empty model answer returns the input
- Speech input is stripped of control characters and cut to 4000 chars
- A speech response without inline audio raises NoAudioPayloadError
- No automatic retries; failures propagate to the caller
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

import httpx

from tts_reader.api.models import GeneratedText, InlineAudio
from tts_reader.config import (
    GEMINI_BASE_URL,
    REFLOW_MODEL,
    TTS_MAX_INPUT_CHARS,
    TTS_MODEL,
    load_api_key,
)
from tts_reader.core.models import VoiceName
from tts_reader.core.normalizer import strip_control_characters

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

REFLOW_PROMPT = (
    "Analyze the context of this text and split it into paragraphs that are "
    "comfortable to read aloud, restructuring the line breaks naturally.\n"
    "Keep every single character of the original content. Do not summarize.\n"
    "Output only the restructured text:\n\n{text}"
)

SPEECH_INSTRUCTION = (
    "Read the following naturally, with a calm and thoughtful cadence, "
    "leaving a comfortable pause between sentences:\n\n{text}"
)


class GeminiAPIError(Exception):
    """Raised when the Gemini API returns an error response.

    WHY: Callers need a typed exception to distinguish API errors from
    network errors or other failures.

    HOW: Wraps the HTTP status code and response body.

    RULES:
    - Always include status_code and message
    - message is the response body text or a summary
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Gemini API error {status_code}: {message}")


class NoAudioPayloadError(Exception):
    """Raised when the speech model answers without any audio data."""


class GeminiClient:
    """Async client for Gemini paragraph reflow and speech synthesis.

    WHY: Provides a clean, typed interface for the two remote steps of
    the section pipeline. Handles auth, request shaping, and error
    wrapping.

    HOW: Wraps httpx.AsyncClient with API key auth. Each step is an
    async method. Use as an async context manager to ensure the HTTP
    connection pool is properly closed.

    RULES:
    - Use as: async with GeminiClient() as client: ...
    - api_key defaults to load_api_key() from .env
    - base_url, reflow_model, tts_model default to config values
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        reflow_model: Optional[str] = None,
        tts_model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or GEMINI_BASE_URL).rstrip("/")
        self._reflow_model = reflow_model or REFLOW_MODEL
        self._tts_model = tts_model or TTS_MODEL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> GeminiClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-goog-api-key": self._api_key},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "GeminiClient must be used as an async context manager: "
                "async with GeminiClient() as client: ..."
            )
        return self._client

    async def _generate(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        client = self._ensure_client()
        resp = await client.post(f"/models/{model}:generateContent", json=body)
        if resp.status_code != 200:
            raise GeminiAPIError(resp.status_code, resp.text)
        return resp.json()

    # ------------------------------------------------------------------
    # Step 1: Reflow
    # ------------------------------------------------------------------

    async def reflow_text(self, text: str) -> str:
        """Ask the text model to restructure text into readable paragraphs.

        WHY: Raw book text has arbitrary line breaks (or none, after
        normalization). Paragraph structure gives the speech model
        natural breathing points.

        HOW: Sends the reflow prompt with the section text and joins the
        text parts of the first candidate.

        RULES:
        - Returns the input text unchanged when the model returns nothing
        - Raises GeminiAPIError on non-200 responses

        Args:
            text: Section text to restructure.

        Returns:
            The restructured text.
        """
        body = {"contents": [{"parts": [{"text": REFLOW_PROMPT.format(text=text)}]}]}
        data = await self._generate(self._reflow_model, body)
        generated = GeneratedText.from_response(data)
        if not generated.text.strip():
            logger.warning("Reflow returned no text; keeping the original section text")
            return text
        return generated.text

    # ------------------------------------------------------------------
    # Step 2: Synthesize
    # ------------------------------------------------------------------

    async def synthesize_speech(
        self,
        text: str,
        voice: Union[VoiceName, str],
    ) -> InlineAudio:
        """Synthesize speech for text with one of the prebuilt voices.

        WHY: The speech model returns raw PCM as base64 inline data; the
        caller decodes and wraps it into a WAV container.

        HOW: Requests the AUDIO response modality with a prebuilt voice
        config and returns the first inline audio part.

        RULES:
        - Control characters are removed and input is cut to 4000 chars
        - Raises NoAudioPayloadError when no audio part is returned
        - Raises GeminiAPIError on non-200 responses

        Args:
            text: Text to read aloud.
            voice: Prebuilt voice name.

        Returns:
            InlineAudio with the base64 payload and its mime type.
        """
        voice_name = voice.value if isinstance(voice, VoiceName) else str(voice)
        sanitized = strip_control_characters(text)[:TTS_MAX_INPUT_CHARS]
        body = {
            "contents": [{"parts": [{"text": SPEECH_INSTRUCTION.format(text=sanitized)}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": voice_name},
                    },
                },
            },
        }
        data = await self._generate(self._tts_model, body)
        audio = InlineAudio.from_response(data)
        if audio is None:
            raise NoAudioPayloadError("The speech model returned no audio data.")
        return audio
