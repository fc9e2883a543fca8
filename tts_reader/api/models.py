"""Gemini generateContent response dataclasses.

WHY: The generateContent endpoint returns nested JSON
(candidates → content → parts) for both text and audio responses. Typed
dataclasses make the two shapes this reader consumes explicit and keep
the dict-walking in one place.

HOW: Each dataclass maps to one part of the response JSON. Factory
methods (from_response) handle parsing from raw API responses and
tolerate missing optional branches.

RULES:
- Text parts are concatenated in order; non-text parts are skipped
- Audio comes from the first part carrying inlineData
- Missing candidates or parts yield empty results, never KeyError
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


def _first_candidate_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return content.get("parts") or []


@dataclass
class GeneratedText:
    """Text returned by a generateContent call.

    RULES:
    - text: all text parts of the first candidate joined, "" when absent
    - finish_reason: the candidate's finishReason, when present
    """

    text: str
    finish_reason: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> GeneratedText:
        parts = _first_candidate_parts(data)
        text = "".join(part.get("text", "") for part in parts if "text" in part)
        candidates = data.get("candidates") or []
        finish_reason = candidates[0].get("finishReason") if candidates else None
        return cls(text=text, finish_reason=finish_reason)


@dataclass
class InlineAudio:
    """Base64 audio payload returned by the speech model.

    RULES:
    - data: base64 string of raw little-endian int16 PCM
    - mime_type: e.g. "audio/L16;codec=pcm;rate=24000"
    """

    data: str
    mime_type: str = ""

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> Optional[InlineAudio]:
        """Return the first inline audio part, or None when there is none."""
        for part in _first_candidate_parts(data):
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                return cls(
                    data=inline["data"],
                    mime_type=inline.get("mimeType") or inline.get("mime_type") or "",
                )
        return None
