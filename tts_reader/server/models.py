"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation. Pydantic
models enforce field types at runtime and generate JSON Schema that
appears in the /docs UI.

HOW: Each endpoint pair (request + response) has its own model. All
models include Field descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Response models never expose audio bytes, only URLs
- SectionStatus and VoiceName come from core.models (single source of truth)
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from tts_reader.core.models import SectionStatus, VoiceName


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SettingsUpdate(BaseModel):
    """Reader settings a client may change. Omitted fields stay as they are."""

    voice: Optional[str] = Field(
        default=None, description="Prebuilt voice name, e.g. 'Puck'.",
    )
    playback_rate: Optional[float] = Field(
        default=None,
        description="Playback speed; one of 0.8, 1.0, 1.15, 1.25, 1.5.",
    )
    auto_next: Optional[bool] = Field(
        default=None,
        description="Generate and play the next section automatically when one ends.",
    )
    page: Optional[int] = Field(default=None, description="Page of the section list to show.")


class ProgressUpdate(BaseModel):
    """Playback position reported by the media element."""

    current_time: float = Field(ge=0, description="Current playback position in seconds.")
    duration: float = Field(ge=0, description="Total duration of the section audio in seconds.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SectionResponse(BaseModel):
    """One section of the loaded file."""

    id: str = Field(description="Unique section identifier.")
    index: int = Field(description="0-based position in the file.")
    status: SectionStatus = Field(description="Generation status.")
    content: str = Field(description="Section text as split from the file.")
    reflowed_content: Optional[str] = Field(
        default=None, description="Paragraph-restructured text, once reflow ran.",
    )
    progress: float = Field(description="Playback progress percentage (0-100).")
    page: int = Field(description="Page of the section list this section is on.")
    audio_url: Optional[str] = Field(
        default=None, description="Download URL of the WAV audio, when ready.",
    )
    error: Optional[str] = Field(default=None, description="Last generation error, if any.")


class SectionPageResponse(BaseModel):
    """One page of the section list."""

    page: int = Field(description="1-based page number.")
    total_pages: int = Field(description="Number of pages.")
    items_per_page: int = Field(description="Sections per page.")
    sections: List[SectionResponse] = Field(description="Sections on this page.")


class ResumeInfo(BaseModel):
    """Where the listener stopped last time."""

    section_id: str = Field(description="Section that was playing.")
    index: int = Field(description="0-based index of that section.")
    position: float = Field(description="Playback position in seconds.")


class StateResponse(BaseModel):
    """Summary of the reader state."""

    file_name: Optional[str] = Field(default=None, description="Loaded file name.")
    section_count: int = Field(description="Number of sections.")
    voice: VoiceName = Field(description="Selected voice.")
    playback_rate: float = Field(description="Selected playback speed.")
    auto_next: bool = Field(description="Whether auto-next is enabled.")
    overall_progress: int = Field(description="Mean playback progress over all sections (0-100).")
    current_page: int = Field(description="Page currently shown.")
    total_pages: int = Field(description="Number of pages.")
    active_section_id: Optional[str] = Field(
        default=None, description="Section currently loaded in the player.",
    )
    paused: bool = Field(description="Whether the player is paused.")
    generating_page: bool = Field(description="Whether a page generation run is in progress.")
    resume: Optional[ResumeInfo] = Field(
        default=None, description="Resume point from a previous session.",
    )


class PlaybackResponse(BaseModel):
    """Instruction for the media element."""

    section_id: str = Field(description="Section to play.")
    index: int = Field(description="0-based index of the section.")
    action: str = Field(description="'play', 'pause', or 'resume'.")
    audio_url: str = Field(description="WAV URL to load into the player.")
    playback_rate: float = Field(description="Playback speed to apply.")
    start_time: float = Field(description="Position in seconds to start from.")


class NextPlaybackResponse(BaseModel):
    """Result of the auto-next step; playback is None when the queue stops."""

    playback: Optional[PlaybackResponse] = Field(
        default=None, description="Next section to play, or null when playback stops.",
    )


class ProgressResponse(BaseModel):
    """Stored playback progress."""

    section_id: str = Field(description="Section the progress belongs to.")
    progress: float = Field(description="Playback progress percentage (0-100).")
    overall_progress: int = Field(description="Mean playback progress over all sections.")


class AudioDownloadInfo(BaseModel):
    """One entry of the bulk audio download list."""

    section_id: str = Field(description="Section identifier.")
    filename: str = Field(description="Suggested download file name.")
    url: str = Field(description="Download URL.")
    delay_ms: int = Field(description="Delay before starting this download, in milliseconds.")


class AudioDownloadList(BaseModel):
    """All ready audio downloads, staggered."""

    downloads: List[AudioDownloadInfo] = Field(description="Downloads in section order.")


class GenerationAccepted(BaseModel):
    """Acknowledgement that generation started in the background."""

    status: str = Field(description="Always 'accepted'.")
    section_ids: List[str] = Field(description="Sections queued for generation.")


class VoiceInfo(BaseModel):
    """A selectable voice."""

    name: VoiceName = Field(description="Voice identifier.")
    label: str = Field(description="Human-readable label.")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
