"""Reader state dataclasses: sections, core-data record, and view record.

WHY: The reader tracks every section of the loaded file through its
generation lifecycle, plus the listener's settings and where they left
off. The HTTP API, CLI, and persistence layer all need the same typed
picture of that state.

HOW: Five types form the model:
  VoiceName       closed set of prebuilt synthesis voices
  SectionStatus   lifecycle of one section
  Section         one bounded piece of the file with status and audio
  ReaderState     core-data record (sections, voice, rate, progress)
  ViewState       view record (pagination), persisted separately

RULES:
- Sections are created pending; audio is never serialized
- ReaderState.from_dict() forces every section back to pending
- Progress is a percentage in [0, 100]
- Pages are 1-based; page of a section = index // items_per_page + 1
"""

from __future__ import annotations

import enum
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tts_reader.config import (
    DEFAULT_PLAYBACK_RATE,
    DEFAULT_VOICE,
    ITEMS_PER_PAGE,
    VOICE_LABELS,
)


class VoiceName(str, enum.Enum):
    """Prebuilt voices offered by the synthesis endpoint."""

    KORE = "Kore"
    PUCK = "Puck"
    CHARON = "Charon"
    FENRIR = "Fenrir"
    ZEPHYR = "Zephyr"

    @property
    def label(self) -> str:
        return VOICE_LABELS.get(self.value, self.value)


class SectionStatus(str, enum.Enum):
    """Valid states for a section.

    RULES:
    - pending: created, no audio yet
    - analyzing: reflow request in flight
    - generating: synthesis request in flight
    - ready: audio available
    - error: the last generation attempt failed
    """

    PENDING = "pending"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    READY = "ready"
    ERROR = "error"


@dataclass
class Section:
    """One bounded piece of the loaded file.

    RULES:
    - id: uuid4 hex, unique and immutable
    - index: 0-based position in the file
    - content: text as produced by the chunker
    - reflowed_content: paragraph-restructured text, once reflow ran
    - audio: WAV bytes when status is READY (never persisted)
    - progress: playback progress percentage in [0, 100]
    """

    id: str
    index: int
    content: str
    file_name: str
    status: SectionStatus = SectionStatus.PENDING
    reflowed_content: Optional[str] = None
    audio: Optional[bytes] = field(default=None, repr=False)
    progress: float = 0.0
    error: Optional[str] = None

    @classmethod
    def create(cls, index: int, content: str, file_name: str) -> Section:
        return cls(id=uuid.uuid4().hex, index=index, content=content, file_name=file_name)

    @property
    def display_text(self) -> str:
        """The text that is (or will be) spoken."""
        return self.reflowed_content or self.content

    @property
    def number(self) -> int:
        """1-based section number used in file names."""
        return self.index + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "index": self.index,
            "content": self.content,
            "reflowed_content": self.reflowed_content,
            "file_name": self.file_name,
            "progress": self.progress,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Section:
        return cls(
            id=data["id"],
            index=int(data["index"]),
            content=data["content"],
            file_name=data.get("file_name", ""),
            reflowed_content=data.get("reflowed_content"),
            progress=float(data.get("progress") or 0.0),
        )


@dataclass
class ReaderState:
    """Core-data record: what was loaded, how to read it, where we stopped."""

    original_file_name: Optional[str] = None
    sections: List[Section] = field(default_factory=list)
    selected_voice: VoiceName = VoiceName(DEFAULT_VOICE)
    playback_rate: float = DEFAULT_PLAYBACK_RATE
    auto_next: bool = False
    last_played_section_id: Optional[str] = None
    last_played_time: float = 0.0

    def find(self, section_id: str) -> Optional[Section]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def overall_progress(self) -> int:
        if not self.sections:
            return 0
        total = sum(s.progress for s in self.sections)
        return int(round(total / len(self.sections)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_file_name": self.original_file_name,
            "sections": [s.to_dict() for s in self.sections],
            "selected_voice": self.selected_voice.value,
            "playback_rate": self.playback_rate,
            "auto_next": self.auto_next,
            "last_played_section_id": self.last_played_section_id,
            "last_played_time": self.last_played_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ReaderState:
        """Restore a persisted record; every section comes back pending."""
        return cls(
            original_file_name=data.get("original_file_name"),
            sections=[Section.from_dict(s) for s in data.get("sections", [])],
            selected_voice=VoiceName(data.get("selected_voice") or DEFAULT_VOICE),
            playback_rate=float(data.get("playback_rate") or DEFAULT_PLAYBACK_RATE),
            auto_next=bool(data.get("auto_next", False)),
            last_played_section_id=data.get("last_played_section_id"),
            last_played_time=float(data.get("last_played_time") or 0.0),
        )


@dataclass
class ViewState:
    """View record: pagination over the section list."""

    current_page: int = 1
    items_per_page: int = ITEMS_PER_PAGE

    def total_pages(self, section_count: int) -> int:
        return int(math.ceil(section_count / float(self.items_per_page)))

    def page_of(self, index: int) -> int:
        return index // self.items_per_page + 1

    def page_slice(self, sections: List[Section], page: Optional[int] = None) -> List[Section]:
        start = ((page or self.current_page) - 1) * self.items_per_page
        return sections[start:start + self.items_per_page]

    def to_dict(self) -> Dict[str, Any]:
        return {"current_page": self.current_page, "items_per_page": self.items_per_page}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ViewState:
        return cls(
            current_page=max(1, int(data.get("current_page") or 1)),
            items_per_page=max(1, int(data.get("items_per_page") or ITEMS_PER_PAGE)),
        )


@dataclass
class PlaybackCommand:
    """Instruction for the media element after a play/resume/auto-next step.

    RULES:
    - action: "play" loads the section's audio and starts at start_time,
      "pause"/"resume" toggle the already active section
    """

    section_id: str
    index: int
    action: str
    playback_rate: float
    start_time: float = 0.0
