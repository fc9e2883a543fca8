"""WAV audio export of a single section.

WHY: Generated audio is worth keeping for offline listening. The section
already holds a complete WAV container, so this formatter only names
and types it.

RULES:
- Raises SectionNotReadyError when the section has no audio
- Output suffix: "_S{n}.wav" (n is 1-based)
- Media type: "audio/wav"
"""

from __future__ import annotations

from typing import List

from tts_reader.core.models import Section, SectionStatus
from tts_reader.core.reader import SectionNotReadyError
from tts_reader.formatters.base import BaseFormatter, FormatterOutput


class WavAudioFormatter(BaseFormatter):
    """Formatter that exports the synthesized audio of a section."""

    @property
    def name(self) -> str:
        return "WAV Audio"

    def format(self, section: Section) -> List[FormatterOutput]:
        if section.status != SectionStatus.READY or section.audio is None:
            raise SectionNotReadyError(
                "Section {} has no audio yet (status: {}).".format(
                    section.number, section.status.value
                )
            )
        return [
            FormatterOutput(
                suffix="_S{}.wav".format(section.number),
                content=section.audio,
                media_type="audio/wav",
            )
        ]
