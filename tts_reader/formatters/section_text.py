"""Plain text export of a single section.

WHY: Listeners want to read along or keep the restructured text of a
section they liked. The export is the text that is actually spoken: the
reflowed version when reflow ran, the original section text otherwise.

RULES:
- Content is Section.display_text with one trailing newline
- Output suffix: "_Section_{n}.txt" (n is 1-based)
- Media type: "text/plain"
"""

from __future__ import annotations

from typing import List

from tts_reader.core.models import Section
from tts_reader.formatters.base import BaseFormatter, FormatterOutput


class SectionTextFormatter(BaseFormatter):
    """Formatter that writes the spoken text of a section."""

    @property
    def name(self) -> str:
        return "Section Text"

    def format(self, section: Section) -> List[FormatterOutput]:
        content = section.display_text.rstrip("\n") + "\n"
        return [
            FormatterOutput(
                suffix="_Section_{}.txt".format(section.number),
                content=content,
                media_type="text/plain",
            )
        ]
