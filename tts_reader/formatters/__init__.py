"""Section formatter registry: pluggable download formats.

WHY: The CLI and API layers need a single lookup to find the right
formatter by name. A central dict makes it trivial to add new formats:
create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["audio"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags and URLs)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tts_reader.formatters.section_text import SectionTextFormatter
from tts_reader.formatters.wav_audio import WavAudioFormatter

if TYPE_CHECKING:
    from tts_reader.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "text": SectionTextFormatter,
    "audio": WavAudioFormatter,
}
