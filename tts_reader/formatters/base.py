"""Abstract base formatter and output container.

WHY: Every download the reader offers is derived from one Section but
produces different file content (the spoken text, the WAV audio). This
base class enforces a consistent interface so the CLI and HTTP layers
can work with any formatter generically.

HOW: BaseFormatter is an ABC with two requirements: a ``name`` property
and a ``format()`` method. FormatterOutput is a plain dataclass that
bundles a file suffix with its content (string or bytes) and MIME type.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``format()``
- ``format()`` returns a list; every current formatter returns one item
- ``suffix`` starts with an underscore and carries the section number,
  e.g. ``"_S3.wav"``
- The caller is responsible for prepending the source filename stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from tts_reader.core.models import Section


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File suffix appended to the source stem,
                e.g. ``"_S3.wav"`` → ``"novel_S3.wav"``.
        content: The file content as a string (text) or bytes (audio).
        media_type: MIME type for the content, e.g. ``"audio/wav"``.
    """

    suffix: str
    content: str | bytes
    media_type: str

    def filename_for(self, source_filename: str) -> str:
        """Full download name for a section of source_filename."""
        return "{}{}".format(Path(source_filename).stem, self.suffix)


class BaseFormatter(ABC):
    """Abstract base for all section formatters.

    To add a new output format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'WAV Audio'."""

    @abstractmethod
    def format(self, section: Section) -> list[FormatterOutput]:
        """Convert one section into one or more output files.

        Args:
            section: The section to export.

        Returns:
            List of FormatterOutput objects, each containing a file suffix,
            content string/bytes, and MIME type.
        """
