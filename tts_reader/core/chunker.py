"""Split normalized text into bounded-length sections.

WHY: The reflow and speech endpoints accept limited input, and a reader
wants sections short enough to generate and play one at a time. Cutting
mid-sentence sounds worse than a slightly oversized section, so sections
only break at sentence or line boundaries.

HOW: The text is normalized, then tokenized so that each token ends with
a delimiter (".", "?", "!" or newline) plus the whitespace that followed
it. Tokens accumulate into a buffer; when the next token would push the
buffer past max_chars, the buffer is flushed (stripped) as a section and
a new buffer starts at that token.

RULES:
- Sections keep original order; joining them reconstructs the normalized
  text apart from whitespace at section boundaries
- A single token longer than max_chars becomes its own oversized section
- Blank buffers are never emitted; empty input yields []
- max_chars <= 0 raises ValueError
"""

from __future__ import annotations

import re
from typing import List

from tts_reader.config import MAX_CHARS_PER_SECTION
from tts_reader.core.normalizer import normalize

_TOKEN_RE = re.compile(r"[^.\n?!]+[.\n?!]?\s*|[.\n?!]\s*")


def tokenize(text: str) -> List[str]:
    """Split text into delimiter-terminated tokens, losing no characters."""
    return _TOKEN_RE.findall(text)


def split_into_sections(text: str, max_chars: int = MAX_CHARS_PER_SECTION) -> List[str]:
    """Normalize text and split it into sections of at most max_chars.

    >>> split_into_sections("A. B. C.", max_chars=4)
    ['A.', 'B.', 'C.']
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive, got {}".format(max_chars))

    sections: List[str] = []
    buffer = ""

    for token in tokenize(normalize(text)):
        if len(buffer) + len(token) > max_chars:
            if buffer.strip():
                sections.append(buffer.strip())
            buffer = token
        else:
            buffer += token

    if buffer.strip():
        sections.append(buffer.strip())
    return sections
