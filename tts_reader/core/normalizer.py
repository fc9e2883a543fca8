"""Text cleanup applied to uploaded files before sectioning.

WHY: Plain-text books arrive with stray control bytes, decorative
bullets and arrows, glued sentences ("end.Next"), runaway punctuation
("!!!!!") and a zoo of quote glyphs. Speech synthesis reads all of these
badly, and the reflow prompt works better on evenly spaced input.

HOW: A fixed sequence of regex rewrites. Order matters: later rules
assume control and decorative characters are already gone.

RULES:
- Control characters U+0000-U+001F and U+007F-U+009F are removed
  (this includes newlines and tabs)
- Decorative glyphs in DECORATIVE_GLYPHS become a single space
- ".", "?", "!" get one space before a following non-space character;
  runs of terminal punctuation are left together
- "," gets one space before a following non-space character
- 3+ newlines -> 2; 3+ "!" -> "!!"; 3+ "?" -> "??"; 4+ "." -> "..."
- Curly/low/angled quotes map to straight quotes
- Result is stripped; normalize() is idempotent
"""

from __future__ import annotations

import re

DECORATIVE_GLYPHS = "※▶▣◈◆▷■□○●◎◇▽▼▲△◀◁"

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_DECORATIVE_RE = re.compile("[{}]".format(re.escape(DECORATIVE_GLYPHS)))
_TERMINAL_SPACING_RE = re.compile(r"([.?!])(?=[^\s.?!]|$)")
_COMMA_SPACING_RE = re.compile(r",(?=\S)")
_NEWLINE_RUN_RE = re.compile(r"\n{3,}")
_BANG_RUN_RE = re.compile(r"!{3,}")
_QUESTION_RUN_RE = re.compile(r"\?{3,}")
_DOT_RUN_RE = re.compile(r"\.{4,}")
_DOUBLE_QUOTES_RE = re.compile("[“”＂„«»]")
_SINGLE_QUOTES_RE = re.compile("[‘’‚‛]")


def normalize(text: str) -> str:
    """Return a cleaned copy of text ready for sectioning and synthesis.

    >>> normalize("Hello.World!!!!")
    'Hello. World!!'
    """
    text = _CONTROL_RE.sub("", text)
    text = _DECORATIVE_RE.sub(" ", text)
    text = _TERMINAL_SPACING_RE.sub(r"\1 ", text)
    text = _COMMA_SPACING_RE.sub(", ", text)
    text = _NEWLINE_RUN_RE.sub("\n\n", text)
    text = _BANG_RUN_RE.sub("!!", text)
    text = _QUESTION_RUN_RE.sub("??", text)
    text = _DOT_RUN_RE.sub("...", text)
    text = _DOUBLE_QUOTES_RE.sub('"', text)
    text = _SINGLE_QUOTES_RE.sub("'", text)
    return text.strip()


def strip_control_characters(text: str) -> str:
    """Remove C0/C1 control characters only."""
    return _CONTROL_RE.sub("", text)
