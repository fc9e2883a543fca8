"""Decode uploaded text files.

WHY: Most books arrive as UTF-8, but older Korean text files are still
commonly saved as EUC-KR. Decoding must not silently corrupt either.

HOW: Strict UTF-8 first; on failure, EUC-KR. Anything else is rejected.

RULES:
- A leading UTF-8 byte order mark is dropped
- Raises FileReadError when neither encoding decodes the bytes
- Raises EmptyFileError for files that are blank after decoding
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

FALLBACK_ENCODING = "euc-kr"


class FileReadError(Exception):
    """Raised when an uploaded file cannot be read or decoded."""


class EmptyFileError(FileReadError):
    """Raised when an uploaded file contains no readable text."""


def decode_text(data: bytes) -> str:
    """Decode bytes as UTF-8, falling back to EUC-KR."""
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        try:
            text = data.decode(FALLBACK_ENCODING)
        except UnicodeDecodeError as exc:
            raise FileReadError(
                "File is neither UTF-8 nor {} text: {}".format(FALLBACK_ENCODING, exc)
            ) from exc
    if not text.strip():
        raise EmptyFileError("The file is empty.")
    return text


def read_text_file(path: Union[str, Path]) -> str:
    """Read and decode a text file from disk."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FileReadError("Cannot read {}: {}".format(path, exc)) from exc
    return decode_text(data)
