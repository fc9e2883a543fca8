"""JSON persistence for the reader's core-data and view records.

WHY: Listeners close the reader mid-book and expect to come back to the
same file, voice, speed, and position. Audio is far too large to keep
and is cheap to regenerate, so only text and progress survive.

HOW: Each record is one JSON file named after a fixed storage key in the
state directory. The core-data record (ReaderState) and the view record
(ViewState) are written and read independently.

RULES:
- Core record key: STORAGE_KEY; view record key: VIEW_STORAGE_KEY
- Loading never raises: missing or corrupt records return None (logged)
- Loaded sections are always pending with no audio
- Writes go through a temp file and replace() so a crash never leaves
  a half-written record
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from tts_reader.config import STATE_DIR, STORAGE_KEY, VIEW_STORAGE_KEY
from tts_reader.core.models import ReaderState, ViewState

logger = logging.getLogger(__name__)


class StateStore:
    """Reads and writes reader records under a state directory."""

    def __init__(
        self,
        directory: Union[str, Path] = STATE_DIR,
        key: str = STORAGE_KEY,
        view_key: str = VIEW_STORAGE_KEY,
    ) -> None:
        self.directory = Path(directory)
        self.state_path = self.directory / "{}.json".format(key)
        self.view_path = self.directory / "{}.json".format(view_key)

    def save_state(self, state: ReaderState) -> None:
        self._write(self.state_path, state.to_dict())

    def load_state(self) -> Optional[ReaderState]:
        data = self._read(self.state_path)
        if data is None:
            return None
        try:
            return ReaderState.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.exception("Failed to parse saved reader state %s", self.state_path)
            return None

    def save_view(self, view: ViewState) -> None:
        self._write(self.view_path, view.to_dict())

    def load_view(self) -> Optional[ViewState]:
        data = self._read(self.view_path)
        if data is None:
            return None
        try:
            return ViewState.from_dict(data)
        except (TypeError, ValueError):
            logger.exception("Failed to parse saved view state %s", self.view_path)
            return None

    def clear(self) -> None:
        """Delete both records."""
        for path in (self.state_path, self.view_path):
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    def _write(self, path: Path, data: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(path)

    @staticmethod
    def _read(path: Path) -> Optional[Dict[str, Any]]:
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read saved state %s", path)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring saved state %s: not a JSON object", path)
            return None
        return data
