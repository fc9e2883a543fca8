"""Shared test fixtures for the tts_reader test suite.

WHY: The reader, API, and CLI tests all need a speech client that never
touches the network, a short multi-section book, and a scratch state
directory. Centralizing them here keeps every module testing the same
sample data.

HOW: Fixtures wrap the helpers in tests/fakes.py. The session fixture
persists into a per-test temporary directory.
"""

import pytest

from tts_reader.core.persistence import StateStore
from tts_reader.core.reader import ReaderSession

from tests.fakes import SAMPLE_TEXT, FakeSpeechClient, build_session


@pytest.fixture
def fake_client() -> FakeSpeechClient:
    return FakeSpeechClient()


@pytest.fixture
def state_store(tmp_path) -> StateStore:
    return StateStore(tmp_path / "state")


@pytest.fixture
def session(state_store) -> ReaderSession:
    """A persisted session with SAMPLE_TEXT already loaded."""
    reader = build_session(state_store)
    reader.load_text("novel.txt", SAMPLE_TEXT.encode("utf-8"))
    return reader
