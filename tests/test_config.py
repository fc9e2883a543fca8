"""Tests for environment-driven configuration."""

import logging

import pytest

from tts_reader.config import DEFAULT_VOICE, VOICE_LABELS, _env_voice
from tts_reader.core.models import ReaderState, VoiceName


def test_default_voice_is_a_known_voice():
    assert DEFAULT_VOICE in VOICE_LABELS
    assert ReaderState().selected_voice == VoiceName(DEFAULT_VOICE)


class TestEnvVoice:

    def test_unset_uses_default(self, monkeypatch):
        monkeypatch.delenv("TTS_READER_DEFAULT_VOICE", raising=False)
        assert _env_voice("TTS_READER_DEFAULT_VOICE") == "Puck"

    def test_known_voice(self, monkeypatch):
        monkeypatch.setenv("TTS_READER_DEFAULT_VOICE", " Kore ")
        assert _env_voice("TTS_READER_DEFAULT_VOICE") == "Kore"

    @pytest.mark.parametrize("value", ["Bogus", "kore", "Alloy"])
    def test_unknown_voice_falls_back(self, monkeypatch, caplog, value):
        monkeypatch.setenv("TTS_READER_DEFAULT_VOICE", value)
        with caplog.at_level(logging.WARNING, logger="tts_reader.config"):
            assert _env_voice("TTS_READER_DEFAULT_VOICE") == "Puck"
        assert value in caplog.text
        VoiceName(_env_voice("TTS_READER_DEFAULT_VOICE"))
