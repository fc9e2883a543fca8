"""Tests for ReaderSession: section pipeline, playback, auto-next, resume.

WHY: The session is the one place where generation status, the single
active playback slot, persisted progress, and the auto-next queue meet.
Both the API and the CLI rely on its transitions being exact.

HOW: Async methods are driven with asyncio.run(); FakeSpeechClient
replaces the Gemini client and all pacing delays are zero.
"""

from __future__ import annotations

import asyncio

import pytest

from tts_reader.core.models import SectionStatus, VoiceName
from tts_reader.core.reader import (
    GenerationInProgressError,
    SectionNotFoundError,
    SectionNotReadyError,
)
from tts_reader.core.textfile import EmptyFileError

from tests.fakes import SAMPLE_SECTIONS, FakeSpeechClient, build_session, make_pcm_payload


def _generate(session, index, client):
    return asyncio.run(session.generate_section(session.sections[index].id, client))


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadText:

    def test_sections_created_pending(self, session):
        assert [s.content for s in session.sections] == SAMPLE_SECTIONS
        assert all(s.status == SectionStatus.PENDING for s in session.sections)
        assert [s.index for s in session.sections] == list(range(5))
        assert session.state.original_file_name == "novel.txt"
        assert session.raw_text.startswith("Alpha one.")
        assert session.total_pages() == 3

    def test_new_file_clears_resume_point(self, session):
        first = session.sections[0].id
        session.record_progress(first, 3.0, 10.0)
        session.set_page(3)
        session.load_text("other.txt", b"New book. Second line.")
        assert session.resume_target() is None
        assert session.view.current_page == 1

    def test_empty_file_rejected(self, session):
        with pytest.raises(EmptyFileError):
            session.load_text("empty.txt", b"   ")
        assert len(session.sections) == 5

    def test_load_is_persisted(self, session, state_store):
        saved = state_store.load_state()
        assert [s.id for s in saved.sections] == [s.id for s in session.sections]


# ---------------------------------------------------------------------------
# Section pipeline
# ---------------------------------------------------------------------------


class TestGenerateSection:

    def test_success(self, session, fake_client):
        assert _generate(session, 0, fake_client) is True
        section = session.sections[0]
        assert section.status == SectionStatus.READY
        assert section.reflowed_content == "Reflowed: Alpha one."
        assert section.audio[:4] == b"RIFF"
        assert section.audio[8:12] == b"WAVE"
        assert fake_client.reflow_calls == ["Alpha one."]
        assert fake_client.synth_calls == [("Reflowed: Alpha one.", VoiceName.PUCK)]

    def test_selected_voice_used(self, session, fake_client):
        session.select_voice("Charon")
        _generate(session, 0, fake_client)
        assert fake_client.synth_calls[0][1] == VoiceName.CHARON

    def test_reflowed_text_persisted(self, session, fake_client, state_store):
        _generate(session, 1, fake_client)
        saved = state_store.load_state()
        assert saved.sections[1].reflowed_content == "Reflowed: Bravo two."

    def test_failure_sets_error(self, session):
        client = FakeSpeechClient(fail_on=["Alpha"])
        assert _generate(session, 0, client) is False
        section = session.sections[0]
        assert section.status == SectionStatus.ERROR
        assert "Alpha" in section.error
        assert section.audio is None

    def test_retry_after_failure(self, session, fake_client):
        _generate(session, 0, FakeSpeechClient(fail_on=["Alpha"]))
        assert _generate(session, 0, fake_client) is True
        assert session.sections[0].status == SectionStatus.READY
        assert session.sections[0].error is None

    def test_ready_section_not_regenerated(self, session, fake_client):
        _generate(session, 0, fake_client)
        _generate(session, 0, fake_client)
        assert len(fake_client.synth_calls) == 1

    def test_unknown_section(self, session, fake_client):
        assert asyncio.run(session.generate_section("missing", fake_client)) is False

    def test_result_dropped_after_reset(self, session):
        class ResettingClient(FakeSpeechClient):
            async def reflow_text(self, text):
                session.reset()
                return text

        client = ResettingClient()
        section_id = session.sections[0].id
        assert asyncio.run(session.generate_section(section_id, client)) is False
        assert session.sections == []
        assert client.synth_calls == []

    def test_auto_play_activates(self, session, fake_client):
        section_id = session.sections[3].id
        asyncio.run(session.generate_section(section_id, fake_client, auto_play=True))
        assert session.active_section_id == section_id
        assert session.paused is False
        assert session.view.current_page == 2

    def test_fail_section(self, session):
        session.fail_section(session.sections[2].id, "no key")
        assert session.sections[2].status == SectionStatus.ERROR
        assert session.sections[2].error == "no key"

    def test_concurrent_requests_generate_once(self, session, fake_client):
        section_id = session.sections[0].id

        async def scenario():
            return await asyncio.gather(
                session.generate_section(section_id, fake_client),
                session.generate_section(section_id, fake_client),
            )

        assert asyncio.run(scenario()) == [True, False]
        assert fake_client.reflow_calls == ["Alpha one."]
        assert len(fake_client.synth_calls) == 1
        assert session.sections[0].status == SectionStatus.READY

    @pytest.mark.parametrize("status", [SectionStatus.ANALYZING, SectionStatus.GENERATING])
    def test_in_flight_section_left_alone(self, session, fake_client, status):
        session.sections[1].status = status
        assert _generate(session, 1, fake_client) is False
        assert fake_client.reflow_calls == []
        assert fake_client.synth_calls == []
        assert session.sections[1].status == status

    def test_long_audio_encoded_off_the_event_loop(self, session):
        frames = 24000 * 60

        class LongAudioClient(FakeSpeechClient):
            async def synthesize_speech(self, text, voice):
                self.synth_calls.append((text, voice))
                return make_pcm_payload([0] * frames)

        async def scenario():
            loop = asyncio.get_running_loop()
            gaps = []
            finished = asyncio.Event()

            async def ticker():
                last = loop.time()
                while not finished.is_set():
                    await asyncio.sleep(0.01)
                    now = loop.time()
                    gaps.append(now - last)
                    last = now

            ticks = asyncio.create_task(ticker())
            await asyncio.sleep(0)
            ok = await session.generate_section(session.sections[0].id, LongAudioClient())
            finished.set()
            await ticks
            return ok, max(gaps)

        ok, longest_gap = asyncio.run(scenario())
        assert ok is True
        assert len(session.sections[0].audio) == 44 + frames * 2
        assert longest_gap < 0.5


class TestGeneratePage:

    def test_generates_only_that_page(self, session, fake_client):
        assert asyncio.run(session.generate_page(2, fake_client)) == 2
        statuses = [s.status for s in session.sections]
        assert statuses == [
            SectionStatus.PENDING, SectionStatus.PENDING,
            SectionStatus.READY, SectionStatus.READY,
            SectionStatus.PENDING,
        ]
        assert session.page_generation_running is False

    def test_skips_ready_sections(self, session, fake_client):
        _generate(session, 0, fake_client)
        assert asyncio.run(session.generate_page(1, fake_client)) == 1
        assert len(fake_client.synth_calls) == 2

    def test_stops_at_first_failure(self, session):
        client = FakeSpeechClient(fail_on=["Charlie"])
        assert asyncio.run(session.generate_page(2, client)) == 0
        assert session.sections[2].status == SectionStatus.ERROR
        assert session.sections[3].status == SectionStatus.PENDING
        assert client.reflow_calls == ["Charlie three."]

    def test_skips_sections_already_generating(self, session, fake_client):
        session.sections[0].status = SectionStatus.GENERATING
        assert asyncio.run(session.generate_page(1, fake_client)) == 1
        assert fake_client.reflow_calls == ["Bravo two."]
        assert session.sections[0].status == SectionStatus.GENERATING

    def test_concurrent_run_rejected(self, session, fake_client):
        class SlowClient(FakeSpeechClient):
            def __init__(self):
                super().__init__()
                self.release = asyncio.Event()

            async def reflow_text(self, text):
                await self.release.wait()
                return text

        async def scenario():
            slow = SlowClient()
            first = asyncio.create_task(session.generate_page(1, slow))
            await asyncio.sleep(0)
            assert session.page_generation_running is True
            with pytest.raises(GenerationInProgressError):
                await session.generate_page(1, fake_client)
            slow.release.set()
            return await first

        assert asyncio.run(scenario()) == 2
        assert session.page_generation_running is False


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------


class TestPlay:

    def test_not_ready(self, session):
        with pytest.raises(SectionNotReadyError):
            session.play(session.sections[0].id)

    def test_unknown(self, session):
        with pytest.raises(SectionNotFoundError):
            session.play("missing")

    def test_play_pause_resume(self, session, fake_client):
        _generate(session, 0, fake_client)
        section_id = session.sections[0].id

        command = session.play(section_id)
        assert command.action == "play"
        assert command.playback_rate == 1.15
        assert session.active_section_id == section_id

        assert session.play(section_id).action == "pause"
        assert session.paused is True
        assert session.play(section_id).action == "resume"
        assert session.paused is False

    def test_single_active_section(self, session, fake_client):
        _generate(session, 0, fake_client)
        _generate(session, 1, fake_client)
        session.play(session.sections[0].id)
        command = session.play(session.sections[1].id, start_time=4.0)
        assert command.action == "play"
        assert command.start_time == 4.0
        assert session.active_section_id == session.sections[1].id

    def test_play_moves_to_section_page(self, session, fake_client):
        _generate(session, 4, fake_client)
        session.play(session.sections[4].id)
        assert session.view.current_page == 3


class TestRecordProgress:

    @pytest.mark.parametrize("current, duration, expected", [
        (5.0, 10.0, 50.0),
        (15.0, 10.0, 100.0),
        (3.0, 0.0, 0.0),
    ])
    def test_progress_clamped(self, session, current, duration, expected):
        section_id = session.sections[1].id
        assert session.record_progress(section_id, current, duration) == expected
        assert session.sections[1].progress == expected

    def test_sets_resume_point(self, session, state_store):
        section_id = session.sections[2].id
        session.record_progress(section_id, 7.5, 30.0)
        assert session.resume_target() == (section_id, 7.5)
        saved = state_store.load_state()
        assert saved.last_played_section_id == section_id
        assert saved.last_played_time == 7.5

    def test_overall_progress(self, session):
        session.record_progress(session.sections[0].id, 10.0, 10.0)
        session.record_progress(session.sections[1].id, 5.0, 10.0)
        assert session.overall_progress() == 30

    def test_unknown(self, session):
        with pytest.raises(SectionNotFoundError):
            session.record_progress("missing", 1.0, 2.0)


class TestPlaybackEnded:

    def test_auto_next_off_stops(self, session, fake_client):
        _generate(session, 0, fake_client)
        session.play(session.sections[0].id)
        assert asyncio.run(session.playback_ended(session.sections[0].id, fake_client)) is None
        assert session.active_section_id is None
        assert len(fake_client.synth_calls) == 1

    def test_next_ready_section_plays(self, session, fake_client):
        session.set_auto_next(True)
        _generate(session, 0, fake_client)
        _generate(session, 1, fake_client)
        command = asyncio.run(session.playback_ended(session.sections[0].id, fake_client))
        assert command.section_id == session.sections[1].id
        assert command.action == "play"
        assert len(fake_client.synth_calls) == 2

    def test_next_section_generated(self, session, fake_client):
        session.set_auto_next(True)
        _generate(session, 1, fake_client)
        command = asyncio.run(session.playback_ended(session.sections[1].id, fake_client))
        assert command.section_id == session.sections[2].id
        assert session.sections[2].status == SectionStatus.READY
        assert session.active_section_id == session.sections[2].id
        assert session.view.current_page == 2

    def test_last_section_stops(self, session, fake_client):
        session.set_auto_next(True)
        assert asyncio.run(session.playback_ended(session.sections[4].id, fake_client)) is None
        assert session.active_section_id is None

    def test_generation_failure_stops_queue(self, session):
        session.set_auto_next(True)
        client = FakeSpeechClient(fail_on=["Bravo"])
        assert asyncio.run(session.playback_ended(session.sections[0].id, client)) is None
        assert session.sections[1].status == SectionStatus.ERROR
        assert session.active_section_id is None


# ---------------------------------------------------------------------------
# Persistence, resume, reset
# ---------------------------------------------------------------------------


class TestRestoreAndResume:

    def test_restore(self, session, state_store, fake_client):
        _generate(session, 0, fake_client)
        session.select_voice("Zephyr")
        session.set_playback_rate(1.5)
        session.set_page(2)

        restored = build_session(state_store)
        assert restored.restore() is True
        assert [s.id for s in restored.sections] == [s.id for s in session.sections]
        assert all(s.status == SectionStatus.PENDING for s in restored.sections)
        assert restored.state.selected_voice == VoiceName.ZEPHYR
        assert restored.state.playback_rate == 1.5
        assert restored.view.current_page == 2
        assert restored.raw_text is None

    def test_restore_without_records(self, state_store):
        assert build_session(state_store).restore() is False
        assert build_session(None).restore() is False

    def test_resume_regenerates_and_seeks(self, session, state_store, fake_client):
        section_id = session.sections[3].id
        session.record_progress(section_id, 12.0, 40.0)

        restored = build_session(state_store)
        restored.restore()
        command = asyncio.run(restored.resume(fake_client))
        assert command.section_id == section_id
        assert command.start_time == 12.0
        assert restored.get_section(section_id).status == SectionStatus.READY
        assert restored.active_section_id == section_id

    def test_resume_nothing(self, session, fake_client):
        assert asyncio.run(session.resume(fake_client)) is None

    def test_reset(self, session, state_store):
        session.reset()
        assert session.sections == []
        assert session.raw_text is None
        assert state_store.load_state() is None
        assert not state_store.view_path.exists()


# ---------------------------------------------------------------------------
# Settings and downloads
# ---------------------------------------------------------------------------


class TestSettings:

    def test_invalid_rate(self, session):
        with pytest.raises(ValueError):
            session.set_playback_rate(2.0)

    def test_invalid_voice(self, session):
        with pytest.raises(ValueError):
            session.select_voice("Nobody")

    def test_page_clamped(self, session):
        assert session.set_page(99) == 3
        assert session.set_page(0) == 1

    def test_view_persisted_separately(self, session, state_store):
        session.set_page(2)
        assert state_store.load_view().current_page == 2


def test_ready_audio_downloads_staggered(session, fake_client):
    _generate(session, 1, fake_client)
    _generate(session, 3, fake_client)
    _generate(session, 4, fake_client)
    downloads = session.ready_audio_downloads()
    assert [d.index for d in downloads] == [1, 3, 4]
    assert [d.delay_s for d in downloads] == pytest.approx([0.0, 0.3, 0.6])


def test_no_ready_audio(session):
    assert session.ready_audio_downloads() == []
