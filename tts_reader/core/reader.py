"""Reader session: section pipeline, playback tracking, and auto-next queue.

WHY: The reader walks a listener through a whole book one section at a
time. Each section has to be reflowed, synthesized, decoded, and wrapped
into a WAV; playback position has to survive restarts; and with auto-next
enabled the next section must be produced and started when the current
one ends. This module owns that state so the HTTP API and the CLI share
one implementation.

HOW: ReaderSession holds the ReaderState (core data), the ViewState
(pagination), the raw file text, and the single active playback slot.
Synchronous mutations take a threading.Lock; async steps (reflow,
synthesis, pacing delays) run without the lock and re-check the section
afterwards. The remote client is passed in per call; the shared
AudioContext comes from an injected AudioContextProvider.

RULES:
- generate_section(): analyzing -> reflow -> generating -> synthesis ->
  decode -> encode -> ready; any failure -> error, never retried here
- A section already analyzing or generating is never started twice
- Results for sections removed meanwhile (reset, new upload) are dropped
- Only one section is active for playback at a time
- playback_ended() with auto-next: wait auto_next_delay, play or generate
  the next section; stop the queue on failure or at the end
- generate_page() runs sequentially with generate_all_delay between
  successful requests and stops at the first failure
- Every change to core or view data is persisted when a store is attached
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from tts_reader.api.models import InlineAudio
from tts_reader.config import (
    AUTO_NEXT_DELAY_S,
    DOWNLOAD_STAGGER_S,
    GENERATE_ALL_DELAY_S,
    ITEMS_PER_PAGE,
    MAX_CHARS_PER_SECTION,
    PLAYBACK_RATES,
)
from tts_reader.core.audio import AudioContextProvider, encode_wav
from tts_reader.core.chunker import split_into_sections
from tts_reader.core.models import (
    PlaybackCommand,
    ReaderState,
    Section,
    SectionStatus,
    ViewState,
    VoiceName,
)
from tts_reader.core.persistence import StateStore
from tts_reader.core.textfile import decode_text

logger = logging.getLogger(__name__)

# Statuses owned by a running generate_section() call.
IN_FLIGHT_STATUSES = frozenset({SectionStatus.ANALYZING, SectionStatus.GENERATING})


class SpeechClient(Protocol):
    """The two remote calls the section pipeline needs."""

    async def reflow_text(self, text: str) -> str: ...

    async def synthesize_speech(self, text: str, voice: VoiceName) -> InlineAudio: ...


class SectionNotFoundError(KeyError):
    """Raised when a section id is not part of the loaded file."""


class SectionNotReadyError(Exception):
    """Raised when audio is requested for a section that has none yet."""


class GenerationInProgressError(Exception):
    """Raised when a page generation run is started while one is running."""


@dataclass
class AudioDownload:
    """One entry of the bulk audio download list."""

    section_id: str
    index: int
    delay_s: float


class ReaderSession:
    """State and orchestration for one listener reading one file.

    RULES:
    - store=None disables persistence (CLI one-shot runs, tests)
    - restore() loads persisted records; sections come back pending
    - All public sync methods that mutate state acquire self._lock
    """

    def __init__(
        self,
        store: Optional[StateStore] = None,
        audio_provider: Optional[AudioContextProvider] = None,
        max_chars: int = MAX_CHARS_PER_SECTION,
        items_per_page: int = ITEMS_PER_PAGE,
        auto_next_delay: float = AUTO_NEXT_DELAY_S,
        generate_all_delay: float = GENERATE_ALL_DELAY_S,
        download_stagger: float = DOWNLOAD_STAGGER_S,
    ) -> None:
        self._store = store
        self._audio_provider = audio_provider or AudioContextProvider()
        self.max_chars = max_chars
        self.auto_next_delay = auto_next_delay
        self.generate_all_delay = generate_all_delay
        self.download_stagger = download_stagger
        self._lock = threading.Lock()
        self._state = ReaderState()
        self._view = ViewState(items_per_page=items_per_page)
        self._raw_text: Optional[str] = None
        self._active_section_id: Optional[str] = None
        self._paused = True
        self._page_generation_running = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def raw_text(self) -> Optional[str]:
        return self._raw_text

    @property
    def active_section_id(self) -> Optional[str]:
        return self._active_section_id

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def page_generation_running(self) -> bool:
        return self._page_generation_running

    @property
    def sections(self) -> List[Section]:
        return self._state.sections

    def get_section(self, section_id: str) -> Section:
        section = self._state.find(section_id)
        if section is None:
            raise SectionNotFoundError(section_id)
        return section

    def total_pages(self) -> int:
        return self._view.total_pages(len(self._state.sections))

    def page_sections(self, page: Optional[int] = None) -> List[Section]:
        return self._view.page_slice(self._state.sections, page)

    def overall_progress(self) -> int:
        return self._state.overall_progress()

    # ------------------------------------------------------------------
    # Loading, persistence, reset
    # ------------------------------------------------------------------

    def restore(self) -> bool:
        """Load persisted records. Returns True when a saved file was found."""
        if self._store is None:
            return False
        state = self._store.load_state()
        view = self._store.load_view()
        with self._lock:
            if state is not None:
                self._state = state
            if view is not None:
                self._view = view
        if state is not None and state.original_file_name:
            logger.info(
                "Restored %s with %d sections",
                state.original_file_name, len(state.sections),
            )
            return True
        return False

    def load_text(self, file_name: str, data: bytes) -> List[Section]:
        """Decode an uploaded file and replace the current sections.

        RULES:
        - Raises FileReadError / EmptyFileError from the text decoder
        - Last-played position is cleared and the view returns to page 1
        """
        return self.load_decoded_text(file_name, decode_text(data))

    def load_decoded_text(self, file_name: str, text: str) -> List[Section]:
        """Replace the current sections with already decoded text.

        Raises ValueError when max_chars is not positive.
        """
        chunks = split_into_sections(text, self.max_chars)
        sections = [Section.create(i, chunk, file_name) for i, chunk in enumerate(chunks)]

        with self._lock:
            self._raw_text = text
            self._state.original_file_name = file_name
            self._state.sections = sections
            self._state.last_played_section_id = None
            self._state.last_played_time = 0.0
            self._view.current_page = 1
            self._active_section_id = None
            self._paused = True

        logger.info("Loaded %s: %d sections", file_name, len(sections))
        self._persist()
        return sections

    def reset(self) -> None:
        """Forget the loaded file, settings, and all persisted records."""
        with self._lock:
            items_per_page = self._view.items_per_page
            self._state = ReaderState()
            self._view = ViewState(items_per_page=items_per_page)
            self._raw_text = None
            self._active_section_id = None
            self._paused = True
        if self._store is not None:
            self._store.clear()
        logger.info("Reader reset")

    def _persist(self) -> None:
        if self._store is None:
            return
        with self._lock:
            self._store.save_state(self._state)
            self._store.save_view(self._view)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def select_voice(self, voice: str) -> VoiceName:
        selected = VoiceName(voice)
        with self._lock:
            self._state.selected_voice = selected
        self._persist()
        return selected

    def set_playback_rate(self, rate: float) -> float:
        if rate not in PLAYBACK_RATES:
            raise ValueError(
                "Unsupported playback rate {}. Choose one of: {}".format(
                    rate, ", ".join(str(r) for r in PLAYBACK_RATES)
                )
            )
        with self._lock:
            self._state.playback_rate = rate
        self._persist()
        return rate

    def set_auto_next(self, enabled: bool) -> None:
        with self._lock:
            self._state.auto_next = enabled
        self._persist()

    def set_page(self, page: int) -> int:
        with self._lock:
            self._view.current_page = max(1, min(page, max(1, self.total_pages())))
            current = self._view.current_page
        self._persist()
        return current

    # ------------------------------------------------------------------
    # Section pipeline
    # ------------------------------------------------------------------

    def _set_status(
        self,
        section_id: str,
        status: SectionStatus,
        error: Optional[str] = None,
    ) -> Optional[Section]:
        with self._lock:
            section = self._state.find(section_id)
            if section is None:
                return None
            section.status = status
            section.error = error
            return section

    def fail_section(self, section_id: str, message: str) -> None:
        """Mark a section as failed from outside the pipeline."""
        self._set_status(section_id, SectionStatus.ERROR, error=message)

    async def generate_section(
        self,
        section_id: str,
        client: SpeechClient,
        auto_play: bool = False,
    ) -> bool:
        """Reflow, synthesize, and encode one section.

        RULES:
        - A section already analyzing or generating is left alone; the
          running request owns it
        - Claiming the section (status -> analyzing) happens under the lock
        - Decoding and WAV encoding run in the default executor

        Args:
            section_id: Section to generate.
            client: Object providing reflow_text() and synthesize_speech().
            auto_play: Make the section the active one once it is ready.

        Returns:
            True when the section is ready, False on failure, when another
            request is already generating it, or when the section
            disappeared while the requests were in flight.
        """
        with self._lock:
            section = self._state.find(section_id)
            if section is None:
                return False
            ready = section.status == SectionStatus.READY
            if section.status in IN_FLIGHT_STATUSES:
                logger.info("Section %d is already being generated", section.number)
                return False
            if not ready:
                section.status = SectionStatus.ANALYZING
                section.error = None
                content = section.content
                voice = self._state.selected_voice
        if ready:
            if auto_play:
                self._activate(section)
            return True

        try:
            reflowed = await client.reflow_text(content)

            with self._lock:
                current = self._state.find(section_id)
                if current is None:
                    logger.info("Section %s was removed during reflow", section_id)
                    return False
                current.reflowed_content = reflowed
                current.status = SectionStatus.GENERATING
            self._persist()

            payload = await client.synthesize_speech(reflowed, voice)
            loop = asyncio.get_running_loop()
            wav, duration_s = await loop.run_in_executor(None, self._render_wav, payload)
        except Exception as exc:
            logger.exception("Speech generation failed for section %s", section_id)
            self._set_status(section_id, SectionStatus.ERROR, error=str(exc))
            return False

        with self._lock:
            current = self._state.find(section_id)
            if current is None:
                logger.info("Section %s was removed during synthesis", section_id)
                return False
            current.audio = wav
            current.status = SectionStatus.READY
            current.error = None

        logger.info("Section %d ready (%.1fs of audio)", current.number, duration_s)
        if auto_play:
            self._activate(current)
        return True

    def _render_wav(self, payload: InlineAudio) -> Tuple[bytes, float]:
        pcm = self._audio_provider.get().decode_payload(payload.data, payload.mime_type)
        return encode_wav(pcm.samples, pcm.sample_rate, pcm.channel_count), pcm.duration_s


    async def generate_page(self, page: int, client: SpeechClient) -> int:
        """Generate every non-ready section on a page, one after another.

        RULES:
        - Raises GenerationInProgressError if a page run is already going
        - Skips sections that are ready or already being generated
        - Waits generate_all_delay after each successful request
        - Stops at the first failure

        Returns:
            Number of sections generated successfully.
        """
        with self._lock:
            if self._page_generation_running:
                raise GenerationInProgressError("A page generation run is already in progress.")
            self._page_generation_running = True

        generated = 0
        try:
            for section in self.page_sections(page):
                if section.status == SectionStatus.READY or section.status in IN_FLIGHT_STATUSES:
                    continue
                if not await self.generate_section(section.id, client):
                    break
                generated += 1
                await asyncio.sleep(self.generate_all_delay)
        finally:
            with self._lock:
                self._page_generation_running = False
        return generated

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def _activate(self, section: Section, start_time: float = 0.0) -> PlaybackCommand:
        with self._lock:
            self._active_section_id = section.id
            self._paused = False
            self._view.current_page = self._view.page_of(section.index)
            rate = self._state.playback_rate
        self._persist()
        return PlaybackCommand(
            section_id=section.id,
            index=section.index,
            action="play",
            playback_rate=rate,
            start_time=start_time,
        )

    def play(self, section_id: str, start_time: float = 0.0) -> PlaybackCommand:
        """Start a ready section, or toggle pause on the active one.

        RULES:
        - Raises SectionNotFoundError / SectionNotReadyError
        - Playing a different section replaces the active one
        """
        section = self.get_section(section_id)
        if section.status != SectionStatus.READY or section.audio is None:
            raise SectionNotReadyError(
                "Section {} has no audio yet (status: {}).".format(
                    section.number, section.status.value
                )
            )

        if self._active_section_id == section.id:
            with self._lock:
                self._paused = not self._paused
                action = "pause" if self._paused else "resume"
            return PlaybackCommand(
                section_id=section.id,
                index=section.index,
                action=action,
                playback_rate=self._state.playback_rate,
            )

        return self._activate(section, start_time)

    def stop(self) -> None:
        with self._lock:
            self._active_section_id = None
            self._paused = True

    def record_progress(self, section_id: str, current_time: float, duration: float) -> float:
        """Store the playback position of a section and return its progress."""
        with self._lock:
            section = self._state.find(section_id)
            if section is None:
                raise SectionNotFoundError(section_id)
            progress = 0.0
            if duration > 0:
                progress = max(0.0, min(100.0, current_time / duration * 100.0))
            section.progress = progress
            self._state.last_played_section_id = section_id
            self._state.last_played_time = max(0.0, current_time)
        self._persist()
        return progress

    async def playback_ended(
        self,
        section_id: str,
        client: SpeechClient,
    ) -> Optional[PlaybackCommand]:
        """Advance the auto-next queue after a section finished playing.

        Returns:
            The command for the next section, or None when playback stops
            (auto-next off, last section, or generation failure).
        """
        if not self._state.auto_next:
            self.stop()
            return None

        await asyncio.sleep(self.auto_next_delay)

        finished = self._state.find(section_id)
        if finished is None:
            self.stop()
            return None
        next_index = finished.index + 1
        if next_index >= len(self._state.sections):
            self.stop()
            return None

        upcoming = self._state.sections[next_index]
        if upcoming.status == SectionStatus.READY and upcoming.audio is not None:
            return self._activate(upcoming)

        self.stop()
        if not await self.generate_section(upcoming.id, client):
            logger.info("Auto-next stopped at section %d", upcoming.number)
            return None
        current = self._state.find(upcoming.id)
        if current is None:
            return None
        return self._activate(current)

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    def resume_target(self) -> Optional[Tuple[str, float]]:
        """Where the listener stopped last time, if anywhere."""
        section_id = self._state.last_played_section_id
        if not section_id or not self._state.original_file_name:
            return None
        if self._state.find(section_id) is None:
            return None
        return section_id, self._state.last_played_time

    async def resume(self, client: SpeechClient) -> Optional[PlaybackCommand]:
        """Regenerate the last played section if needed and seek into it."""
        target = self.resume_target()
        if target is None:
            return None
        section_id, position = target
        if not await self.generate_section(section_id, client):
            return None
        section = self._state.find(section_id)
        if section is None:
            return None
        return self._activate(section, start_time=position)

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def ready_audio_downloads(self) -> List[AudioDownload]:
        """Ready sections in order, each with a staggered download delay."""
        ready = [
            s for s in self._state.sections
            if s.status == SectionStatus.READY and s.audio is not None
        ]
        return [
            AudioDownload(section_id=s.id, index=s.index, delay_s=i * self.download_stagger)
            for i, s in enumerate(ready)
        ]
