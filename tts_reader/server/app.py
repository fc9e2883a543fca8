"""FastAPI application with reader API routes and OpenAPI docs.

WHY: The reader's front end is a browser page; everything it does
(upload a book, generate a section, play, report progress, auto-advance,
resume, download) maps to an HTTP call. FastAPI provides automatic
OpenAPI documentation, request validation, and background task support.

HOW: A single FastAPI app exposes endpoints grouped by tags around one
process-wide ReaderSession. Section and page generation run as
background tasks on the event loop; clients poll section status. The
auto-next and resume endpoints await generation inline and return the
next playback instruction.

RULES:
- All endpoints have OpenAPI descriptions on every parameter and response
- Error responses use a consistent ErrorResponse schema
- The reader session is a singleton; persisted state is restored at startup
- Uploads are validated against SUPPORTED_TEXT_FORMATS
- Download names may contain non-ASCII characters (RFC 5987 encoding)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Awaitable, Callable, List, Optional, TypeVar
from urllib.parse import quote

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import Response

from tts_reader import __version__
from tts_reader.api.client import GeminiClient
from tts_reader.config import STATE_DIR, SUPPORTED_TEXT_FORMATS, VOICE_LABELS
from tts_reader.core.audio import AudioContextProvider
from tts_reader.core.models import PlaybackCommand, Section, SectionStatus, VoiceName
from tts_reader.core.persistence import StateStore
from tts_reader.core.reader import (
    IN_FLIGHT_STATUSES,
    GenerationInProgressError,
    ReaderSession,
    SectionNotFoundError,
    SectionNotReadyError,
    SpeechClient,
)
from tts_reader.core.textfile import FileReadError
from tts_reader.formatters import FORMATTERS
from tts_reader.server.models import (
    AudioDownloadInfo,
    AudioDownloadList,
    ErrorResponse,
    GenerationAccepted,
    HealthResponse,
    NextPlaybackResponse,
    PlaybackResponse,
    ProgressResponse,
    ProgressUpdate,
    ResumeInfo,
    SectionPageResponse,
    SectionResponse,
    SettingsUpdate,
    StateResponse,
    VoiceInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App and session setup
# ---------------------------------------------------------------------------

audio_provider = AudioContextProvider()
reader = ReaderSession(store=StateStore(STATE_DIR), audio_provider=audio_provider)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Restore the previous reading session on startup."""
    if reader.restore():
        logger.info("Resume point available: %s", reader.resume_target())
    yield


app = FastAPI(
    lifespan=lifespan,
    title="TTS Reader API",
    description=(
        "REST API for listening to long plain-text files. Upload a file, "
        "generate speech section by section with Gemini, play with "
        "auto-next and resume, and download text or WAV audio."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _audio_url(section_id: str) -> str:
    return "/sections/{}/audio".format(section_id)


def _section_to_response(section: Section) -> SectionResponse:
    """Convert a Section dataclass to a SectionResponse Pydantic model."""
    ready = section.status == SectionStatus.READY and section.audio is not None
    return SectionResponse(
        id=section.id,
        index=section.index,
        status=section.status,
        content=section.content,
        reflowed_content=section.reflowed_content,
        progress=section.progress,
        page=reader.view.page_of(section.index),
        audio_url=_audio_url(section.id) if ready else None,
        error=section.error,
    )


def _command_to_response(command: PlaybackCommand) -> PlaybackResponse:
    return PlaybackResponse(
        section_id=command.section_id,
        index=command.index,
        action=command.action,
        audio_url=_audio_url(command.section_id),
        playback_rate=command.playback_rate,
        start_time=command.start_time,
    )


def _state_response() -> StateResponse:
    resume = None
    target = reader.resume_target()
    if target is not None:
        section_id, position = target
        resume = ResumeInfo(
            section_id=section_id,
            index=reader.get_section(section_id).index,
            position=position,
        )
    state = reader.state
    return StateResponse(
        file_name=state.original_file_name,
        section_count=len(state.sections),
        voice=state.selected_voice,
        playback_rate=state.playback_rate,
        auto_next=state.auto_next,
        overall_progress=reader.overall_progress(),
        current_page=reader.view.current_page,
        total_pages=reader.total_pages(),
        active_section_id=reader.active_section_id,
        paused=reader.paused,
        generating_page=reader.page_generation_running,
        resume=resume,
    )


def _get_section_or_404(section_id: str) -> Section:
    try:
        return reader.get_section(section_id)
    except SectionNotFoundError:
        raise HTTPException(status_code=404, detail="Section not found: {}".format(section_id))


def _validate_file_extension(filename: str) -> None:
    """Raise HTTPException if the file extension is not supported."""
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_TEXT_FORMATS:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted(SUPPORTED_TEXT_FORMATS))
            ),
        )


def _attachment(content: str | bytes, filename: str, media_type: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": "attachment; filename*=UTF-8''{}".format(quote(filename)),
        },
    )


async def _with_client(action: Callable[[SpeechClient], Awaitable[T]]) -> T:
    """Run action with an open GeminiClient, mapping config errors to 503."""
    try:
        client = GeminiClient()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    async with client:
        return await action(client)


async def _generate_section_task(section_id: str, auto_play: bool) -> None:
    """Background task: generate one section."""
    try:
        async with GeminiClient() as client:
            await reader.generate_section(section_id, client, auto_play=auto_play)
    except ValueError as exc:
        logger.error("Cannot generate section %s: %s", section_id, exc)
        reader.fail_section(section_id, str(exc))


async def _generate_page_task(page: int) -> None:
    """Background task: generate every pending section on a page."""
    try:
        async with GeminiClient() as client:
            count = await reader.generate_page(page, client)
        logger.info("Generated %d section(s) on page %d", count, page)
    except GenerationInProgressError:
        logger.warning("Page %d generation skipped: another run is in progress", page)
    except ValueError as exc:
        logger.error("Cannot generate page %d: %s", page, exc)


# ---------------------------------------------------------------------------
# Endpoints: Files
# ---------------------------------------------------------------------------


@app.post(
    "/files",
    response_model=StateResponse,
    status_code=201,
    tags=["files"],
    summary="Upload a text file",
    description=(
        "Upload a plain-text file (UTF-8 or EUC-KR). The text is normalized "
        "and split into sections, replacing any previously loaded file."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported, unreadable, or empty file"},
    },
)
async def upload_file(
    file: Annotated[UploadFile, File(description="Plain-text file to read aloud")],
) -> StateResponse:
    # Sanitize filename to prevent path traversal
    filename = Path(file.filename or "upload.txt").name
    _validate_file_extension(filename)
    data = await file.read()
    try:
        reader.load_text(filename, data)
    except FileReadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _state_response()


@app.get(
    "/original",
    tags=["files"],
    summary="Download the original file text",
    description="Returns the full text of the file uploaded in this server session.",
    responses={404: {"model": ErrorResponse, "description": "No file uploaded in this session"}},
)
async def download_original() -> Response:
    if reader.raw_text is None:
        raise HTTPException(status_code=404, detail="No original text is loaded.")
    filename = reader.state.original_file_name or "original.txt"
    return _attachment(reader.raw_text, filename, "text/plain; charset=utf-8")


# ---------------------------------------------------------------------------
# Endpoints: State and settings
# ---------------------------------------------------------------------------


@app.get(
    "/state",
    response_model=StateResponse,
    tags=["state"],
    summary="Get the reader state",
    description="File, settings, overall progress, pagination, and resume point.",
)
async def get_state() -> StateResponse:
    return _state_response()


@app.put(
    "/settings",
    response_model=StateResponse,
    tags=["state"],
    summary="Change reader settings",
    description="Update voice, playback rate, auto-next, or the current page.",
    responses={400: {"model": ErrorResponse, "description": "Invalid setting"}},
)
async def update_settings(update: SettingsUpdate) -> StateResponse:
    try:
        if update.voice is not None:
            reader.select_voice(update.voice)
        if update.playback_rate is not None:
            reader.set_playback_rate(update.playback_rate)
        if update.auto_next is not None:
            reader.set_auto_next(update.auto_next)
        if update.page is not None:
            reader.set_page(update.page)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _state_response()


@app.delete(
    "/state",
    status_code=204,
    tags=["state"],
    summary="Reset the reader",
    description="Forget the loaded file, all sections, settings, and saved progress.",
)
async def reset_state() -> Response:
    reader.reset()
    return Response(status_code=204)


@app.post(
    "/resume",
    response_model=PlaybackResponse,
    tags=["playback"],
    summary="Resume where playback stopped",
    description=(
        "Regenerates the last played section if needed and returns a play "
        "instruction that seeks to the saved position."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "No resume point"},
        502: {"model": ErrorResponse, "description": "Generation failed"},
        503: {"model": ErrorResponse, "description": "API key not configured"},
    },
)
async def resume_playback() -> PlaybackResponse:
    if reader.resume_target() is None:
        raise HTTPException(status_code=404, detail="Nothing to resume.")
    command = await _with_client(reader.resume)
    if command is None:
        raise HTTPException(status_code=502, detail="Could not generate the resume section.")
    return _command_to_response(command)


# ---------------------------------------------------------------------------
# Endpoints: Sections
# ---------------------------------------------------------------------------


@app.get(
    "/sections",
    response_model=SectionPageResponse,
    tags=["sections"],
    summary="List one page of sections",
    description="Returns the sections on the requested page (default: current page).",
)
async def list_sections(
    page: Annotated[Optional[int], Query(ge=1, description="1-based page number.")] = None,
) -> SectionPageResponse:
    current = page or reader.view.current_page
    return SectionPageResponse(
        page=current,
        total_pages=reader.total_pages(),
        items_per_page=reader.view.items_per_page,
        sections=[_section_to_response(s) for s in reader.page_sections(current)],
    )


@app.get(
    "/sections/{section_id}",
    response_model=SectionResponse,
    tags=["sections"],
    summary="Get one section",
    description="Poll this endpoint to follow a section's generation status.",
    responses={404: {"model": ErrorResponse, "description": "Section not found"}},
)
async def get_section(section_id: str) -> SectionResponse:
    return _section_to_response(_get_section_or_404(section_id))


@app.post(
    "/sections/{section_id}/generate",
    response_model=GenerationAccepted,
    status_code=202,
    tags=["sections"],
    summary="Generate speech for a section",
    description=(
        "Starts reflow and speech synthesis in the background. Also used to "
        "retry a failed section. Poll GET /sections/{id} for the result."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Section not found"},
        409: {"model": ErrorResponse, "description": "Section is already being generated"},
    },
)
async def generate_section(
    section_id: str,
    background_tasks: BackgroundTasks,
    play: Annotated[bool, Query(description="Start playback once the audio is ready.")] = False,
) -> GenerationAccepted:
    section = _get_section_or_404(section_id)
    if section.status in IN_FLIGHT_STATUSES:
        raise HTTPException(
            status_code=409,
            detail="Section {} is already being generated.".format(section.number),
        )
    background_tasks.add_task(_generate_section_task, section_id, play)
    return GenerationAccepted(status="accepted", section_ids=[section_id])


@app.post(
    "/pages/{page}/generate",
    response_model=GenerationAccepted,
    status_code=202,
    tags=["sections"],
    summary="Generate all sections on a page",
    description=(
        "Generates every non-ready section on the page one after another, "
        "pausing between requests, and stops at the first failure."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Page out of range"},
        409: {"model": ErrorResponse, "description": "A page run is already in progress"},
    },
)
async def generate_page(page: int, background_tasks: BackgroundTasks) -> GenerationAccepted:
    if page < 1 or page > reader.total_pages():
        raise HTTPException(status_code=404, detail="Page {} does not exist.".format(page))
    if reader.page_generation_running:
        raise HTTPException(status_code=409, detail="A page generation run is already in progress.")
    pending = [
        s.id for s in reader.page_sections(page)
        if s.status != SectionStatus.READY and s.status not in IN_FLIGHT_STATUSES
    ]
    background_tasks.add_task(_generate_page_task, page)
    return GenerationAccepted(status="accepted", section_ids=pending)


@app.get(
    "/sections/{section_id}/{export}",
    tags=["sections"],
    summary="Download a section as text or audio",
    description=(
        "export=text returns the spoken text; export=audio returns the WAV "
        "audio of a ready section."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Section or export format not found"},
        409: {"model": ErrorResponse, "description": "Audio not ready"},
    },
)
async def download_section(section_id: str, export: str) -> Response:
    if export not in FORMATTERS:
        raise HTTPException(
            status_code=404,
            detail="Unknown export '{}'. Available: {}".format(
                export, ", ".join(sorted(FORMATTERS))
            ),
        )
    section = _get_section_or_404(section_id)
    try:
        outputs = FORMATTERS[export]().format(section)
    except SectionNotReadyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    output = outputs[0]
    return _attachment(output.content, output.filename_for(section.file_name), output.media_type)


# ---------------------------------------------------------------------------
# Endpoints: Playback
# ---------------------------------------------------------------------------


@app.post(
    "/sections/{section_id}/play",
    response_model=PlaybackResponse,
    tags=["playback"],
    summary="Play or toggle a section",
    description=(
        "Makes a ready section the active one, or toggles pause when it is "
        "already active."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Section not found"},
        409: {"model": ErrorResponse, "description": "Audio not ready"},
    },
)
async def play_section(
    section_id: str,
    start_time: Annotated[float, Query(ge=0, description="Start position in seconds.")] = 0.0,
) -> PlaybackResponse:
    _get_section_or_404(section_id)
    try:
        command = reader.play(section_id, start_time=start_time)
    except SectionNotReadyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _command_to_response(command)


@app.post(
    "/sections/{section_id}/progress",
    response_model=ProgressResponse,
    tags=["playback"],
    summary="Report playback progress",
    description="Stores the playback position; it becomes the resume point.",
    responses={404: {"model": ErrorResponse, "description": "Section not found"}},
)
async def report_progress(section_id: str, update: ProgressUpdate) -> ProgressResponse:
    try:
        progress = reader.record_progress(section_id, update.current_time, update.duration)
    except SectionNotFoundError:
        raise HTTPException(status_code=404, detail="Section not found: {}".format(section_id))
    return ProgressResponse(
        section_id=section_id,
        progress=progress,
        overall_progress=reader.overall_progress(),
    )


@app.post(
    "/sections/{section_id}/ended",
    response_model=NextPlaybackResponse,
    tags=["playback"],
    summary="Report that a section finished playing",
    description=(
        "With auto-next enabled, waits briefly, generates the next section if "
        "needed, and returns its play instruction. Returns null playback when "
        "the queue stops."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Section not found"},
        503: {"model": ErrorResponse, "description": "API key not configured"},
    },
)
async def section_ended(section_id: str) -> NextPlaybackResponse:
    _get_section_or_404(section_id)
    if not reader.state.auto_next:
        reader.stop()
        return NextPlaybackResponse(playback=None)
    command = await _with_client(lambda client: reader.playback_ended(section_id, client))
    if command is None:
        return NextPlaybackResponse(playback=None)
    return NextPlaybackResponse(playback=_command_to_response(command))


@app.get(
    "/downloads/audio",
    response_model=AudioDownloadList,
    tags=["playback"],
    summary="List all ready audio downloads",
    description=(
        "Returns every ready section's audio URL with a staggered delay the "
        "client should wait before starting each download."
    ),
    responses={404: {"model": ErrorResponse, "description": "No ready audio"}},
)
async def list_audio_downloads() -> AudioDownloadList:
    downloads = reader.ready_audio_downloads()
    if not downloads:
        raise HTTPException(status_code=404, detail="No generated audio is ready for download.")
    entries = []
    for item in downloads:
        section = reader.get_section(item.section_id)
        output = FORMATTERS["audio"]().format(section)[0]
        entries.append(AudioDownloadInfo(
            section_id=item.section_id,
            filename=output.filename_for(section.file_name),
            url=_audio_url(item.section_id),
            delay_ms=int(round(item.delay_s * 1000)),
        ))
    return AudioDownloadList(downloads=entries)


# ---------------------------------------------------------------------------
# Endpoints: Voices and health
# ---------------------------------------------------------------------------


@app.get(
    "/voices",
    response_model=List[VoiceInfo],
    tags=["voices"],
    summary="List available voices",
    description="Returns every prebuilt voice with a descriptive label.",
)
async def list_voices() -> List[VoiceInfo]:
    return [VoiceInfo(name=v, label=VOICE_LABELS.get(v.value, v.value)) for v in VoiceName]


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Entry point for the tts-reader-api console script."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=host, port=port)
