"""Command-line interface for the TTS Reader.

WHY: Listening in the browser is the main use, but a whole book can also
be rendered to disk in one go: split the text into sections, reflow and
synthesize each, and save the WAV audio next to the spoken text. The CLI
wires the same ReaderSession pipeline the API uses behind one command,
and can also start the API server.

HOW: Uses argparse to accept an input text file, voice, section size,
section selection, and output directory. Runs the async pipeline via
asyncio.run(). Status messages go to stderr; output files are saved next
to the source (or to --output-dir) with conflict-free names.

RULES:
- Positional argument: input text file path (not needed with --serve)
- Validates file extension against SUPPORTED_TEXT_FORMATS before any API call
- --sections: 1-based, comma-separated numbers and ranges ("1,3-5")
- --split-only writes section text files without calling the API
- --no-reflow sends the section text to synthesis unchanged
- Generation stops at the first failed section; exit code 1
- Output naming: {stem}_S{n}.wav and {stem}_Section_{n}.txt, numeric
  suffix for conflicts (novel_S1-2.wav)
- Exit code 130 on Ctrl-C
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from tts_reader.api.client import GeminiClient
from tts_reader.api.models import InlineAudio
from tts_reader.config import (
    DEFAULT_VOICE,
    GENERATE_ALL_DELAY_S,
    MAX_CHARS_PER_SECTION,
    SUPPORTED_TEXT_FORMATS,
)
from tts_reader.core.models import Section, VoiceName
from tts_reader.core.reader import ReaderSession, SpeechClient
from tts_reader.core.textfile import FileReadError, read_text_file
from tts_reader.formatters import FORMATTERS
from tts_reader.formatters.base import FormatterOutput


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so the CLI can be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


class _VerbatimReflow:
    """Wraps a SpeechClient so reflow returns the section text unchanged."""

    def __init__(self, client: SpeechClient) -> None:
        self._client = client

    async def reflow_text(self, text: str) -> str:
        return text

    async def synthesize_speech(self, text: str, voice: VoiceName) -> InlineAudio:
        return await self._client.synthesize_speech(text, voice)


def parse_section_selection(selection: Optional[str], count: int) -> List[int]:
    """Turn a selection like "1,3-5" into sorted 0-based section indices.

    RULES:
    - None or empty selects every section
    - Numbers are 1-based and inclusive; duplicates are merged
    - Raises ValueError for malformed parts or numbers outside 1..count
    """
    if not selection or not selection.strip():
        return list(range(count))

    picked: set = set()
    for part in selection.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_text, _, end_text = part.partition("-")
            try:
                start, end = int(start_text), int(end_text)
            except ValueError:
                raise ValueError("Invalid section range '{}'".format(part))
            if start > end:
                raise ValueError("Invalid section range '{}'".format(part))
        else:
            try:
                start = end = int(part)
            except ValueError:
                raise ValueError("Invalid section number '{}'".format(part))
        if start < 1 or end > count:
            raise ValueError(
                "Section '{}' is out of range (file has {} sections)".format(part, count)
            )
        picked.update(range(start - 1, end))
    return sorted(picked)


def _resolve_output_path(
    stem: str,
    suffix: str,
    output_dir: Path,
) -> Path:
    """Resolve the output file path, adding numeric suffix on conflict.

    WHY: Users may render the same book several times (another voice,
    another section size). Overwriting earlier audio would lose work.

    HOW: Check if {stem}{suffix} exists. If so, increment a counter
    and insert it before the file extension until a free name is found.

    RULES:
    - First attempt: {stem}{suffix} (e.g. novel_S3.wav)
    - Conflict: counter before extension (novel_S3-2.wav), starting at 2

    Args:
        stem: Source filename stem (without extension).
        suffix: Formatter's suffix (e.g. "_S3.wav").
        output_dir: Directory to save the output file.

    Returns:
        A Path that does not yet exist.
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name = suffix[:dot_idx]
        suffix_ext = suffix[dot_idx:]
    else:
        suffix_name = suffix
        suffix_ext = ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(
    output: FormatterOutput,
    stem: str,
    output_dir: Path,
) -> Path:
    """Save a single formatter output to disk.

    RULES:
    - String content written as UTF-8 text
    - Bytes content written in binary mode
    - Returns the resolved output path for status reporting
    """
    path = _resolve_output_path(stem, output.suffix, output_dir)

    if isinstance(output.content, bytes):
        path.write_bytes(output.content)
    else:
        path.write_text(output.content, encoding="utf-8")

    return path


def _save_section(section: Section, keys: List[str], stem: str, output_dir: Path) -> List[Path]:
    saved: List[Path] = []
    for key in keys:
        for output in FORMATTERS[key]().format(section):
            path = _save_output(output, stem, output_dir)
            saved.append(path)
            _status("  Saved: {}".format(path.name))
    return saved


async def _generate_to_disk(
    session: ReaderSession,
    selected: List[Section],
    stem: str,
    output_dir: Path,
    reflow: bool,
    delay: float,
) -> List[Path]:
    """Generate the selected sections one by one and save each as it completes."""
    saved: List[Path] = []
    async with GeminiClient() as client:
        speech: SpeechClient = client if reflow else _VerbatimReflow(client)
        for position, section in enumerate(selected):
            if position:
                await asyncio.sleep(delay)
            _status("Section {}/{} ({} chars)...".format(
                section.number, len(session.sections), len(section.content),
            ))
            if not await session.generate_section(section.id, speech):
                failed = session.get_section(section.id)
                raise RuntimeError("Section {} failed: {}".format(failed.number, failed.error))
            saved.extend(_save_section(
                session.get_section(section.id), ["audio", "text"], stem, output_dir,
            ))
    return saved


async def _run_pipeline(args: argparse.Namespace) -> None:
    """Execute the split / reflow / synthesis pipeline for one file.

    RULES:
    - Validate file and output directory before any API call
    - Status messages to stderr at each step
    - Files of sections finished before a failure are kept
    """
    input_path = Path(args.input_file).resolve()

    if not input_path.is_file():
        _fail("File not found: {}".format(input_path))

    ext = input_path.suffix.lower()
    if ext not in SUPPORTED_TEXT_FORMATS:
        _fail("Unsupported file type '{}'. Supported formats: {}".format(
            ext, ", ".join(sorted(SUPPORTED_TEXT_FORMATS))
        ))

    output_dir = Path(args.output_dir).resolve() if args.output_dir else input_path.parent
    if not output_dir.is_dir():
        _fail("Output directory does not exist: {}".format(output_dir))

    session = ReaderSession(store=None, max_chars=args.max_chars, generate_all_delay=args.delay)
    session.select_voice(args.voice)

    _status("Reading {}...".format(input_path.name))
    try:
        sections = session.load_decoded_text(input_path.name, read_text_file(input_path))
    except (FileReadError, ValueError) as e:
        _fail(str(e))
    _status("  {} sections of up to {} chars".format(len(sections), args.max_chars))

    try:
        indices = parse_section_selection(args.sections, len(sections))
    except ValueError as e:
        _fail(str(e))
    selected = [sections[i] for i in indices]

    stem = input_path.stem

    if args.split_only:
        saved: List[Path] = []
        for section in selected:
            saved.extend(_save_section(section, ["text"], stem, output_dir))
        _status("")
        _status("Done! Saved {} file(s) to {}".format(len(saved), output_dir))
        return

    _status("Generating {} section(s) with voice {}...".format(len(selected), args.voice))
    try:
        saved = await _generate_to_disk(
            session, selected, stem, output_dir,
            reflow=not args.no_reflow, delay=args.delay,
        )
    except Exception as e:
        # Includes config errors (missing API key)
        _fail(str(e))

    _status("")
    _status("Done! Saved {} file(s) to {}".format(len(saved), output_dir))


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable; tests can inspect the parser without running the pipeline.
    """
    parser = argparse.ArgumentParser(
        prog="tts_reader",
        description="Read long plain-text files aloud with Gemini speech "
                    "synthesis, section by section.",
    )

    parser.add_argument(
        "input_file",
        nargs="?",
        default=None,
        help="Path to the text file to read (UTF-8 or EUC-KR).",
    )

    parser.add_argument(
        "--voice",
        default=DEFAULT_VOICE,
        choices=[v.value for v in VoiceName],
        help="Prebuilt voice (default: %(default)s).",
    )

    parser.add_argument(
        "--max-chars",
        type=int,
        default=MAX_CHARS_PER_SECTION,
        help="Maximum characters per section (default: %(default)s).",
    )

    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: same as input file).",
    )

    parser.add_argument(
        "--sections",
        default=None,
        help="Sections to generate, 1-based, e.g. '1,3-5'. Default: all.",
    )

    parser.add_argument(
        "--no-reflow",
        action="store_true",
        help="Synthesize the section text as split, without paragraph reflow.",
    )

    parser.add_argument(
        "--split-only",
        action="store_true",
        help="Only split the file and save section text files; no API calls.",
    )

    parser.add_argument(
        "--delay",
        type=float,
        default=GENERATE_ALL_DELAY_S,
        help="Seconds to wait between sections (default: %(default)s).",
    )

    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the HTTP API server instead of processing a file.",
    )

    parser.add_argument("--host", default="127.0.0.1", help="API host (default: %(default)s).")
    parser.add_argument("--port", type=int, default=8000, help="API port (default: %(default)s).")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.serve:
        from tts_reader.server.app import run_api

        run_api(host=args.host, port=args.port)
        return

    if args.input_file is None:
        parser.error("the input_file argument is required unless --serve is given")

    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_run_pipeline(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
