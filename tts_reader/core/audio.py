"""PCM decoding and WAV container encoding for synthesized speech.

WHY: The speech endpoint returns base64-encoded raw 16-bit PCM with no
header. Browsers and media players need a self-describing container, so
every synthesized section is wrapped in a standard 44-byte RIFF/WAVE
header before it is handed to playback or download.

HOW: AudioContext turns base64 payloads into interleaved float samples
(int16 / 32768). encode_wav() clamps and rescales floats back to int16
and writes the header with struct. A single AudioContext is shared
process-wide through AudioContextProvider, which creates it lazily on
first use and never tears it down. Both steps are CPU-bound; callers on
an event loop run them in an executor.

RULES:
- Header: RIFF, WAVE, fmt (PCM=1, 16-bit), data; always 44 bytes
- Output size is exactly 44 + frame_count * channel_count * 2
- Negative samples scale by 32768, non-negative by 32767, after clamping
  to [-1, 1]; scaled values truncate toward zero
- Trailing bytes that do not form a whole frame are ignored
- No resampling, remixing, or compression
"""

from __future__ import annotations

import base64
import re
import struct
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from tts_reader.config import TTS_CHANNEL_COUNT, TTS_SAMPLE_RATE

WAV_HEADER_SIZE = 44
_BITS_PER_SAMPLE = 16
_BYTES_PER_SAMPLE = _BITS_PER_SAMPLE // 8
_PCM_FORMAT = 1

_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")
_MIME_RATE_RE = re.compile(r"rate=(\d+)")


@dataclass
class PcmBuffer:
    """Interleaved float samples plus their format.

    Attributes:
        samples: Interleaved samples, conceptually in [-1, 1].
        sample_rate: Frames per second.
        channel_count: Number of interleaved channels.
    """

    samples: List[float] = field(default_factory=list)
    sample_rate: int = TTS_SAMPLE_RATE
    channel_count: int = TTS_CHANNEL_COUNT

    @property
    def frame_count(self) -> int:
        return len(self.samples) // self.channel_count

    @property
    def duration_s(self) -> float:
        return self.frame_count / float(self.sample_rate)


def decode_base64_audio(payload: str) -> bytes:
    """Decode a base64 audio payload to raw bytes."""
    return base64.b64decode(payload)


def sample_rate_from_mime(mime_type: Optional[str], default: int = TTS_SAMPLE_RATE) -> int:
    """Extract the rate parameter from e.g. ``audio/L16;codec=pcm;rate=24000``."""
    if mime_type:
        match = _MIME_RATE_RE.search(mime_type)
        if match:
            return int(match.group(1))
    return default


def encode_wav(samples: Sequence[float], sample_rate: int, channel_count: int) -> bytes:
    """Serialize interleaved float samples into a 16-bit PCM WAV container.

    Args:
        samples: Interleaved float samples; a trailing partial frame is dropped.
        sample_rate: Frames per second written into the header.
        channel_count: Channels per frame.

    Returns:
        The complete WAV file as bytes.
    """
    if channel_count <= 0:
        raise ValueError("channel_count must be positive, got {}".format(channel_count))
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive, got {}".format(sample_rate))

    frame_count = len(samples) // channel_count
    sample_count = frame_count * channel_count
    block_align = channel_count * _BYTES_PER_SAMPLE
    data_length = frame_count * block_align

    header = _HEADER_STRUCT.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        _PCM_FORMAT,
        channel_count,
        sample_rate,
        sample_rate * block_align,
        block_align,
        _BITS_PER_SAMPLE,
        b"data",
        data_length,
    )

    ints = [_to_int16(samples[i]) for i in range(sample_count)]
    return header + struct.pack("<{}h".format(sample_count), *ints)


def _to_int16(sample: float) -> int:
    clamped = max(-1.0, min(1.0, sample))
    if clamped < 0:
        return int(clamped * 0x8000)
    return int(clamped * 0x7FFF)


class AudioContext:
    """Decoder for raw PCM payloads at a fixed output format.

    WHY: Every synthesized section shares the same sample rate and channel
    layout. Keeping those on one object mirrors the single decoding
    context a browser player uses.

    HOW: decode_pcm16() reads little-endian int16 values and scales them
    into floats; decode_payload() adds the base64 step.
    """

    def __init__(
        self,
        sample_rate: int = TTS_SAMPLE_RATE,
        channel_count: int = TTS_CHANNEL_COUNT,
    ) -> None:
        self.sample_rate = sample_rate
        self.channel_count = channel_count

    def decode_pcm16(
        self,
        data: bytes,
        sample_rate: Optional[int] = None,
        channel_count: Optional[int] = None,
    ) -> PcmBuffer:
        channels = channel_count or self.channel_count
        frame_count = len(data) // (_BYTES_PER_SAMPLE * channels)
        sample_count = frame_count * channels
        ints = struct.unpack_from("<{}h".format(sample_count), data)
        return PcmBuffer(
            samples=[value / 32768.0 for value in ints],
            sample_rate=sample_rate or self.sample_rate,
            channel_count=channels,
        )

    def decode_payload(self, payload: str, mime_type: Optional[str] = None) -> PcmBuffer:
        """Decode a base64 PCM payload, honouring a rate= mime parameter."""
        raw = decode_base64_audio(payload)
        return self.decode_pcm16(raw, sample_rate_from_mime(mime_type, self.sample_rate))


class AudioContextProvider:
    """Lazily creates and hands out one shared AudioContext.

    RULES:
    - The context is built on the first get() call, exactly once
    - get() is safe to call from several threads
    - The context is never torn down
    """

    def __init__(
        self,
        sample_rate: int = TTS_SAMPLE_RATE,
        channel_count: int = TTS_CHANNEL_COUNT,
    ) -> None:
        self._sample_rate = sample_rate
        self._channel_count = channel_count
        self._context: Optional[AudioContext] = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._context is not None

    def get(self) -> AudioContext:
        if self._context is None:
            with self._lock:
                if self._context is None:
                    self._context = AudioContext(self._sample_rate, self._channel_count)
        return self._context
