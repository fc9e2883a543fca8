"""TTS Reader: turns long plain-text files into spoken audio, section by section.

WHY: Listening to a whole book through a speech API means cutting it into
pieces the API accepts, making each piece pleasant to read aloud, and
stitching playback back together. This package does the cutting
(normalizer + chunker), the remote work (Gemini reflow and speech), the
audio wrapping (PCM to WAV), and the playback bookkeeping (auto-next,
resume, progress).

HOW: Four layers. core/ holds pure text and audio transforms plus the
ReaderSession state machine; api/ is the async Gemini client;
formatters/ turns sections into downloads; server/ and cli.py are the
two front ends.

RULES:
- core/ never performs HTTP; the client is passed in
- Audio is never persisted; text, settings, and progress are
- Adding a download format = one new formatter module, no core changes
"""

__version__ = "0.1.0"
