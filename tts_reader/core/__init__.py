"""Core text, audio, and reader-state modules.

WHY: The core package contains the parts that do not depend on any
front end: text cleanup and sectioning, PCM/WAV conversion, the reader
state model with its persistence, and the ReaderSession orchestrator.

HOW: normalizer.py and chunker.py prepare text, audio.py converts
samples, models.py and persistence.py hold and save state, reader.py
drives the per-section pipeline and playback queue.

RULES:
- normalizer, chunker, and audio are pure (no I/O)
- The remote client is always injected, never constructed here
"""
