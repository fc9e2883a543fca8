"""Package entry point for ``python -m tts_reader``.

WHY: Users run the reader as ``python -m tts_reader book.txt`` to render
sections to disk, or ``python -m tts_reader --serve`` for the HTTP API.

HOW: Delegates to the CLI's main(), which handles both modes.
"""

from tts_reader.cli import main

if __name__ == "__main__":
    main()
