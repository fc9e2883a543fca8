"""HTTP API for the reader (FastAPI)."""
