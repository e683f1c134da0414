"""A small video API server with SQLite storage, static file serving and ffmpeg helpers."""

__version__ = "0.1.0"

__all__ = ["__version__"]