"""Exception hierarchy shared by services and routes.

``AppBaseException`` subclasses carry an HTTP status code and are rendered by
the handlers registered in :mod:`lifelog.main` as ``{"error": ..., "details": ...}``.
``ProbeError`` and ``ChunkingError`` stay internal to the audio stage.
"""

from __future__ import annotations

from typing import Any


class AppBaseException(Exception):
    """Domain-level base exception so we can map to JSON responses easily."""

    status_code: int = 500

    def __init__(self, error: str, details: Any = None, status_code: int | None = None) -> None:
        super().__init__(error if details is None else f"{error}: {details}")
        self.error = error
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class RequestRejected(AppBaseException):
    """Validation failure (missing field, oversize file, bad date)."""

    status_code = 400


class Forbidden(AppBaseException):
    status_code = 403


class NotFound(AppBaseException):
    status_code = 404


class Conflict(AppBaseException):
    status_code = 409


class ConfigurationError(AppBaseException):
    """A provider credential or other required setting is missing."""

    status_code = 500


class TranscriptionError(AppBaseException):
    """The speech-to-text provider rejected or failed a request."""

    status_code = 500


class PersistenceError(AppBaseException):
    """The database write after a successful transcription failed."""

    status_code = 500


class ProbeError(Exception):
    """The audio file could not be analysed by ffprobe."""


class ChunkingError(Exception):
    """ffmpeg failed while extracting a chunk."""
