"""Lifelog backend: diary voice notes, transcription and media attachments."""

__version__ = "0.1.0"
