"""Application-wide configuration loader.

Every setting is read from the environment once, at import time, and exposed
through the module-level ``settings`` singleton that other modules import.
"""

import os


class Settings:
    """Settings helper that gracefully falls back to sane defaults.

    Rationale
    ---------
    When docker-compose injects an environment variable whose value is empty
    (e.g. ``UPLOADS_DIR=""``) ``os.getenv("UPLOADS_DIR", default)`` returns an
    empty string *not* ``None``.  That empty string would then override the
    useful in-code default, so for every setting we use the idiom

        os.getenv(KEY) or DEFAULT

    so that *falsy* values ("", None) are replaced by the specified DEFAULT.
    """

    DATABASE_URL: str = os.getenv('DATABASE_URL') or 'sqlite:///./lifelog.db'
    DB_ECHO: bool = (os.getenv('DB_ECHO') or '0') == '1'

    # Storage
    UPLOADS_DIR: str = os.getenv('UPLOADS_DIR') or os.path.join(os.getcwd(), 'uploads')
    MAX_AUDIO_FILE_SIZE_MB: int = int(os.getenv('MAX_AUDIO_FILE_SIZE_MB') or '50')

    # Transcription pipeline
    CHUNK_DURATION_SECONDS: float = float(os.getenv('CHUNK_DURATION_SECONDS') or '1200')
    DEFAULT_TRANSCRIPTION_MODEL: str = os.getenv('DEFAULT_TRANSCRIPTION_MODEL') or 'openai/whisper-large-v3'
    TRANSCRIPTION_LANGUAGE: str = os.getenv('TRANSCRIPTION_LANGUAGE') or 'de'
    TRANSCRIPTION_PROMPT: str = os.getenv('TRANSCRIPTION_PROMPT') or ''
    TRANSCRIPTION_GLOSSARY: str = os.getenv('TRANSCRIPTION_GLOSSARY') or ''
    TRANSCRIPTION_TIMEOUT_SECONDS: float = float(os.getenv('TRANSCRIPTION_TIMEOUT_SECONDS') or '300')

    # Provider credentials
    TOGETHERAI_API_KEY: str = os.getenv('TOGETHERAI_API_KEY') or ''
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY') or os.getenv('OPENAI_API_KEY_TRANSCRIBE') or ''

    # Tooling
    FFMPEG_PATH: str = os.getenv('FFMPEG_PATH') or 'ffmpeg'
    FFPROBE_PATH: str = os.getenv('FFPROBE_PATH') or 'ffprobe'
    LOG_DIR: str = os.getenv('LOG_DIR') or 'logs'
    EXPOSE_ERROR_STACK: bool = (os.getenv('EXPOSE_ERROR_STACK') or '1') == '1'

    # Background worker
    CELERY_BROKER_URL: str = os.getenv('CELERY_BROKER_URL') or 'redis://localhost:6379/0'
    CELERY_RESULT_BACKEND: str = os.getenv('CELERY_RESULT_BACKEND') or 'redis://localhost:6379/0'
    TEMP_CHUNK_MAX_AGE_HOURS: float = float(os.getenv('TEMP_CHUNK_MAX_AGE_HOURS') or '6')

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_AUDIO_FILE_SIZE_MB * 1024 * 1024

    @property
    def transcription_glossary(self) -> list[str]:
        return [term.strip() for term in self.TRANSCRIPTION_GLOSSARY.split(',') if term.strip()]


settings = Settings()
