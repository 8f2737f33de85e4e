"""Orchestration of the probe → split → transcribe → merge chain.

Each stage is a separate method so it can be exercised on its own; the
orchestrating :meth:`TranscriptionPipeline.transcribe_file` owns cleanup of
the per-request chunk directory in every exit path.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from starlette.concurrency import run_in_threadpool

from lifelog.config import Settings, settings as default_settings
from lifelog.exceptions import ProbeError
from lifelog.services.audio_chunking import (
    DEFAULT_MAX_CHUNK_SECONDS,
    AudioChunkInfo,
    ChunkingProgress,
    ProgressCallback,
    cleanup_chunks,
    format_duration,
    probe_audio,
    split_audio_into_chunks,
)
from lifelog.services.transcription import (
    DEFAULT_MODEL_LANGUAGES,
    MODEL_PROVIDERS,
    Provider,
    ProviderCredentials,
    TranscriptionClient,
    build_transcription_prompt,
    merge_transcriptions,
)
from lifelog.utils.storage import new_temp_chunk_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the pipeline needs that would otherwise be module-level state."""

    uploads_dir: Path
    max_chunk_seconds: float = DEFAULT_MAX_CHUNK_SECONDS
    max_upload_bytes: int = 50 * 1024 * 1024
    default_model: str = "openai/whisper-large-v3"
    model_providers: Mapping[str, Provider] = field(default_factory=lambda: dict(MODEL_PROVIDERS))
    model_languages: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_MODEL_LANGUAGES))
    fallback_language: str = "de"
    credentials: ProviderCredentials = field(default_factory=ProviderCredentials)
    timeout_seconds: float = 300.0
    prompt: Optional[str] = None
    glossary: Sequence[str] = ()

    @classmethod
    def from_settings(cls, source: Settings = default_settings) -> "PipelineConfig":
        return cls(
            uploads_dir=Path(source.UPLOADS_DIR),
            max_chunk_seconds=float(source.CHUNK_DURATION_SECONDS),
            max_upload_bytes=source.max_upload_size_bytes,
            default_model=source.DEFAULT_TRANSCRIPTION_MODEL,
            # TRANSCRIPTION_LANGUAGE applies to every known model as well as unknown ones
            model_languages={model: source.TRANSCRIPTION_LANGUAGE for model in DEFAULT_MODEL_LANGUAGES},
            fallback_language=source.TRANSCRIPTION_LANGUAGE,
            credentials=ProviderCredentials(
                together_api_key=source.TOGETHERAI_API_KEY,
                openai_api_key=source.OPENAI_API_KEY,
            ),
            timeout_seconds=source.TRANSCRIPTION_TIMEOUT_SECONDS,
            prompt=source.TRANSCRIPTION_PROMPT or None,
            glossary=tuple(source.transcription_glossary),
        )

    @property
    def max_upload_mb(self) -> int:
        return self.max_upload_bytes // (1024 * 1024)

    @property
    def default_prompt(self) -> Optional[str]:
        return build_transcription_prompt(self.prompt, self.glossary)

    def make_client(self) -> TranscriptionClient:
        return TranscriptionClient(
            credentials=self.credentials,
            model_providers=self.model_providers,
            model_languages=self.model_languages,
            fallback_language=self.fallback_language,
            timeout=self.timeout_seconds,
        )


@dataclass
class TranscriptionOutcome:
    text: str
    duration: float
    chunk_count: int


def _read_bytes(path: Path) -> bytes:
    return path.read_bytes()


class TranscriptionPipeline:
    """Transcribes one stored recording, chunking it first when it is long."""

    def __init__(self, config: PipelineConfig, client: TranscriptionClient | None = None) -> None:
        self.config = config
        self.client = client or config.make_client()

    async def _prepare_chunks(
        self,
        file_path: Path,
        chunk_dir: Path,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[list[AudioChunkInfo], float]:
        """Probe and split. A file that cannot be probed becomes one chunk of duration 0."""
        try:
            metadata = await run_in_threadpool(probe_audio, file_path)
        except ProbeError as exc:
            logger.warning("Could not probe %s, transcribing it unsplit: %s", file_path, exc)
            return [AudioChunkInfo(file_path=file_path, start_time=0.0, duration=0.0, index=0)], 0.0

        logger.info("Audio duration of %s: %s", file_path.name, format_duration(metadata.duration))
        chunks = await run_in_threadpool(
            split_audio_into_chunks,
            file_path,
            chunk_dir,
            self.config.max_chunk_seconds,
            on_progress,
            metadata.duration,
        )
        return chunks, metadata.duration

    async def _transcribe_chunks(
        self,
        chunks: Sequence[AudioChunkInfo],
        mime_type: str,
        model: str,
        language: Optional[str],
        prompt: Optional[str],
    ) -> list[str]:
        """One provider call per chunk, in index order; the first failure aborts the rest."""
        texts: list[str] = []
        total = len(chunks)
        for chunk in chunks:
            logger.info("Transcribing chunk %d/%d (%s)", chunk.index + 1, total, format_duration(chunk.duration))
            audio = await run_in_threadpool(_read_bytes, chunk.file_path)
            text = await self.client.transcribe(
                audio,
                filename=chunk.file_path.name,
                mime_type=mime_type,
                model=model,
                language=language,
                prompt=prompt,
            )
            texts.append(text)
        return texts

    async def transcribe_file(
        self,
        file_path: Path,
        mime_type: str,
        model: Optional[str] = None,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
        on_progress: ProgressCallback | None = None,
    ) -> TranscriptionOutcome:
        """
        Runs the whole chain for one stored file.

        Args:
            file_path: Absolute path of the stored recording.
            mime_type: Content type sent to the provider for every chunk.
            model: Model id; the configured default when omitted.
            language: Language hint; per-model default when omitted.
            prompt: Provider prompt; built from the configured prompt and
                glossary when omitted.
            on_progress: Optional splitter progress callback.

        Raises:
            ConfigurationError, TranscriptionError: from the provider client.
            ChunkingError: if ffmpeg fails while splitting.
        """
        model = model or self.config.default_model
        if prompt is None:
            prompt = self.config.default_prompt

        def report(progress: ChunkingProgress) -> None:
            logger.info("[%s] %s", progress.stage, progress.message)
            if on_progress:
                on_progress(progress)

        chunk_dir = new_temp_chunk_dir(self.config.uploads_dir)
        chunks: list[AudioChunkInfo] = []
        try:
            chunks, duration = await self._prepare_chunks(file_path, chunk_dir, report)
            texts = await self._transcribe_chunks(chunks, mime_type, model, language, prompt)
            text = merge_transcriptions(texts)
            logger.info("Transcribed %s: %d chunk(s), %d characters", file_path.name, len(chunks), len(text))
            return TranscriptionOutcome(text=text, duration=duration, chunk_count=len(chunks))
        finally:
            cleanup_chunks(chunks, file_path)
            # Also catches chunks written before a mid-split ffmpeg failure
            shutil.rmtree(chunk_dir, ignore_errors=True)
