"""Shared fixtures: isolated database, uploads directory, mocked ffmpeg and a
scripted transcription client."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import lifelog.models  # noqa: F401 – registers the tables on Base.metadata
from lifelog.api.dependencies import get_pipeline_config, get_transcription_pipeline
from lifelog.db.base import Base
from lifelog.db.database import get_db
from lifelog.exceptions import TranscriptionError
from lifelog.main import app
from lifelog.services.pipeline import PipelineConfig, TranscriptionPipeline
from lifelog.services.transcription import ProviderCredentials


class FakeTranscriptionClient:
    """Stands in for :class:`TranscriptionClient`; records every call."""

    def __init__(self, texts: list[str] | None = None, fail_on_call: int | None = None) -> None:
        self.texts = texts
        self.fail_on_call = fail_on_call
        self.calls: list[dict] = []

    async def transcribe(self, audio, filename, mime_type, model, language=None, prompt=None) -> str:
        self.calls.append({
            "audio": audio,
            "filename": filename,
            "mime_type": mime_type,
            "model": model,
            "language": language,
            "prompt": prompt,
        })
        call_number = len(self.calls)
        if self.fail_on_call == call_number:
            raise TranscriptionError("TogetherAI transcription failed", details="upstream returned 502")
        if self.texts:
            return self.texts[(call_number - 1) % len(self.texts)]
        return f"Teil {call_number}."


def probe_result(duration: float) -> dict:
    return {
        "format": {"duration": str(duration), "format_name": "mov,mp4,m4a,3gp,3g2,mj2"},
        "streams": [{"codec_type": "audio", "sample_rate": "44100", "channels": 1}],
    }


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def uploads_dir(tmp_path: Path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def pipeline_config(uploads_dir: Path) -> PipelineConfig:
    return PipelineConfig(
        uploads_dir=uploads_dir,
        max_chunk_seconds=1200,
        max_upload_bytes=50 * 1024 * 1024,
        credentials=ProviderCredentials(together_api_key="together-test-key", openai_api_key="openai-test-key"),
    )


@pytest.fixture
def fake_client() -> FakeTranscriptionClient:
    return FakeTranscriptionClient()


@pytest.fixture
def mock_probe():
    """Patch ffprobe; defaults to a five minute recording."""
    with patch("ffmpeg.probe") as probe:
        probe.return_value = probe_result(300.0)
        yield probe


@pytest.fixture
def mock_extract():
    """Patch segment extraction so it writes a small placeholder file per chunk."""

    def _write_chunk(input_path: Path, output_path: Path, start_time: float, duration: float) -> Path:
        output_path.write_bytes(f"chunk@{start_time}".encode())
        return output_path

    with patch("lifelog.services.audio_chunking.extract_audio_segment", side_effect=_write_chunk) as extract:
        yield extract


@pytest.fixture
def client(session_factory, pipeline_config, fake_client):
    """TestClient with DB, configuration and transcription client overridden."""

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_pipeline_config] = lambda: pipeline_config
    app.dependency_overrides[get_transcription_pipeline] = lambda: TranscriptionPipeline(pipeline_config, fake_client)
    yield TestClient(app)
    app.dependency_overrides.clear()


def stored_audio_files(uploads_dir: Path) -> list[Path]:
    audio_root = uploads_dir / "audio"
    if not audio_root.exists():
        return []
    return [p for p in audio_root.rglob("*") if p.is_file()]


def temp_entries(uploads_dir: Path) -> list[Path]:
    temp_root = uploads_dir / "temp"
    if not temp_root.exists():
        return []
    return list(temp_root.iterdir())
