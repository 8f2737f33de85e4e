"""Tests for /api/diary/* (upload, retranscribe, cleanup)."""

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from lifelog.api.dependencies import get_pipeline_config, get_transcription_pipeline
from lifelog.main import app
from lifelog.models import AttachmentRole, JournalEntry, MediaAsset, MediaAttachment
from lifelog.services.pipeline import TranscriptionPipeline
from lifelog.services.transcription import ProviderCredentials
from tests.conftest import probe_result, stored_audio_files, temp_entries

M4A_BYTES = b"\x00\x00\x00\x20ftypM4A " + b"\x00" * 2048


def _upload(client, data=None, content=M4A_BYTES, filename="Sprachmemo.m4a", content_type="audio/x-m4a"):
    files = {"file": (filename, content, content_type)} if content is not None else None
    return client.post("/api/diary/upload-audio", data=data or {}, files=files)


# --- upload-audio ---

def test_upload_five_minute_recording(client, fake_client, mock_probe, mock_extract, uploads_dir, db_session):
    fake_client.texts = ["Heute war ich am See."]

    response = _upload(client, data={"date": "2024-05-01", "time": "14:30", "model": "openai/whisper-large-v3"})

    assert response.status_code == 200
    body = response.json()
    assert body["text"] == "Heute war ich am See."
    assert body["keepAudio"] is False
    assert body["fileSize"] == len(M4A_BYTES)
    assert body["audioFilePath"].startswith("audio/2020s/2024/05/01/2024-05-01_14-30_")
    assert body["audioFilePath"].endswith(".m4a")
    assert body["filename"] == body["audioFilePath"].rsplit("/", 1)[-1]

    asset = db_session.get(MediaAsset, body["audioFileId"])
    assert asset is not None
    assert asset.file_path == body["audioFilePath"]
    assert asset.mime_type == "audio/mp4"
    assert asset.duration == pytest.approx(300.0)

    assert (uploads_dir / body["audioFilePath"]).read_bytes() == M4A_BYTES
    assert len(fake_client.calls) == 1
    assert fake_client.calls[0]["model"] == "openai/whisper-large-v3"
    assert fake_client.calls[0]["mime_type"] == "audio/mp4"
    mock_extract.assert_not_called()
    assert temp_entries(uploads_dir) == []


def test_upload_uses_default_model_and_keep_audio_flag(client, fake_client, mock_probe, mock_extract):
    response = _upload(client, data={"date": "2024-05-01", "keepAudio": "true"})

    assert response.status_code == 200
    assert response.json()["keepAudio"] is True
    assert fake_client.calls[0]["model"] == "openai/whisper-large-v3"


def test_upload_without_date_is_rejected(client, fake_client, uploads_dir):
    response = _upload(client, data={"model": "whisper-1"})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing date"}
    assert stored_audio_files(uploads_dir) == []
    assert fake_client.calls == []


def test_upload_without_file_is_rejected(client):
    response = _upload(client, data={"date": "2024-05-01"}, content=None)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing file"}


@pytest.mark.parametrize("data", [
    {"date": "01.05.2024"},
    {"date": "2024-05-01", "time": "25:99"},
])
def test_upload_with_unparseable_date_or_time(client, uploads_dir, data):
    response = _upload(client, data=data)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid")
    assert stored_audio_files(uploads_dir) == []


def test_oversize_upload_is_rejected_and_nothing_written(client, session_factory, pipeline_config, fake_client, uploads_dir):
    # Same ratio as a 90 MB recording against the 50 MB default
    small_limit = replace(pipeline_config, max_upload_bytes=50 * 1024)
    app.dependency_overrides[get_pipeline_config] = lambda: small_limit
    app.dependency_overrides[get_transcription_pipeline] = lambda: TranscriptionPipeline(small_limit, fake_client)

    response = _upload(client, data={"date": "2024-05-01"}, content=b"\x00" * (90 * 1024))

    assert response.status_code == 400
    assert "Maximum size" in response.json()["error"]
    assert stored_audio_files(uploads_dir) == []
    assert fake_client.calls == []
    with session_factory() as db:
        assert db.query(MediaAsset).count() == 0


def test_ninety_megabyte_upload_against_default_limit(client, fake_client, uploads_dir):
    response = _upload(client, data={"date": "2024-05-01"}, content=b"\x00" * (90 * 1024 * 1024))

    assert response.status_code == 400
    assert response.json() == {"error": "File too large. Maximum size is 50MB"}
    assert stored_audio_files(uploads_dir) == []
    assert fake_client.calls == []


def test_forty_five_minute_recording_is_chunked(client, fake_client, mock_probe, mock_extract, uploads_dir, db_session):
    mock_probe.return_value = probe_result(45 * 60)
    fake_client.texts = ["Erste zwanzig Minuten.", "Zweite zwanzig Minuten.", "Letzte fünf Minuten."]

    response = _upload(client, data={"date": "2024-05-01"})

    assert response.status_code == 200
    body = response.json()
    assert body["text"] == "Erste zwanzig Minuten. Zweite zwanzig Minuten. Letzte fünf Minuten."
    assert mock_extract.call_count == 3
    assert len(fake_client.calls) == 3
    assert [c["filename"].rsplit("_chunk_", 1)[-1] for c in fake_client.calls] == ["0.m4a", "1.m4a", "2.m4a"]
    assert temp_entries(uploads_dir) == []
    assert db_session.get(MediaAsset, body["audioFileId"]).duration == pytest.approx(2700.0)


def test_provider_error_on_second_of_three_chunks(client, fake_client, mock_probe, mock_extract, uploads_dir, session_factory):
    mock_probe.return_value = probe_result(3000.0)
    fake_client.fail_on_call = 2

    response = _upload(client, data={"date": "2024-05-01"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "TogetherAI transcription failed"
    assert body["details"] == "upstream returned 502"
    assert len(fake_client.calls) == 2
    assert temp_entries(uploads_dir) == []
    assert stored_audio_files(uploads_dir) == []
    with session_factory() as db:
        assert db.query(MediaAsset).count() == 0


def test_missing_provider_key_is_a_500_and_upload_is_discarded(client, pipeline_config, mock_probe, uploads_dir):
    no_keys = replace(pipeline_config, credentials=ProviderCredentials())
    app.dependency_overrides[get_transcription_pipeline] = lambda: TranscriptionPipeline(no_keys)

    response = _upload(client, data={"date": "2024-05-01"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Missing TOGETHERAI_API_KEY"
    assert body["type"] == "ConfigurationError"
    assert "Traceback" in body["stack"]
    assert stored_audio_files(uploads_dir) == []


def test_upload_through_real_client_with_together_key(client, pipeline_config, mock_probe, uploads_dir):
    app.dependency_overrides[get_transcription_pipeline] = lambda: TranscriptionPipeline(pipeline_config)
    provider_response = MagicMock()
    provider_response.json.return_value = {"text": "Ein ganz normaler Dienstag."}

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=provider_response) as mock_post:
        response = _upload(client, data={"date": "2024-05-01", "model": "openai/whisper-large-v3"})

    assert response.status_code == 200
    assert response.json()["text"] == "Ein ganz normaler Dienstag."
    assert response.json()["audioFileId"]
    mock_post.assert_awaited_once()
    assert mock_post.call_args.kwargs["headers"] == {"Authorization": "Bearer together-test-key"}


def test_database_failure_keeps_the_stored_file(client, mock_probe, uploads_dir):
    failure = OperationalError("INSERT INTO media_assets", {}, Exception("database is locked"))

    with patch.object(Session, "commit", side_effect=failure):
        response = _upload(client, data={"date": "2024-05-01"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to save to database"
    assert response.json()["type"] == "PersistenceError"
    assert len(stored_audio_files(uploads_dir)) == 1


# --- retranscribe ---

def _stored_asset(session_factory, uploads_dir, relative_path="audio/2020s/2024/05/01/2024-05-01_09-00_abc.m4a"):
    full_path = uploads_dir / relative_path
    full_path.parent.mkdir(parents=True, exist_ok=True)
    full_path.write_bytes(M4A_BYTES)
    with session_factory() as db:
        asset = MediaAsset(file_path=relative_path, mime_type="audio/mp4", duration=300.0)
        db.add(asset)
        db.commit()
        return asset.id


def test_retranscribe_with_another_model(client, fake_client, mock_probe, mock_extract, session_factory, uploads_dir):
    asset_id = _stored_asset(session_factory, uploads_dir)
    fake_client.texts = ["Neue Fassung."]

    response = client.post("/api/diary/retranscribe", data={"audioFileId": asset_id, "model": "gpt-4o-transcribe"})

    assert response.status_code == 200
    assert response.json() == {"text": "Neue Fassung.", "audioFileId": asset_id, "model": "gpt-4o-transcribe"}
    assert fake_client.calls[0]["mime_type"] == "audio/mp4"
    assert len(stored_audio_files(uploads_dir)) == 1


def test_retranscribe_requires_id(client):
    response = client.post("/api/diary/retranscribe", data={"model": "whisper-1"})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing audioFileId"}


def test_retranscribe_unknown_asset(client):
    response = client.post("/api/diary/retranscribe", data={"audioFileId": "does-not-exist"})

    assert response.status_code == 404
    assert response.json() == {"error": "Audio file not found"}


def test_retranscribe_file_missing_on_disk(client, session_factory, uploads_dir):
    asset_id = _stored_asset(session_factory, uploads_dir)
    for path in stored_audio_files(uploads_dir):
        path.unlink()

    response = client.post("/api/diary/retranscribe", data={"audioFileId": asset_id})

    assert response.status_code == 404
    assert response.json() == {"error": "Audio file not found on disk"}


# --- cleanup-audio ---

def test_cleanup_deletes_unreferenced_asset_and_file(client, session_factory, uploads_dir):
    asset_id = _stored_asset(session_factory, uploads_dir)

    response = client.request("DELETE", "/api/diary/cleanup-audio", json={"audioFileId": asset_id})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert stored_audio_files(uploads_dir) == []
    with session_factory() as db:
        assert db.get(MediaAsset, asset_id) is None


def test_cleanup_refuses_referenced_asset(client, session_factory, uploads_dir):
    asset_id = _stored_asset(session_factory, uploads_dir)
    with session_factory() as db:
        entry = JournalEntry(content="")
        db.add(entry)
        db.flush()
        db.add(MediaAttachment(asset_id=asset_id, entity_id=entry.id, role=AttachmentRole.ATTACHMENT))
        db.commit()

    response = client.request("DELETE", "/api/diary/cleanup-audio", json={"audioFileId": asset_id})

    assert response.status_code == 409
    assert response.json() == {"error": "Audio file is still in use", "details": {"referencedBy": 1}}
    assert len(stored_audio_files(uploads_dir)) == 1


def test_cleanup_requires_id(client):
    response = client.request("DELETE", "/api/diary/cleanup-audio", json={})

    assert response.status_code == 400
    assert response.json() == {"error": "Missing audioFileId"}


def test_unhandled_errors_are_reported_with_details(session_factory, pipeline_config):
    def _broken_pipeline():
        raise RuntimeError("pipeline unavailable")

    app.dependency_overrides[get_transcription_pipeline] = _broken_pipeline
    try:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/api/diary/retranscribe", data={"audioFileId": "x"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal Server Error"
    assert body["details"] == "pipeline unavailable"
    assert body["type"] == "RuntimeError"
