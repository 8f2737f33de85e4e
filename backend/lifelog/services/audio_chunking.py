"""Audio probing and time-based chunking using FFmpeg."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import ffmpeg

from lifelog.config import settings
from lifelog.exceptions import ChunkingError, ProbeError

logger = logging.getLogger(__name__)

# 20 minutes keeps every chunk below the providers' per-request duration limits
DEFAULT_MAX_CHUNK_SECONDS = 1200.0


@dataclass
class AudioChunkInfo:
    """One contiguous slice of a recording."""

    file_path: Path
    start_time: float
    duration: float
    index: int


@dataclass
class AudioMetadata:
    duration: float
    format_name: str
    sample_rate: Optional[int] = None
    channels: Optional[int] = None


@dataclass
class ChunkingProgress:
    stage: str  # "analyzing" | "splitting" | "complete"
    message: str
    total_chunks: Optional[int] = None
    current_chunk: Optional[int] = None


ProgressCallback = Callable[[ChunkingProgress], None]


def probe_audio(file_path: Path, cmd: str | None = None) -> AudioMetadata:
    """Read duration and basic stream info of an audio file with ffprobe.

    Raises:
        ProbeError: if ffprobe fails or reports no duration.
    """
    try:
        info = ffmpeg.probe(str(file_path), cmd=cmd or settings.FFPROBE_PATH)
    except ffmpeg.Error as exc:
        error_details = exc.stderr.decode("utf8", errors="replace") if exc.stderr else str(exc)
        raise ProbeError(f"Failed to analyze audio file {file_path}: {error_details}") from exc
    except (OSError, ValueError) as exc:
        raise ProbeError(f"Failed to analyze audio file {file_path}: {exc}") from exc

    fmt = info.get("format") or {}
    raw_duration = fmt.get("duration")
    if raw_duration in (None, "", "N/A"):
        raise ProbeError(f"Could not determine audio duration of {file_path}")
    try:
        duration = float(raw_duration)
    except (TypeError, ValueError) as exc:
        raise ProbeError(f"Unreadable duration {raw_duration!r} for {file_path}") from exc

    streams = info.get("streams") or []
    first = streams[0] if streams else {}
    sample_rate = first.get("sample_rate")
    return AudioMetadata(
        duration=duration,
        format_name=fmt.get("format_name") or "unknown",
        sample_rate=int(sample_rate) if sample_rate else None,
        channels=first.get("channels"),
    )


def needs_chunking(duration_seconds: float, max_chunk_seconds: float = DEFAULT_MAX_CHUNK_SECONDS) -> bool:
    return duration_seconds > max_chunk_seconds


def plan_chunks(total_duration: float, max_chunk_seconds: float) -> list[tuple[float, float]]:
    """Fixed-size ``(start, duration)`` slices covering ``total_duration``.

    The last slice keeps whatever remains; nothing is padded or dropped.
    """
    max_chunk_seconds = float(max_chunk_seconds)
    total_duration = float(total_duration)
    if max_chunk_seconds <= 0:
        raise ValueError("max_chunk_seconds must be positive")
    if total_duration <= 0:
        return [(0.0, max(total_duration, 0.0))]

    num_chunks = math.ceil(total_duration / max_chunk_seconds)
    slices = []
    for i in range(num_chunks):
        start = float(i * max_chunk_seconds)
        slices.append((start, min(max_chunk_seconds, total_duration - start)))
    return slices


def extract_audio_segment(input_path: Path, output_path: Path, start_time: float, duration: float) -> Path:
    """Copy ``duration`` seconds starting at ``start_time`` into ``output_path`` without re-encoding."""
    stream = (
        ffmpeg
        .input(str(input_path), ss=start_time, t=duration)
        .output(str(output_path), acodec="copy")
        .global_args("-hide_banner", "-loglevel", "error")
    )
    logger.debug("Extracting segment %s (start=%.2fs, duration=%.2fs)", output_path, start_time, duration)
    try:
        ffmpeg.run(stream, cmd=settings.FFMPEG_PATH, overwrite_output=True, capture_stdout=True, capture_stderr=True)
    except ffmpeg.Error as exc:
        error_details = exc.stderr.decode("utf8", errors="replace") if exc.stderr else "No stderr details from FFmpeg."
        logger.error("FFmpeg error extracting segment %s: %s", output_path, error_details)
        raise ChunkingError(f"Failed to extract audio segment: {error_details}") from exc
    return output_path


def split_audio_into_chunks(
    input_path: Path,
    output_dir: Path,
    max_chunk_seconds: float = DEFAULT_MAX_CHUNK_SECONDS,
    on_progress: ProgressCallback | None = None,
    duration: float | None = None,
) -> list[AudioChunkInfo]:
    """
    Splits an audio file into fixed-length chunks under ``output_dir``.

    Args:
        input_path: The recording to split.
        output_dir: Directory for the chunk files; created if missing.
        max_chunk_seconds: Chunk length. Recordings not longer than this are
            returned as a single chunk pointing at ``input_path``.
        on_progress: Optional callback for human-readable progress messages.
        duration: Known duration in seconds; probed when omitted.

    Returns:
        The chunks ordered by index.

    Raises:
        ProbeError: if ``duration`` is omitted and the file cannot be probed.
        ChunkingError: if ffmpeg fails. Chunk files written before the failure
            are left in place for the caller to clean up.
    """
    def report(progress: ChunkingProgress) -> None:
        if on_progress:
            on_progress(progress)

    if duration is None:
        report(ChunkingProgress(stage="analyzing", message="Analyzing audio..."))
        duration = probe_audio(input_path).duration

    if not needs_chunking(duration, max_chunk_seconds):
        report(ChunkingProgress(
            stage="complete",
            message="Audio is short enough, no splitting needed",
            total_chunks=1,
            current_chunk=1,
        ))
        return [AudioChunkInfo(file_path=input_path, start_time=0.0, duration=duration, index=0)]

    output_dir.mkdir(parents=True, exist_ok=True)
    slices = plan_chunks(duration, max_chunk_seconds)
    total = len(slices)
    extension = input_path.suffix or ".m4a"
    base_name = uuid.uuid4()

    report(ChunkingProgress(
        stage="splitting",
        message=f"Splitting audio into {total} chunks...",
        total_chunks=total,
        current_chunk=0,
    ))

    chunks: list[AudioChunkInfo] = []
    for index, (start, length) in enumerate(slices):
        chunk_path = output_dir / f"{base_name}_chunk_{index}{extension}"
        extract_audio_segment(input_path, chunk_path, start, length)
        chunks.append(AudioChunkInfo(file_path=chunk_path, start_time=start, duration=length, index=index))
        report(ChunkingProgress(
            stage="splitting",
            message=f"Chunk {index + 1}/{total} written",
            total_chunks=total,
            current_chunk=index + 1,
        ))

    report(ChunkingProgress(
        stage="complete",
        message=f"Audio split into {total} chunks",
        total_chunks=total,
        current_chunk=total,
    ))
    return chunks


def cleanup_chunks(chunks: list[AudioChunkInfo], original_path: Path) -> None:
    """Delete chunk files, never the original recording."""
    for chunk in chunks:
        if chunk.file_path == original_path:
            continue
        try:
            chunk.file_path.unlink(missing_ok=True)
            logger.debug("Cleaned up chunk: %s", chunk.file_path)
        except OSError as exc:
            logger.warning("Failed to clean up chunk %s: %s", chunk.file_path, exc)


def format_duration(seconds: float) -> str:
    """``"45s"`` or ``"12m 5s"``"""
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    if mins == 0:
        return f"{secs}s"
    return f"{mins}m {secs}s"
