"""FastAPI dependencies for the transcription pipeline.

Tests override :func:`get_pipeline_config` or :func:`get_transcription_pipeline`
through ``app.dependency_overrides``.
"""

from fastapi import Depends

from lifelog.services.pipeline import PipelineConfig, TranscriptionPipeline


def get_pipeline_config() -> PipelineConfig:
    return PipelineConfig.from_settings()


def get_transcription_pipeline(config: PipelineConfig = Depends(get_pipeline_config)) -> TranscriptionPipeline:
    return TranscriptionPipeline(config)
