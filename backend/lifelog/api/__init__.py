# Router aggregator – import each route module here and expose ``api_router``
# for convenient inclusion in the FastAPI app.

from fastapi import APIRouter

from . import (
    routes_diary,
    routes_journal_audio,
    routes_transcribe,
    routes_uploads,
)


api_router = APIRouter()
api_router.include_router(routes_diary.router, prefix="/diary", tags=["diary"])
api_router.include_router(routes_journal_audio.router, prefix="/journal-entries", tags=["journal-audio"])
api_router.include_router(routes_transcribe.router, prefix="/transcribe", tags=["transcription"])
api_router.include_router(routes_uploads.router, prefix="/uploads", tags=["uploads"])
