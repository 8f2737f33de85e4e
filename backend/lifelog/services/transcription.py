"""Speech-to-text provider client and transcript helpers.

Two backends are supported.  A model id listed in :data:`MODEL_PROVIDERS` is
sent to that provider; every other model id goes to OpenAI.

    openai/whisper-large-v3   -> Together.ai (Whisper)
    gpt-4o-transcribe         -> OpenAI
    gpt-4o-mini-transcribe    -> OpenAI
    whisper-1                 -> OpenAI
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Sequence

import httpx

from lifelog.exceptions import ConfigurationError, TranscriptionError

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    TOGETHER = "together"
    OPENAI = "openai"


TOGETHER_TRANSCRIPTIONS_URL = "https://api.together.xyz/v1/audio/transcriptions"
OPENAI_TRANSCRIPTIONS_URL = "https://api.openai.com/v1/audio/transcriptions"

WHISPER_LARGE_V3 = "openai/whisper-large-v3"

MODEL_PROVIDERS: Mapping[str, Provider] = {
    WHISPER_LARGE_V3: Provider.TOGETHER,
}

ALL_TRANSCRIPTION_MODELS = (
    WHISPER_LARGE_V3,
    "gpt-4o-transcribe",
    "gpt-4o-mini-transcribe",
    "whisper-1",
)

DEFAULT_MODEL_LANGUAGES: Mapping[str, str] = {
    WHISPER_LARGE_V3: "de",
    "gpt-4o-transcribe": "de",
    "gpt-4o-mini-transcribe": "de",
    "whisper-1": "de",
}

_PROVIDER_LABELS = {
    Provider.TOGETHER: "TogetherAI",
    Provider.OPENAI: "OpenAI",
}


@dataclass(frozen=True)
class ProviderCredentials:
    together_api_key: str = ""
    openai_api_key: str = ""


def provider_for_model(model: str, model_providers: Mapping[str, Provider] = MODEL_PROVIDERS) -> Provider:
    return model_providers.get(model, Provider.OPENAI)


def build_transcription_prompt(
    transcription_prompt: Optional[str] = None,
    glossary: Optional[Sequence[str]] = None,
) -> Optional[str]:
    """Combine a free-text prompt and a glossary into one provider prompt.

    Returns ``None`` when there is nothing to send.
    """
    parts: list[str] = []
    if transcription_prompt and transcription_prompt.strip():
        parts.append(transcription_prompt.strip())
    terms = [t for t in (glossary or []) if t]
    if terms:
        parts.append(f"Glossar: {', '.join(terms)}")
    return " ".join(parts) if parts else None


def merge_transcriptions(transcriptions: Sequence[str]) -> str:
    """Join per-chunk transcripts in chunk order.

    Chunk boundaries are time-based and may cut mid-sentence; this is a plain
    whitespace join with no de-duplication across boundaries.

    Raises:
        ValueError: if ``transcriptions`` is empty.
    """
    if not transcriptions:
        raise ValueError("Cannot merge an empty list of transcriptions")
    return " ".join(t.strip() for t in transcriptions if t and t.strip())


class TranscriptionClient:
    """Sends one audio payload to the provider selected by model id."""

    def __init__(
        self,
        credentials: ProviderCredentials,
        model_providers: Mapping[str, Provider] = MODEL_PROVIDERS,
        model_languages: Mapping[str, str] = DEFAULT_MODEL_LANGUAGES,
        fallback_language: str = "de",
        timeout: float = 300.0,
    ) -> None:
        self.credentials = credentials
        self.model_providers = model_providers
        self.model_languages = model_languages
        self.fallback_language = fallback_language
        self.timeout = timeout

    def provider_for(self, model: str) -> Provider:
        return provider_for_model(model, self.model_providers)

    def _endpoint(self, provider: Provider) -> tuple[str, str]:
        """Return ``(url, api_key)`` or raise if the credential is missing."""
        if provider is Provider.TOGETHER:
            if not self.credentials.together_api_key:
                raise ConfigurationError("Missing TOGETHERAI_API_KEY")
            return TOGETHER_TRANSCRIPTIONS_URL, self.credentials.together_api_key
        if not self.credentials.openai_api_key:
            raise ConfigurationError("Missing OPENAI_API_KEY")
        return OPENAI_TRANSCRIPTIONS_URL, self.credentials.openai_api_key

    async def transcribe(
        self,
        audio: bytes,
        filename: str,
        mime_type: str,
        model: str,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> str:
        """
        Transcribes one audio payload.

        Args:
            audio: Raw bytes of the audio file or chunk.
            filename: Name reported to the provider; its extension matters to OpenAI.
            mime_type: Content type of ``audio``.
            model: Transcription model id; selects the provider.
            language: Language code, defaults per model.
            prompt: Spelling hint. Only sent to OpenAI; Together's Whisper
                hallucinates glossary words when given one.

        Returns:
            The transcribed text (possibly empty).

        Raises:
            ConfigurationError: if the selected provider has no API key.
            TranscriptionError: for any provider or transport failure.
        """
        provider = self.provider_for(model)
        url, api_key = self._endpoint(provider)
        label = _PROVIDER_LABELS[provider]
        effective_language = language or self.model_languages.get(model) or self.fallback_language

        data = {"model": model, "language": effective_language}
        if prompt and provider is Provider.OPENAI:
            data["prompt"] = prompt
        elif prompt:
            logger.info("Prompt ignored for %s model %s", label, model)

        files = {"file": (filename, audio, mime_type)}
        headers = {"Authorization": f"Bearer {api_key}"}

        logger.info("Sending %d bytes to %s (model=%s, language=%s)", len(audio), label, model, effective_language)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(url, data=data, files=files, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                error_body = e.response.text if e.response is not None else "No response body."
                logger.error("HTTP error from %s for model %s: %s", label, model, error_body)
                raise TranscriptionError(f"{label} transcription failed", details=error_body) from e
            except httpx.RequestError as e:
                logger.error("Request to %s failed for model %s: %s", label, model, e)
                raise TranscriptionError(f"{label} request failed", details=str(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise TranscriptionError(f"{label} transcription failed", details=f"Invalid JSON response: {e}") from e
        if payload is None:
            return ""
        if not isinstance(payload, dict):
            raise TranscriptionError(f"{label} transcription failed", details=f"Unexpected response: {response.text}")
        return payload.get("text") or ""
