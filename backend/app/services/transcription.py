"""Speech-to-text through the OpenAI audio API."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import openai

from app.core.config import Settings
from app.core.errors import MalformedResponse, NoCredential, ProviderError
from app.services.completion_gateway import extract_error_message

logger = logging.getLogger(__name__)

# Rough bytes per second of compressed speech, used when the duration is unknown.
BYTES_PER_SECOND = 16000


@dataclass
class Transcript:
    text: str
    duration_seconds: int


def estimate_duration_seconds(size_bytes: int) -> int:
    return max(1, size_bytes // BYTES_PER_SECOND)


class SpeechTranscriber:
    def __init__(self, settings: Settings, client_factory: Callable[..., Any] = openai.OpenAI):
        self._settings = settings
        self._client_factory = client_factory

    def transcribe(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
        credential: Optional[str] = None,
    ) -> Transcript:
        api_key = credential or self._settings.openai_api_key
        if not api_key:
            raise NoCredential("openai")
        client = self._client_factory(api_key=api_key, timeout=self._settings.llm_timeout_seconds, max_retries=0)

        try:
            result = client.audio.transcriptions.create(
                model=self._settings.transcription_model,
                file=(filename, data, content_type or "application/octet-stream"),
            )
        except openai.APITimeoutError as exc:
            raise ProviderError(504, "Transcription timed out") from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(502, "Could not reach the transcription service") from exc
        except openai.APIStatusError as exc:
            message = extract_error_message(getattr(exc, "body", None), default=str(exc.message or ""))
            logger.warning("Transcription failed with %s: %s", exc.status_code, message)
            raise ProviderError(exc.status_code, message) from exc

        text = getattr(result, "text", None)
        if text is None:
            raise MalformedResponse("Transcription response has no text")
        return Transcript(text=text.strip(), duration_seconds=estimate_duration_seconds(len(data)))
