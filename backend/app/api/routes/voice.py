"""Voice note transcription."""
from __future__ import annotations

from time import perf_counter

from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy.orm import Session

from app.api.deps import get_transcriber, get_user
from app.api.schemas.voice import TranscriptionResponse
from app.core.errors import UpstreamAIError, ValidationError
from app.db.deps import get_db
from app.db.models.user import User
from app.observability.metrics import log_metric
from app.observability.tracing import annotate, trace
from app.services.metering import WHISPER_MODEL, estimate_audio_cost, log_api_request, record_audio_usage
from app.services.transcription import SpeechTranscriber
from app.services.user_service import load_api_keys

router = APIRouter()

_AUDIO_ENDPOINT = "/audio/transcriptions"


@router.post("/voice/transcribe", response_model=TranscriptionResponse, tags=["voice"])
async def transcribe(
    http_request: Request,
    audio: UploadFile = File(...),
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    transcriber: SpeechTranscriber = Depends(get_transcriber),
) -> TranscriptionResponse:
    data = await audio.read()
    if not data:
        raise ValidationError("audio", "must not be empty")

    request_id = getattr(http_request.state, "request_id", None)
    user_id = user.id
    started = perf_counter()
    with trace(
        "voice.transcribe",
        metadata={"bytes": len(data), "content_type": audio.content_type},
        user_id=user_id,
        request_id=request_id,
    ) as span:
        try:
            transcript = transcriber.transcribe(
                audio.filename or "audio.webm",
                data,
                audio.content_type,
                credential=load_api_keys(user).openai,
            )
        except UpstreamAIError as exc:
            log_api_request(
                db,
                user_id=user_id,
                request_type="transcription",
                model=WHISPER_MODEL,
                status="error",
                response_time_ms=int((perf_counter() - started) * 1000),
                error_message=exc.message,
                provider="openai",
                endpoint=_AUDIO_ENDPOINT,
            )
            raise

        units = record_audio_usage(db, user_id, transcript.duration_seconds)
        log_api_request(
            db,
            user_id=user_id,
            request_type="transcription",
            model=WHISPER_MODEL,
            status="success",
            tokens_used=units,
            cost=estimate_audio_cost(transcript.duration_seconds),
            response_time_ms=int((perf_counter() - started) * 1000),
            provider="openai",
            endpoint=_AUDIO_ENDPOINT,
        )
        annotate(span, duration_seconds=transcript.duration_seconds, units=units)

    log_metric("voice.units", units)
    return TranscriptionResponse(
        transcript=transcript.text,
        duration_seconds=transcript.duration_seconds,
        units=units,
    )
