"""Domain error taxonomy and its HTTP rendering."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

AI_RETRY_MESSAGE = "The AI service is temporarily unavailable. Please try again."


class BrainPalError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    @property
    def detail(self) -> str:
        return self.message


class ValidationError(BrainPalError):
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid request"

    def __init__(self, field: str, problem: str = "is required"):
        super().__init__(f"{field} {problem}")
        self.field = field


class InvalidIdentifier(BrainPalError):
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid task identifier"

    def __init__(self, value: str):
        super().__init__(f"Invalid task identifier: {value!r}")
        self.value = value


class InvalidSignature(BrainPalError):
    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid webhook signature"


class InsufficientCredits(BrainPalError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, required: int, available: int):
        super().__init__(f"Insufficient credits: {required} required, {available} available")
        self.required = required
        self.available = available


class Forbidden(BrainPalError):
    status_code = status.HTTP_403_FORBIDDEN
    public_message = "Administrator access required"


class NotFound(BrainPalError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found" if identifier is None else f"{resource} {identifier!r} not found"
        super().__init__(message)
        self.resource = resource


class ConcurrentModification(BrainPalError):
    status_code = status.HTTP_409_CONFLICT
    public_message = "The record was modified concurrently. Please retry."


class PromptNotConfigured(BrainPalError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "BrainPal configuration error - service misconfigured"

    def __init__(self, prompt_name: str):
        super().__init__(f"No active prompt template named {prompt_name}")
        self.prompt_name = prompt_name

    @property
    def detail(self) -> str:
        return self.public_message


class UpstreamAIError(BrainPalError):
    """Failures talking to the LLM provider; the client only sees a generic message."""

    status_code = status.HTTP_502_BAD_GATEWAY
    public_message = AI_RETRY_MESSAGE

    @property
    def detail(self) -> str:
        return self.public_message


class NoCredential(UpstreamAIError):
    def __init__(self, provider: str = "openrouter"):
        super().__init__(f"No API key configured for {provider}")
        self.provider = provider


class ProviderError(UpstreamAIError):
    def __init__(self, http_status: int, message: str):
        super().__init__(f"Provider returned {http_status}: {message}")
        self.http_status = http_status
        self.provider_message = message
        if http_status == status.HTTP_504_GATEWAY_TIMEOUT:
            self.status_code = status.HTTP_504_GATEWAY_TIMEOUT


class MalformedResponse(UpstreamAIError):
    pass


class UnparseableAIResponse(UpstreamAIError):
    public_message = "We couldn't understand the AI response. Please try again."


class DuplicateTransaction(BrainPalError):
    status_code = status.HTTP_200_OK

    def __init__(self, external_id: str):
        super().__init__(f"Transaction {external_id} already recorded")
        self.external_id = external_id


async def brainpal_error_handler(request: Request, exc: BrainPalError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BrainPalError, brainpal_error_handler)  # type: ignore[arg-type]
