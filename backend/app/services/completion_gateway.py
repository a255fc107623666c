"""Chat-completion calls to the OpenRouter-compatible LLM endpoint."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import openai

from app.core.config import Settings
from app.core.errors import MalformedResponse, NoCredential, ProviderError

logger = logging.getLogger(__name__)

Message = Dict[str, str]


@dataclass
class CompletionResult:
    text: str
    tokens_used: int
    input_tokens: int
    output_tokens: int
    model: str


class CompletionGateway:
    """Single, non-retrying chat completion against the configured provider.

    Token accounting is left to the caller.
    """

    def __init__(self, settings: Settings, client_factory: Callable[..., Any] = openai.OpenAI):
        self._settings = settings
        self._client_factory = client_factory

    def complete(self, model: str, messages: List[Message], credential: Optional[str] = None) -> CompletionResult:
        api_key = credential or self._settings.openrouter_api_key
        if not api_key:
            raise NoCredential("openrouter")

        client = self._client_factory(
            api_key=api_key,
            base_url=self._settings.openrouter_base_url,
            timeout=self._settings.llm_timeout_seconds,
            max_retries=0,
            default_headers={
                "HTTP-Referer": self._settings.openrouter_referer,
                "X-Title": self._settings.openrouter_title,
            },
        )

        try:
            response = client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self._settings.llm_max_tokens,
                temperature=self._settings.llm_temperature,
            )
        except openai.APITimeoutError as exc:
            logger.warning("LLM call to %s timed out after %ss", model, self._settings.llm_timeout_seconds)
            raise ProviderError(504, "Request timed out") from exc
        except openai.APIConnectionError as exc:
            logger.warning("LLM call to %s failed to connect: %s", model, exc)
            raise ProviderError(502, "Could not reach the AI provider") from exc
        except openai.APIStatusError as exc:
            message = extract_error_message(getattr(exc, "body", None), default=str(exc.message or ""))
            logger.warning("LLM provider returned %s for %s: %s", exc.status_code, model, message)
            raise ProviderError(exc.status_code, message) from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise MalformedResponse("Completion response has no choices")
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) if message is not None else None
        if not content:
            raise MalformedResponse("Completion response has no message content")

        usage = getattr(response, "usage", None)
        input_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        output_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
        total = int(getattr(usage, "total_tokens", 0) or 0) or input_tokens + output_tokens

        return CompletionResult(
            text=content,
            tokens_used=total,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=getattr(response, "model", None) or model,
        )


def extract_error_message(body: Any, default: str = "") -> str:
    """Best-effort message from a provider error body; never raises."""
    fallback = default or "AI provider error"
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message.strip():
                return message.strip()
        elif isinstance(error, str) and error.strip():
            return error.strip()
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    elif isinstance(body, str) and body.strip():
        return body.strip()[:500]
    return fallback