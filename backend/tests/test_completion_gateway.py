from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

from app.core.config import Settings
from app.core.errors import AI_RETRY_MESSAGE, MalformedResponse, NoCredential, ProviderError
from app.services.completion_gateway import CompletionGateway, extract_error_message
from app.services.transcription import SpeechTranscriber

REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")


class _FakeCompletions:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class _FakeClient:
    instances: list["_FakeClient"] = []

    def __init__(self, outcome, **kwargs):
        self.kwargs = kwargs
        self.chat = SimpleNamespace(completions=_FakeCompletions(outcome))
        self.audio = SimpleNamespace(transcriptions=_FakeCompletions(outcome))
        _FakeClient.instances.append(self)


def _factory(outcome):
    def build(**kwargs):
        return _FakeClient(outcome, **kwargs)

    return build


def _response(content="hello", usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
        model="openai/gpt-4o-mini",
    )


def _gateway(outcome, **settings_overrides) -> CompletionGateway:
    values = {"openrouter_api_key": "server-key"}
    values.update(settings_overrides)
    return CompletionGateway(Settings(**values), client_factory=_factory(outcome))


def test_successful_completion_reports_usage():
    usage = SimpleNamespace(prompt_tokens=120, completion_tokens=30, total_tokens=150)
    gateway = _gateway(_response("{}", usage))

    result = gateway.complete("openai/gpt-4o-mini", [{"role": "user", "content": "hi"}])

    client = _FakeClient.instances[-1]
    assert result.text == "{}"
    assert (result.input_tokens, result.output_tokens, result.tokens_used) == (120, 30, 150)
    assert client.kwargs["api_key"] == "server-key"
    assert client.kwargs["max_retries"] == 0
    assert client.kwargs["default_headers"]["X-Title"] == "BrainPal"
    assert client.chat.completions.calls[0]["max_tokens"] == 1000


def test_user_credential_overrides_server_key():
    gateway = _gateway(_response())

    gateway.complete("openai/gpt-4o-mini", [], credential="user-key")

    assert _FakeClient.instances[-1].kwargs["api_key"] == "user-key"


def test_missing_credential_fails_before_any_call():
    gateway = _gateway(_response(), openrouter_api_key=None)

    with pytest.raises(NoCredential) as excinfo:
        gateway.complete("openai/gpt-4o-mini", [])

    assert excinfo.value.detail == AI_RETRY_MESSAGE


def test_timeout_maps_to_gateway_timeout():
    gateway = _gateway(openai.APITimeoutError(request=REQUEST))

    with pytest.raises(ProviderError) as excinfo:
        gateway.complete("openai/gpt-4o-mini", [])

    assert excinfo.value.http_status == 504
    assert excinfo.value.status_code == 504


def test_status_error_keeps_provider_message_internal():
    error = openai.RateLimitError(
        "rate limited",
        response=httpx.Response(429, request=REQUEST),
        body={"error": {"message": "Slow down please"}},
    )
    gateway = _gateway(error)

    with pytest.raises(ProviderError) as excinfo:
        gateway.complete("openai/gpt-4o-mini", [])

    assert excinfo.value.http_status == 429
    assert excinfo.value.status_code == 502
    assert "Slow down please" in excinfo.value.message
    assert excinfo.value.detail == AI_RETRY_MESSAGE


@pytest.mark.parametrize(
    "response",
    [
        SimpleNamespace(choices=[], usage=None, model=None),
        _response(content=None),
        _response(content=""),
    ],
)
def test_empty_responses_are_malformed(response):
    with pytest.raises(MalformedResponse):
        _gateway(response).complete("openai/gpt-4o-mini", [])


def test_total_tokens_fall_back_to_sum_of_parts():
    usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=None)

    result = _gateway(_response(usage=usage)).complete("openai/gpt-4o-mini", [])

    assert result.tokens_used == 15


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ({"error": {"message": "Bad key"}}, "Bad key"),
        ({"error": "Quota exceeded"}, "Quota exceeded"),
        ({"message": "Top level"}, "Top level"),
        ("plain text body", "plain text body"),
        (None, "AI provider error"),
        ({"error": {"code": 500}}, "AI provider error"),
    ],
)
def test_extract_error_message(body, expected):
    assert extract_error_message(body) == expected


def test_transcriber_sends_audio_and_estimates_duration():
    transcriber = SpeechTranscriber(Settings(openai_api_key="sk-test"), client_factory=_factory(SimpleNamespace(text=" hi there ")))

    transcript = transcriber.transcribe("note.webm", b"\x00" * 48000, "audio/webm")

    call = _FakeClient.instances[-1].audio.transcriptions.calls[0]
    assert transcript.text == "hi there"
    assert transcript.duration_seconds == 3
    assert call["model"] == "whisper-1"
    assert call["file"][0] == "note.webm"


def test_transcriber_requires_a_key():
    transcriber = SpeechTranscriber(Settings(openai_api_key=None), client_factory=_factory(SimpleNamespace(text="x")))

    with pytest.raises(NoCredential):
        transcriber.transcribe("note.webm", b"\x00" * 10)
