from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from vertex_gateway.client import (
    NO_RESPONSE_BODY,
    VertexAIClient,
    build_timeout,
    timeout_from_settings,
)
from vertex_gateway.errors import (
    AuthError,
    ConfigError,
    DeserializationError,
    ErrorKind,
    UpstreamError,
)
from vertex_gateway.schemas.vertex import GenerateContentRequest, GenerationConfig
from vertex_gateway.settings import Settings

EXPECTED_URL = (
    "https://us-central1-aiplatform.googleapis.com/v1/projects/test-project"
    "/locations/us-central1/publishers/google/models/gemini-flash:generateContent"
)


class _StaticTokens:
    def __init__(self, token: str = "test-access-token") -> None:
        self.token = token
        self.calls = 0

    async def get_token(self) -> str:
        self.calls += 1
        return self.token


class _FailingTokens:
    async def get_token(self) -> str:
        raise AuthError("Token endpoint returned status 401", status_code=401)


def _client(handler: Any, tokens: Any = None, **kwargs: Any) -> VertexAIClient:
    kwargs.setdefault("project_id", "test-project")
    return VertexAIClient(
        tokens or _StaticTokens(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


def _joke_response() -> dict[str, Any]:
    return {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [{"text": "Why did the chicken cross the road?"}],
                },
                "finishReason": "STOP",
                "index": 0,
                "safetyRatings": [
                    {"category": "HARM_CATEGORY_HARASSMENT", "probability": "NEGLIGIBLE"}
                ],
            }
        ],
        "promptFeedback": {"safetyRatings": []},
    }


def test_url_is_built_from_deployment_coordinates() -> None:
    client = _client(lambda request: httpx.Response(200, json={}))
    assert client.build_generate_content_url() == EXPECTED_URL


def test_url_uses_custom_endpoint_without_double_slash() -> None:
    client = _client(
        lambda request: httpx.Response(200, json={}),
        location="europe-west4",
        publisher="acme",
        model_id="gemini-pro",
        api_endpoint="http://localhost:9000/",
    )
    assert client.build_generate_content_url() == (
        "http://localhost:9000/v1/projects/test-project/locations/europe-west4"
        "/publishers/acme/models/gemini-pro:generateContent"
    )


def test_missing_project_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="PROJECT_ID"):
        _client(lambda request: httpx.Response(200), project_id=None)
    with pytest.raises(ConfigError):
        _client(lambda request: httpx.Response(200), project_id="  ")


def test_generate_content_posts_bearer_authorized_json() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_joke_response())

    tokens = _StaticTokens()
    client = _client(handler, tokens)
    request = GenerateContentRequest.from_text("Tell me a joke")
    request.generation_config = GenerationConfig(temperature=0.7, max_output_tokens=128)

    response = asyncio.run(client.generate_content(request))

    assert response.generated_text == "Why did the chicken cross the road?"
    assert response.candidates is not None
    assert response.candidates[0].finish_reason == "STOP"
    assert tokens.calls == 1

    sent = captured[0]
    assert sent.method == "POST"
    assert str(sent.url) == EXPECTED_URL
    assert sent.headers["Authorization"] == "Bearer test-access-token"
    assert sent.headers["Content-Type"] == "application/json"
    assert json.loads(sent.content) == {
        "contents": [{"role": "user", "parts": [{"text": "Tell me a joke"}]}],
        "generationConfig": {"temperature": 0.7, "maxOutputTokens": 128},
    }


def test_unknown_response_fields_are_ignored() -> None:
    payload = _joke_response()
    payload["usageMetadata"] = {"promptTokenCount": 4}
    payload["candidates"][0]["citationMetadata"] = {}
    client = _client(lambda request: httpx.Response(200, json=payload))

    response = asyncio.run(
        client.generate_content(GenerateContentRequest.from_text("hi"))
    )

    assert response.generated_text == "Why did the chicken cross the road?"


@pytest.mark.parametrize("status_code", [400, 403, 429, 500, 503])
def test_non_success_status_is_an_upstream_error(status_code: int) -> None:
    body = '{"error": {"message": "quota exhausted"}}'
    client = _client(lambda request: httpx.Response(status_code, text=body))

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(client.generate_content(GenerateContentRequest.from_text("hi")))

    error = exc_info.value
    assert error.kind == ErrorKind.UPSTREAM
    assert error.status_code == status_code
    assert error.body == body
    assert str(status_code) in error.message
    assert "quota exhausted" in error.message


def test_non_success_without_body_reports_placeholder() -> None:
    client = _client(lambda request: httpx.Response(500))

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(client.generate_content(GenerateContentRequest.from_text("hi")))

    assert exc_info.value.body == NO_RESPONSE_BODY
    assert exc_info.value.message == "API call failed with code 500: No response body"


def test_invalid_json_is_a_deserialization_error() -> None:
    client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(DeserializationError) as exc_info:
        asyncio.run(client.generate_content(GenerateContentRequest.from_text("hi")))

    assert exc_info.value.kind == ErrorKind.DESERIALIZATION
    assert exc_info.value.body == "<html>oops</html>"


def test_schema_mismatch_is_a_deserialization_error() -> None:
    client = _client(
        lambda request: httpx.Response(200, json={"candidates": "not-a-list"})
    )

    with pytest.raises(DeserializationError, match="schema"):
        asyncio.run(client.generate_content(GenerateContentRequest.from_text("hi")))


def test_transport_failure_is_an_upstream_error_without_status() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler)

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(client.generate_content(GenerateContentRequest.from_text("hi")))

    assert exc_info.value.status_code is None
    assert exc_info.value.details["is_timeout"] is True
    assert exc_info.value.details["error_type"] == "ReadTimeout"
    assert len(calls) == 1


def test_auth_failure_propagates_without_upstream_call() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=_joke_response())

    client = _client(handler, _FailingTokens())

    with pytest.raises(AuthError):
        asyncio.run(client.generate_content(GenerateContentRequest.from_text("hi")))
    assert calls == []


def test_timeouts_follow_settings() -> None:
    settings = Settings(
        project_id="test-project",
        upstream_connect_timeout_seconds=3,
        upstream_read_timeout_seconds=45,
        upstream_write_timeout_seconds=7,
        upstream_pool_timeout_seconds=0,
    )

    timeout = timeout_from_settings(settings)

    assert timeout.connect == 3.0
    assert timeout.read == 45.0
    assert timeout.write == 7.0
    assert timeout.pool == 0.1


def test_default_timeouts_are_thirty_seconds() -> None:
    timeout = build_timeout()
    assert (timeout.connect, timeout.read, timeout.write) == (30.0, 30.0, 30.0)


def test_from_settings_uses_configured_model() -> None:
    settings = Settings(
        project_id="other-project",
        location="asia-northeast1",
        model_id="gemini-1.5-pro",
        vertex_api_endpoint="https://asia-northeast1-aiplatform.googleapis.com",
    )

    client = VertexAIClient.from_settings(settings, token_provider=_StaticTokens())

    assert client.model_id == "gemini-1.5-pro"
    assert client.build_generate_content_url() == (
        "https://asia-northeast1-aiplatform.googleapis.com/v1/projects/other-project"
        "/locations/asia-northeast1/publishers/google/models/gemini-1.5-pro:generateContent"
    )
    asyncio.run(client.close())
