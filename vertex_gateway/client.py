from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError as SchemaMismatchError

from vertex_gateway.errors import ConfigError, DeserializationError, UpstreamError
from vertex_gateway.schemas.vertex import GenerateContentRequest, GenerateContentResponse
from vertex_gateway.settings import DEFAULT_VERTEX_API_ENDPOINT, Settings

GENERATE_CONTENT_PATH = (
    "/v1/projects/{project}/locations/{location}"
    "/publishers/{publisher}/models/{model}:generateContent"
)
NO_RESPONSE_BODY = "No response body"

logger = logging.getLogger("uvicorn.error")


class TokenSource(Protocol):
    async def get_token(self) -> str: ...


def _request_error_details(exc: httpx.RequestError) -> dict[str, Any]:
    error_message = str(exc).strip() or repr(exc)
    return {
        "error": error_message,
        "error_type": exc.__class__.__name__ or "RequestError",
        "is_timeout": isinstance(exc, httpx.TimeoutException),
    }


def build_timeout(
    *,
    connect_seconds: float = 30.0,
    read_seconds: float = 30.0,
    write_seconds: float = 30.0,
    pool_seconds: float = 5.0,
) -> httpx.Timeout:
    return httpx.Timeout(
        timeout=None,
        connect=max(0.1, float(connect_seconds)),
        read=max(0.1, float(read_seconds)),
        write=max(0.1, float(write_seconds)),
        pool=max(0.1, float(pool_seconds)),
    )


def timeout_from_settings(settings: Settings) -> httpx.Timeout:
    return build_timeout(
        connect_seconds=settings.upstream_connect_timeout_seconds,
        read_seconds=settings.upstream_read_timeout_seconds,
        write_seconds=settings.upstream_write_timeout_seconds,
        pool_seconds=settings.upstream_pool_timeout_seconds,
    )


class VertexAIClient:
    def __init__(
        self,
        token_provider: TokenSource,
        *,
        project_id: str | None,
        location: str = "us-central1",
        publisher: str = "google",
        model_id: str = "gemini-flash",
        api_endpoint: str = DEFAULT_VERTEX_API_ENDPOINT,
        http_client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        if not project_id or not project_id.strip():
            raise ConfigError("PROJECT_ID environment variable is not set")
        self.token_provider = token_provider
        self.project_id = project_id.strip()
        self.location = location
        self.publisher = publisher
        self.model_id = model_id
        self.api_endpoint = api_endpoint.rstrip("/")
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=timeout or build_timeout()
        )
        logger.info(
            "vertex_client_initialized model=%s/%s location=%s",
            self.publisher,
            self.model_id,
            self.location,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        token_provider: TokenSource,
        http_client: httpx.AsyncClient | None = None,
    ) -> VertexAIClient:
        return cls(
            token_provider,
            project_id=settings.project_id,
            location=settings.location,
            publisher=settings.publisher,
            model_id=settings.model_id,
            api_endpoint=settings.vertex_api_endpoint,
            http_client=http_client,
            timeout=timeout_from_settings(settings),
        )

    def build_generate_content_url(self) -> str:
        return self.api_endpoint + GENERATE_CONTENT_PATH.format(
            project=self.project_id,
            location=self.location,
            publisher=self.publisher,
            model=self.model_id,
        )

    async def generate_content(
        self, request: GenerateContentRequest
    ) -> GenerateContentResponse:
        access_token = await self.token_provider.get_token()
        url = self.build_generate_content_url()
        logger.debug("vertex_request_start url=%s", url)

        try:
            response = await self.client.post(
                url,
                json=request.to_wire(),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.RequestError as exc:
            details = _request_error_details(exc)
            logger.warning(
                "vertex_request_error url=%s error_type=%s is_timeout=%s error=%s",
                url,
                details["error_type"],
                details["is_timeout"],
                details["error"],
            )
            raise UpstreamError(
                f"API call failed: {details['error']}", details=details
            ) from exc

        if not response.is_success:
            error_body = response.text or NO_RESPONSE_BODY
            logger.error(
                "vertex_request_failed status=%d body=%s",
                response.status_code,
                error_body,
            )
            raise UpstreamError(
                f"API call failed with code {response.status_code}: {error_body}",
                status_code=response.status_code,
                body=error_body,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            logger.error(
                "vertex_response_invalid_json status=%d", response.status_code
            )
            raise DeserializationError(
                f"Vertex AI returned invalid JSON: {exc}",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        try:
            parsed = GenerateContentResponse.model_validate(payload)
        except SchemaMismatchError as exc:
            logger.error(
                "vertex_response_schema_mismatch status=%d errors=%d",
                response.status_code,
                exc.error_count(),
            )
            raise DeserializationError(
                "Vertex AI response does not match the generateContent schema.",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        logger.debug(
            "vertex_request_complete candidates=%d", len(parsed.candidates or [])
        )
        return parsed

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout_from_settings(settings))
