from __future__ import annotations

import logging
from typing import Protocol

import httpx

from vertex_gateway.auth.token_provider import ServiceAccountTokenProvider
from vertex_gateway.client import VertexAIClient
from vertex_gateway.converter import to_chat_response, to_vertex_request
from vertex_gateway.errors import GatewayError
from vertex_gateway.schemas.chat import ChatRequest, ChatResponse
from vertex_gateway.schemas.vertex import GenerateContentRequest, GenerateContentResponse
from vertex_gateway.settings import Settings
from vertex_gateway.validation import RequestValidator

logger = logging.getLogger("uvicorn.error")


class GenerateContentClient(Protocol):
    model_id: str

    async def generate_content(
        self, request: GenerateContentRequest
    ) -> GenerateContentResponse: ...


class GatewayService:
    """Runs one request through validate, convert and send.

    Failures propagate as ``GatewayError``; no partial result is returned.
    """

    def __init__(
        self,
        client: GenerateContentClient,
        validator: RequestValidator | None = None,
    ) -> None:
        self.client = client
        self.validator = validator or RequestValidator()

    @property
    def model_id(self) -> str:
        return self.client.model_id

    async def handle(
        self, request: ChatRequest | None, request_id: str | None = None
    ) -> ChatResponse:
        try:
            chat_request = self.validator.validate_chat_request(request)
        except GatewayError as exc:
            _log_step_failure("validate", request_id, exc)
            raise

        vertex_request = to_vertex_request(chat_request)
        vertex_response = await self._send(vertex_request, request_id)
        response = to_chat_response(vertex_response, self.model_id)
        logger.info(
            "gateway_request_complete request_id=%s model=%s messages=%d choices=%d",
            request_id,
            self.model_id,
            len(vertex_request.contents or []),
            len(response.choices),
        )
        return response

    async def generate_content(
        self, request: GenerateContentRequest | None, request_id: str | None = None
    ) -> GenerateContentResponse:
        try:
            vertex_request = self.validator.validate_generate_request(request)
        except GatewayError as exc:
            _log_step_failure("validate", request_id, exc)
            raise

        response = await self._send(vertex_request, request_id)
        logger.info(
            "gateway_passthrough_complete request_id=%s model=%s candidates=%d",
            request_id,
            self.model_id,
            len(response.candidates or []),
        )
        return response

    async def _send(
        self, request: GenerateContentRequest, request_id: str | None
    ) -> GenerateContentResponse:
        try:
            return await self.client.generate_content(request)
        except GatewayError as exc:
            _log_step_failure("send", request_id, exc)
            raise


def _log_step_failure(step: str, request_id: str | None, exc: GatewayError) -> None:
    logger.warning(
        "gateway_step_failed request_id=%s step=%s kind=%s status=%s message=%s",
        request_id,
        step,
        exc.kind.value,
        exc.status_code,
        exc.message,
    )


def build_gateway_service(
    settings: Settings, http_client: httpx.AsyncClient
) -> tuple[ServiceAccountTokenProvider, GatewayService]:
    """Wire the token provider, Vertex client and service from settings.

    Raises ``ConfigError`` when the credential file or project id is missing.
    """
    token_provider = ServiceAccountTokenProvider(
        settings.google_application_credentials,
        http_client=http_client,
        refresh_skew_seconds=settings.token_refresh_skew_seconds,
    )
    client = VertexAIClient.from_settings(
        settings, token_provider=token_provider, http_client=http_client
    )
    return token_provider, GatewayService(client)
