from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from pydantic import ValidationError as SchemaMismatchError

from vertex_gateway.auth.token_provider import ServiceAccountTokenProvider
from vertex_gateway.client import build_http_client
from vertex_gateway.errors import (
    GatewayError,
    ValidationError,
    error_document,
    http_status_for,
)
from vertex_gateway.schemas.chat import ChatRequest
from vertex_gateway.schemas.vertex import GenerateContentRequest
from vertex_gateway.service import GatewayService, build_gateway_service
from vertex_gateway.settings import get_settings

app = FastAPI(
    title="Vertex Gateway",
    description="Chat-style gateway in front of Vertex AI Gemini models.",
    version="0.1.0",
)

logger = logging.getLogger("uvicorn.error")

REQUEST_ID_HEADER = "x-request-id"


@app.middleware("http")
async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex[:12]
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.on_event("startup")
async def startup() -> None:
    settings = get_settings()
    http_client = build_http_client(settings)
    try:
        token_provider, service = build_gateway_service(settings, http_client)
    except GatewayError:
        await http_client.aclose()
        raise
    app.state.settings = settings
    app.state.http_client = http_client
    app.state.token_provider = token_provider
    app.state.gateway_service = service
    logger.info(
        "startup complete project=%s location=%s model=%s endpoint=%s",
        settings.project_id,
        settings.location,
        settings.model_path,
        settings.vertex_api_endpoint,
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    http_client: httpx.AsyncClient | None = getattr(app.state, "http_client", None)
    if http_client is not None:
        await http_client.aclose()
    logger.info("shutdown complete")


async def _parse_body(request: Request, model: type[BaseModel]) -> Any:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ValidationError([f"Request body is not valid JSON: {exc}"]) from exc

    if not isinstance(payload, dict):
        raise ValidationError(["Request body must be a JSON object"])

    try:
        return model.model_validate(payload)
    except SchemaMismatchError as exc:
        raise ValidationError(
            [
                f"{_format_location(error['loc'])}: {error['msg']}"
                for error in exc.errors(include_url=False)
            ]
        ) from exc


def _format_location(location: tuple[Any, ...]) -> str:
    return ".".join(str(item) for item in location) or "body"


@app.get("/health")
async def health() -> dict[str, Any]:
    token_provider: ServiceAccountTokenProvider = app.state.token_provider
    service: GatewayService = app.state.gateway_service
    return {
        "status": "ok",
        "model": service.model_id,
        "token": token_provider.token_state(),
    }


@app.post("/api/chat/generate")
async def chat_generate(request: Request) -> JSONResponse:
    chat_request = await _parse_body(request, ChatRequest)
    service: GatewayService = app.state.gateway_service
    response = await service.handle(chat_request, request_id=request.state.request_id)
    return JSONResponse(content=response.to_wire())


@app.post("/api/gemini/generate")
async def gemini_generate(request: Request) -> JSONResponse:
    vertex_request = await _parse_body(request, GenerateContentRequest)
    service: GatewayService = app.state.gateway_service
    response = await service.generate_content(
        vertex_request, request_id=request.state.request_id
    )
    return JSONResponse(content=response.to_wire())


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(
        status_code=http_status_for(exc),
        content=error_document(exc),
    )


def run(host: str | None = None, port: int | None = None) -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "vertex_gateway.main:app",
        host=host or settings.gateway_host,
        port=port or settings.gateway_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
