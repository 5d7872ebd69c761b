"""Mapping between the caller chat schema and the Vertex AI schema.

The mapping is lossy on purpose: token usage is always reported as zero and
safety ratings and prompt feedback are not carried into the chat response.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

from vertex_gateway.schemas.chat import (
    ChatChoice,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatResponseMessage,
    ChatUsage,
)
from vertex_gateway.schemas.vertex import (
    Content,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerationConfig,
    Part,
)
from vertex_gateway.utils.numeric_utils import (
    coerce_optional_float,
    coerce_optional_int,
)


def resolve_message_text(message: ChatMessage) -> str | None:
    if message.content is not None:
        return message.content
    for part in message.parts or []:
        if "text" in part:
            return part["text"]
    return None


def _generation_config_from_options(options: dict[str, Any]) -> GenerationConfig:
    max_output_tokens = coerce_optional_int(options.get("maxOutputTokens"))
    if max_output_tokens is None:
        max_output_tokens = coerce_optional_int(options.get("max_tokens"))
    return GenerationConfig(
        temperature=coerce_optional_float(options.get("temperature")),
        max_output_tokens=max_output_tokens,
        top_p=coerce_optional_float(options.get("topP")),
        top_k=coerce_optional_int(options.get("topK")),
    )


def to_vertex_request(request: ChatRequest) -> GenerateContentRequest:
    contents = [
        Content(role=message.role, parts=[Part(text=resolve_message_text(message))])
        for message in request.messages or []
    ]
    generation_config = None
    if request.options is not None:
        generation_config = _generation_config_from_options(request.options)
    return GenerateContentRequest(
        contents=contents,
        generation_config=generation_config,
    )


def to_chat_response(response: GenerateContentResponse, model_id: str) -> ChatResponse:
    choices: list[ChatChoice] = []
    for candidate in response.candidates or []:
        message = None
        content = candidate.content
        if content is not None and content.parts:
            message = ChatResponseMessage(content=content.parts[0].text)
        choices.append(
            ChatChoice(
                index=candidate.index,
                message=message,
                finish_reason=candidate.finish_reason,
            )
        )

    return ChatResponse(
        id=str(uuid4()),
        created=int(time.time()),
        model=model_id,
        choices=choices,
        # Vertex token counts are not surfaced to callers.
        usage=ChatUsage(),
    )


def generated_text(response: ChatResponse) -> str | None:
    if not response.choices:
        return None
    message = response.choices[0].message
    return message.content if message is not None else None
