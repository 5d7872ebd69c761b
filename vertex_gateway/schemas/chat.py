"""Chat-completion style shapes presented to gateway callers."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from vertex_gateway.schemas import CamelModel

CHAT_COMPLETION_OBJECT = "chat.completion"


class ChatMessage(CamelModel):
    role: str | None = None
    content: str | None = None
    parts: list[dict[str, str | None]] | None = None


class ChatRequest(CamelModel):
    messages: list[ChatMessage] | None = None
    options: dict[str, Any] | None = None


class ChatResponseMessage(CamelModel):
    role: Literal["assistant"] = "assistant"
    content: str | None = None


class ChatChoice(CamelModel):
    index: int = 0
    message: ChatResponseMessage | None = None
    finish_reason: str | None = None


class ChatUsage(CamelModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(CamelModel):
    id: str
    object: str = CHAT_COMPLETION_OBJECT
    created: int
    model: str
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: ChatUsage = Field(default_factory=ChatUsage)
