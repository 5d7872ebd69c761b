"""Structural checks run on inbound requests before anything touches the network.

Both request shapes are checked with the same rules: a request needs at least
one content item, every content item needs at least one part, and every part
needs non-blank text. All violations are collected and reported together.
"""

from __future__ import annotations

from vertex_gateway.converter import resolve_message_text
from vertex_gateway.errors import ValidationError
from vertex_gateway.schemas.chat import ChatRequest
from vertex_gateway.schemas.vertex import GenerateContentRequest

REQUEST_NULL = "Request cannot be null"
CONTENTS_EMPTY = "Contents cannot be empty"
PARTS_EMPTY = "Parts cannot be empty"
TEXT_NULL = "Text cannot be null"
TEXT_BLANK = "Text cannot be blank"


class _Violations:
    def __init__(self) -> None:
        self._items: list[str] = []

    def add(self, violation: str) -> None:
        if violation not in self._items:
            self._items.append(violation)

    def check_text(self, text: str | None) -> None:
        if text is None:
            self.add(TEXT_NULL)
        elif not text.strip():
            self.add(TEXT_BLANK)

    def raise_if_any(self) -> None:
        if self._items:
            raise ValidationError(self._items)


class RequestValidator:
    def validate_generate_request(
        self, request: GenerateContentRequest | None
    ) -> GenerateContentRequest:
        if request is None:
            raise ValidationError([REQUEST_NULL])

        violations = _Violations()
        if not request.contents:
            violations.add(CONTENTS_EMPTY)
        for content in request.contents or []:
            if not content.parts:
                violations.add(PARTS_EMPTY)
                continue
            for part in content.parts:
                violations.check_text(part.text)
        violations.raise_if_any()
        return request

    def validate_chat_request(self, request: ChatRequest | None) -> ChatRequest:
        if request is None:
            raise ValidationError([REQUEST_NULL])

        violations = _Violations()
        if not request.messages:
            violations.add(CONTENTS_EMPTY)
        for message in request.messages or []:
            # A message with inline content needs no parts.
            if message.content is None and not message.parts:
                violations.add(PARTS_EMPTY)
                continue
            violations.check_text(resolve_message_text(message))
        violations.raise_if_any()
        return request
