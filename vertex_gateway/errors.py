from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import status


class ErrorKind(str, Enum):
    CONFIG = "config"
    VALIDATION = "validation"
    AUTH = "auth"
    UPSTREAM = "upstream"
    DESERIALIZATION = "deserialization"


class GatewayError(Exception):
    """Failure of one gateway step, tagged with the kind the HTTP layer dispatches on."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class ConfigError(GatewayError):
    kind = ErrorKind.CONFIG


class AuthError(GatewayError):
    kind = ErrorKind.AUTH


class UpstreamError(GatewayError):
    kind = ErrorKind.UPSTREAM

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, details=details)
        self.body = body


class DeserializationError(UpstreamError):
    kind = ErrorKind.DESERIALIZATION


class ValidationError(GatewayError):
    kind = ErrorKind.VALIDATION

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        message = "Validation errors: "
        for violation in self.violations:
            message += "\n- " + violation
        super().__init__(message, details={"violations": self.violations})


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.CONFIG: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTH: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.UPSTREAM: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.DESERIALIZATION: status.HTTP_502_BAD_GATEWAY,
}

# Upstream text is logged, not returned; callers get a stable message per kind.
_CALLER_MESSAGE_BY_KIND: dict[ErrorKind, str] = {
    ErrorKind.CONFIG: "Gateway is misconfigured.",
    ErrorKind.AUTH: "Failed to authenticate with the upstream identity provider.",
    ErrorKind.UPSTREAM: "Upstream generation request failed.",
    ErrorKind.DESERIALIZATION: "Upstream returned an unreadable response.",
}


def http_status_for(error: GatewayError) -> int:
    return _STATUS_BY_KIND.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_document(error: GatewayError) -> dict[str, Any]:
    body: dict[str, Any] = {
        "message": _CALLER_MESSAGE_BY_KIND.get(error.kind, error.message),
        "type": f"{error.kind.value}_error",
        "code": error.kind.value,
    }
    if error.kind == ErrorKind.VALIDATION:
        body["message"] = error.message
        body["violations"] = list(error.details.get("violations", []))
    elif error.kind in (ErrorKind.UPSTREAM, ErrorKind.DESERIALIZATION):
        body["upstream_status"] = error.status_code
    return {"error": body}
