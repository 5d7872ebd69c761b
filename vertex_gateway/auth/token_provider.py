from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import jwt

from vertex_gateway.errors import AuthError, ConfigError
from vertex_gateway.utils.numeric_utils import coerce_optional_float

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True, slots=True)
class ServiceAccountCredential:
    client_email: str
    private_key: str
    private_key_id: str | None = None
    token_uri: str = DEFAULT_TOKEN_URI
    project_id: str | None = None


@dataclass(frozen=True, slots=True)
class CachedToken:
    value: str
    expires_at: float


def load_service_account_credential(path: str | Path | None) -> ServiceAccountCredential:
    if path is None or not str(path).strip():
        raise ConfigError(
            "GOOGLE_APPLICATION_CREDENTIALS environment variable is not set"
        )

    credential_path = Path(path)
    try:
        with credential_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise ConfigError(
            f"Cannot read service account key '{credential_path}': {exc}"
        ) from exc
    except ValueError as exc:
        raise ConfigError(
            f"Service account key '{credential_path}' is not valid JSON: {exc}"
        ) from exc

    if not isinstance(payload, dict):
        raise ConfigError(
            f"Service account key '{credential_path}' must be a JSON object."
        )

    missing = [
        field
        for field in ("client_email", "private_key")
        if not isinstance(payload.get(field), str) or not payload[field].strip()
    ]
    if missing:
        raise ConfigError(
            f"Service account key '{credential_path}' is missing: {', '.join(missing)}"
        )

    token_uri = payload.get("token_uri")
    return ServiceAccountCredential(
        client_email=payload["client_email"].strip(),
        private_key=payload["private_key"],
        private_key_id=_optional_str(payload.get("private_key_id")),
        token_uri=_optional_str(token_uri) or DEFAULT_TOKEN_URI,
        project_id=_optional_str(payload.get("project_id")),
    )


class ServiceAccountTokenProvider:
    """Exchanges a service-account key for cloud-platform bearer tokens.

    The current token is cached until it expires. Refreshes are serialized by a
    lock so concurrent callers share one identity-provider round trip, and the
    cache is replaced as a whole, never edited in place.
    """

    def __init__(
        self,
        credentials_path: str | Path | None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        refresh_skew_seconds: float = 0.0,
    ) -> None:
        self.credential = load_service_account_credential(credentials_path)
        self.refresh_skew_seconds = max(0.0, float(refresh_skew_seconds))
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds)
        )
        self._cached_token: CachedToken | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def scope(self) -> str:
        return CLOUD_PLATFORM_SCOPE

    async def get_token(self) -> str:
        cached = self._cached_token
        if cached is not None and not self._is_expired(cached):
            return cached.value

        async with self._refresh_lock:
            cached = self._cached_token
            if cached is not None and not self._is_expired(cached):
                return cached.value
            refreshed = await self._refresh()
            self._cached_token = refreshed
            return refreshed.value

    def token_state(self) -> dict[str, Any]:
        cached = self._cached_token
        return {
            "cached": cached is not None and not self._is_expired(cached),
            "expires_at": round(cached.expires_at, 3) if cached else None,
        }

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _is_expired(self, token: CachedToken) -> bool:
        return token.expires_at <= time.time() + self.refresh_skew_seconds

    def _build_assertion(self, issued_at: int) -> str:
        credential = self.credential
        claims = {
            "iss": credential.client_email,
            "scope": CLOUD_PLATFORM_SCOPE,
            "aud": credential.token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        }
        headers = {"kid": credential.private_key_id} if credential.private_key_id else None
        try:
            return jwt.encode(
                claims,
                credential.private_key,
                algorithm="RS256",
                headers=headers,
            )
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthError(
                f"Service account private key is unusable: {exc}"
            ) from exc

    async def _refresh(self) -> CachedToken:
        token_uri = self.credential.token_uri
        issued_at = int(time.time())
        assertion = self._build_assertion(issued_at)
        logger.info(
            "token_refresh_start account=%s token_uri=%s",
            self.credential.client_email,
            token_uri,
        )

        try:
            response = await self.client.post(
                token_uri,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as exc:
            logger.warning(
                "token_refresh_error account=%s reason=request_error error=%s",
                self.credential.client_email,
                exc,
            )
            raise AuthError(f"Token request to {token_uri} failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "token_refresh_error account=%s status=%d body=%s",
                self.credential.client_email,
                response.status_code,
                response.text,
            )
            raise AuthError(
                f"Token endpoint returned status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            logger.warning(
                "token_refresh_error account=%s reason=invalid_json",
                self.credential.client_email,
            )
            raise AuthError("Token endpoint returned invalid JSON.") from exc

        if not isinstance(body, dict):
            raise AuthError("Token endpoint returned a non-object JSON body.")

        raw_access = body.get("access_token")
        access_token = str(raw_access).strip() if raw_access is not None else ""
        if not access_token:
            logger.warning(
                "token_refresh_error account=%s reason=missing_access_token",
                self.credential.client_email,
            )
            raise AuthError("Token endpoint response has no access_token.")

        expires_at = _extract_expires_at(body, now=issued_at)
        if expires_at is None:
            expires_at = issued_at + DEFAULT_TOKEN_LIFETIME_SECONDS

        logger.info(
            "token_refresh_success account=%s token_type=%s expires_at=%s",
            self.credential.client_email,
            body.get("token_type"),
            expires_at,
        )
        return CachedToken(value=access_token, expires_at=float(expires_at))


def _extract_expires_at(token_response: dict[str, Any], now: int) -> int | None:
    expires_in = coerce_optional_float(token_response.get("expires_in"))
    if expires_in is not None:
        return now + int(expires_in)

    expires_at = coerce_optional_float(token_response.get("expires_at"))
    if expires_at is not None:
        return int(expires_at)

    return None


def _optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None
