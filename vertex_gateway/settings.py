from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_VERTEX_API_ENDPOINT = "https://us-central1-aiplatform.googleapis.com"


class Settings(BaseSettings):
    google_application_credentials: str | None = None
    project_id: str | None = None
    location: str = "us-central1"
    publisher: str = "google"
    model_id: str = "gemini-flash"
    vertex_api_endpoint: str = DEFAULT_VERTEX_API_ENDPOINT
    upstream_connect_timeout_seconds: float = 30.0
    upstream_read_timeout_seconds: float = 30.0
    upstream_write_timeout_seconds: float = 30.0
    upstream_pool_timeout_seconds: float = 5.0
    token_refresh_skew_seconds: float = 0.0
    gateway_host: str = "0.0.0.0"
    gateway_port: int = 8000

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        protected_namespaces=(),
    )

    @property
    def model_path(self) -> str:
        return f"{self.publisher}/{self.model_id}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
