from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from vertex_gateway.settings import get_settings

TEST_TOKEN_URI = "https://oauth2.example.test/token"
TEST_CLIENT_EMAIL = "gateway@test-project.iam.gserviceaccount.com"


@pytest.fixture(scope="session")
def rsa_key_pair() -> tuple[str, str]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("ascii")
    )
    return private_pem, public_pem


def _write_service_account_key(path: Path, private_pem: str, **overrides: Any) -> Path:
    payload: dict[str, Any] = {
        "type": "service_account",
        "project_id": "test-project",
        "private_key_id": "key-id-1",
        "private_key": private_pem,
        "client_email": TEST_CLIENT_EMAIL,
        "token_uri": TEST_TOKEN_URI,
    }
    payload.update(overrides)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


@pytest.fixture
def make_service_account_file(
    tmp_path: Path, rsa_key_pair: tuple[str, str]
) -> Callable[..., Path]:
    def _make(name: str = "service-account.json", **overrides: Any) -> Path:
        return _write_service_account_key(tmp_path / name, rsa_key_pair[0], **overrides)

    return _make


@pytest.fixture
def service_account_file(make_service_account_file: Callable[..., Path]) -> Path:
    return make_service_account_file()


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Any:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
