from __future__ import annotations

import json
from pathlib import Path

import pytest

from services.auth_service import AuthService
from services.errors import TransportError
from utils.config import AppConfig


def _config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        credentials_file=tmp_path / "credentials.json",
        token_file=tmp_path / "token.json",
        user_id="me",
        label_filter="INBOX",
        log_dir=tmp_path / "logs",
        log_level="INFO",
        page_size=50,
        metadata_batch_size=10,
        modify_chunk_size=50,
    )


def _write_token(path: Path) -> None:
    path.write_text(
        json.dumps(
            {
                "token": "access",
                "refresh_token": "refresh",
                "client_id": "client.apps.googleusercontent.com",
                "client_secret": "secret",
            }
        ),
        encoding="utf-8",
    )


def test_no_cached_credential(tmp_path):
    auth = AuthService(_config(tmp_path))

    assert auth.current_credential() is None
    with pytest.raises(TransportError):
        auth.refresh()


def test_cached_credential_is_loaded_once(tmp_path):
    config = _config(tmp_path)
    _write_token(config.token_file)
    auth = AuthService(config)

    creds = auth.current_credential()

    assert creds is not None
    assert creds.refresh_token == "refresh"
    assert auth.current_credential() is creds


def test_sign_out_forgets_the_token(tmp_path):
    config = _config(tmp_path)
    _write_token(config.token_file)
    auth = AuthService(config)
    auth.current_credential()

    auth.sign_out()

    assert not config.token_file.exists()
    assert auth.current_credential() is None
