from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from google.auth import exceptions as auth_exceptions
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from services.errors import TransportError
from utils.config import AppConfig

LOGGER = logging.getLogger(__name__)
# Permanent deletion (messages.delete / batchDelete) needs the full mail scope.
SCOPES: Iterable[str] = (
    "https://mail.google.com/",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.metadata",
)


class AuthService:
    """Handle the OAuth2 credential lifecycle for the signed-in Gmail user."""

    def __init__(self, config: AppConfig):
        self._config = config
        self._credentials: Credentials | None = None

    def _save_credentials(self, creds: Credentials) -> None:
        LOGGER.debug("Persisting OAuth tokens to %s", self._config.token_file)
        self._config.token_file.parent.mkdir(parents=True, exist_ok=True)
        self._config.token_file.write_text(creds.to_json(), encoding="utf-8")

    def _load_existing_credentials(self) -> Credentials | None:
        token_path: Path = self._config.token_file
        if token_path.exists():
            LOGGER.debug("Loading cached credential from %s", token_path)
            data = token_path.read_text(encoding="utf-8")
            return Credentials.from_authorized_user_info(json.loads(data), SCOPES)
        return None

    def current_credential(self) -> Credentials | None:
        if self._credentials is None:
            self._credentials = self._load_existing_credentials()
        return self._credentials

    def refresh(self) -> Credentials:
        creds = self.current_credential()
        if creds is None or not creds.refresh_token:
            raise TransportError("refresh", "no refreshable credential, sign in first")
        LOGGER.info("Refreshing expired Gmail token")
        try:
            creds.refresh(Request())
        except (auth_exceptions.RefreshError, auth_exceptions.TransportError) as exc:
            raise TransportError("refresh", str(exc)) from exc
        self._save_credentials(creds)
        return creds

    def sign_in(self) -> Credentials:
        LOGGER.info("Initiating OAuth flow using %s", self._config.credentials_file)
        flow = InstalledAppFlow.from_client_secrets_file(str(self._config.credentials_file), scopes=SCOPES)
        creds = flow.run_local_server(port=0)
        self._save_credentials(creds)
        self._credentials = creds
        return creds

    def sign_out(self) -> None:
        self._credentials = None
        token_path = self._config.token_file
        if token_path.exists():
            token_path.unlink()
            LOGGER.info("Removed cached credential %s", token_path)

    def authenticate(self) -> Credentials:
        creds = self.current_credential()
        if creds and creds.expired and creds.refresh_token:
            return self.refresh()

        if creds and creds.valid:
            return creds

        return self.sign_in()
