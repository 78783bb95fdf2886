from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httplib2
from google.auth import exceptions as auth_exceptions
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from services.errors import InvalidResponseError, TransportError
from utils.config import AppConfig

LOGGER = logging.getLogger(__name__)


class GmailGateway:
    """Async wrapper around the Gmail REST calls the engine needs.

    Each request executes in a worker thread with its own authorized
    ``httplib2.Http``, as httplib2 connections cannot be shared between
    threads. Failures surface as :class:`TransportError`; nothing is retried.
    """

    def __init__(self, config: AppConfig, credentials: Optional[Credentials], client: Any = None):
        self._config = config
        self._credentials = credentials
        if client is None:
            client = build("gmail", "v1", credentials=credentials, cache_discovery=False)
        self._client = client

    @property
    def user_id(self) -> str:
        return self._config.user_id

    async def list_messages(
        self,
        page_token: Optional[str],
        page_size: int,
        label_filter: Optional[str],
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        params: Dict[str, Any] = {
            "userId": self.user_id,
            "maxResults": page_size,
            "includeSpamTrash": False,
        }
        if label_filter:
            params["labelIds"] = [label_filter]
        if page_token:
            params["pageToken"] = page_token
        request = self._client.users().messages().list(**params)
        response = _expect_mapping("list", await self._execute("list", request))

        refs = response.get("messages", [])
        if not isinstance(refs, list):
            raise InvalidResponseError("list", "'messages' is not a list")
        next_token = response.get("nextPageToken") or None
        LOGGER.info("Listed %s message refs (more pages: %s)", len(refs), next_token is not None)
        return refs, next_token

    async def get_message_metadata(self, message_id: str, header_names: Sequence[str]) -> Dict[str, Any]:
        request = (
            self._client.users()
            .messages()
            .get(userId=self.user_id, id=message_id, format="metadata", metadataHeaders=list(header_names))
        )
        return _expect_mapping("get", await self._execute("get", request))

    async def batch_delete(self, ids: Sequence[str]) -> None:
        body = {"ids": list(ids)}
        request = self._client.users().messages().batchDelete(userId=self.user_id, body=body)
        await self._execute("batchDelete", request)
        LOGGER.info("Permanently deleted %s messages", len(ids))

    async def delete_one(self, message_id: str) -> None:
        request = self._client.users().messages().delete(userId=self.user_id, id=message_id)
        await self._execute("delete", request)
        LOGGER.info("Permanently deleted message %s", message_id)

    async def batch_modify(
        self,
        ids: Sequence[str],
        add_labels: Sequence[str] = (),
        remove_labels: Sequence[str] = (),
    ) -> None:
        body: Dict[str, Any] = {"ids": list(ids)}
        if add_labels:
            body["addLabelIds"] = list(add_labels)
        if remove_labels:
            body["removeLabelIds"] = list(remove_labels)
        request = self._client.users().messages().batchModify(userId=self.user_id, body=body)
        await self._execute("batchModify", request)
        LOGGER.info("Modified %s messages (+%s -%s)", len(ids), list(add_labels), list(remove_labels))

    async def _execute(self, operation: str, request: Any) -> Any:
        try:
            return await asyncio.to_thread(request.execute, http=self._authorized_http())
        except HttpError as exc:
            LOGGER.error("Gmail %s call failed with status %s: %s", operation, exc.resp.status, exc.reason)
            raise TransportError(operation, str(exc.reason), status=exc.resp.status) from exc
        except (httplib2.HttpLib2Error, auth_exceptions.GoogleAuthError, OSError) as exc:
            LOGGER.error("Gmail %s call failed: %s", operation, exc)
            raise TransportError(operation, str(exc) or type(exc).__name__) from exc

    def _authorized_http(self) -> Optional[AuthorizedHttp]:
        if self._credentials is None:
            return None
        return AuthorizedHttp(self._credentials, http=httplib2.Http())


def _expect_mapping(operation: str, response: Any) -> Dict[str, Any]:
    if not isinstance(response, dict):
        raise InvalidResponseError(operation, f"expected a JSON object, got {type(response).__name__}")
    return response
