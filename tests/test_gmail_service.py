from __future__ import annotations

import asyncio
from pathlib import Path

import httplib2
import pytest
from googleapiclient.errors import HttpError

from services.errors import InvalidResponseError, TransportError
from services.gmail_service import GmailGateway
from utils.config import AppConfig


class FakeRequest:
    def __init__(self, result=None, error: Exception | None = None):
        self._result = result
        self._error = error

    def execute(self, http=None):  # noqa: ARG002
        if self._error is not None:
            raise self._error
        return self._result


class FakeMessages:
    def __init__(self, responses):
        self.responses = responses
        self.requests = []

    def _request(self, name, kwargs):
        self.requests.append((name, kwargs))
        return self.responses[name]

    def list(self, **kwargs):
        return self._request("list", kwargs)

    def get(self, **kwargs):
        return self._request("get", kwargs)

    def batchDelete(self, **kwargs):  # noqa: N802
        return self._request("batchDelete", kwargs)

    def delete(self, **kwargs):
        return self._request("delete", kwargs)

    def batchModify(self, **kwargs):  # noqa: N802
        return self._request("batchModify", kwargs)


class FakeClient:
    def __init__(self, **responses):
        self.messages_resource = FakeMessages(responses)

    def users(self):
        return self

    def messages(self):
        return self.messages_resource


def _config() -> AppConfig:
    return AppConfig(
        credentials_file=Path("credentials.json"),
        token_file=Path("token.json"),
        user_id="me",
        label_filter="INBOX",
        log_dir=Path("logs"),
        log_level="INFO",
        page_size=50,
        metadata_batch_size=10,
        modify_chunk_size=50,
    )


def _gateway(**responses) -> tuple[GmailGateway, FakeMessages]:
    client = FakeClient(**responses)
    return GmailGateway(_config(), credentials=None, client=client), client.messages_resource


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": str(status)}), b'{"error": {"message": "quota exceeded"}}')


def test_list_messages_builds_query_and_returns_token():
    gateway, messages = _gateway(list=FakeRequest({"messages": [{"id": "1"}], "nextPageToken": "T1"}))

    refs, token = asyncio.run(gateway.list_messages("T0", 50, "INBOX"))

    assert refs == [{"id": "1"}]
    assert token == "T1"
    name, kwargs = messages.requests[0]
    assert name == "list"
    assert kwargs == {
        "userId": "me",
        "maxResults": 50,
        "includeSpamTrash": False,
        "labelIds": ["INBOX"],
        "pageToken": "T0",
    }


def test_list_messages_without_results_or_token():
    gateway, messages = _gateway(list=FakeRequest({"resultSizeEstimate": 0}))

    refs, token = asyncio.run(gateway.list_messages(None, 50, None))

    assert refs == []
    assert token is None
    assert "pageToken" not in messages.requests[0][1]
    assert "labelIds" not in messages.requests[0][1]


def test_get_metadata_requests_metadata_format():
    gateway, messages = _gateway(get=FakeRequest({"id": "1"}))

    assert asyncio.run(gateway.get_message_metadata("1", ["From", "Subject"])) == {"id": "1"}
    assert messages.requests[0][1] == {
        "userId": "me",
        "id": "1",
        "format": "metadata",
        "metadataHeaders": ["From", "Subject"],
    }


def test_mutation_calls_send_expected_bodies():
    gateway, messages = _gateway(
        batchDelete=FakeRequest(""),
        delete=FakeRequest(""),
        batchModify=FakeRequest(""),
    )

    async def run():
        await gateway.batch_delete(["1", "2"])
        await gateway.delete_one("3")
        await gateway.batch_modify(["4"], remove_labels=["UNREAD"])

    asyncio.run(run())

    assert messages.requests == [
        ("batchDelete", {"userId": "me", "body": {"ids": ["1", "2"]}}),
        ("delete", {"userId": "me", "id": "3"}),
        ("batchModify", {"userId": "me", "body": {"ids": ["4"], "removeLabelIds": ["UNREAD"]}}),
    ]


def test_http_error_becomes_transport_error():
    gateway, _ = _gateway(batchDelete=FakeRequest(error=_http_error(503)))

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(gateway.batch_delete(["1", "2"]))

    assert excinfo.value.status == 503
    assert excinfo.value.operation == "batchDelete"
    assert isinstance(excinfo.value.__cause__, HttpError)


def test_network_error_becomes_transport_error():
    gateway, _ = _gateway(list=FakeRequest(error=ConnectionResetError("reset by peer")))

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(gateway.list_messages(None, 50, "INBOX"))

    assert excinfo.value.status is None
    assert "reset by peer" in str(excinfo.value)


def test_unexpected_shapes_raise_invalid_response():
    gateway, _ = _gateway(list=FakeRequest({"messages": "nope"}), get=FakeRequest(["not", "a", "dict"]))

    with pytest.raises(InvalidResponseError):
        asyncio.run(gateway.list_messages(None, 50, "INBOX"))
    with pytest.raises(InvalidResponseError):
        asyncio.run(gateway.get_message_metadata("1", ["From"]))
