"""Tests for the Typesense HTTP client against a stubbed requests session."""

from __future__ import annotations

from typing import Any

import pytest
import requests

from search_lifecycle.client import TypesenseClient, build_client
from search_lifecycle.client.memory import InMemorySearchClient
from search_lifecycle.core.config import Settings
from search_lifecycle.core.errors import (
    ApiError,
    PayloadTooLargeError,
    SearchConnectionError,
    SearchTimeoutError,
)


def _response(status: int, body: bytes = b"{}") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    return resp


class StubSession(requests.Session):
    def __init__(self, *outcomes: Any) -> None:
        super().__init__()
        self.outcomes = list(outcomes)
        self.sent: list[tuple[str, str, dict]] = []

    def request(self, method, url, **kwargs):  # type: ignore[override]
        self.sent.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _client(*outcomes: Any) -> tuple[TypesenseClient, StubSession]:
    session = StubSession(*outcomes)
    return TypesenseClient("http://search:8108/", "key", timeout_ms=2_000, session=session), session


def test_import_posts_jsonl_with_action() -> None:
    client, session = _client(_response(200, b'{"success":true}\n{"success":true}'))
    assert client.import_documents("products_v1", b'{"id":"1"}\n', "upsert") == '{"success":true}\n{"success":true}'
    method, url, kwargs = session.sent[0]
    assert (method, url) == ("POST", "http://search:8108/collections/products_v1/documents/import")
    assert kwargs["params"] == {"action": "upsert"}
    assert kwargs["timeout"] == 2.0
    assert session.headers["X-TYPESENSE-API-KEY"] == "key"


def test_not_found_maps_to_empty_results() -> None:
    client, _ = _client(_response(404), _response(404), _response(404), _response(404))
    assert client.resolve_alias("products") is None
    assert client.retrieve_schema("products") is None
    assert client.delete_collection("products_v1") is False
    assert client.delete_by_filter("products", "store_id:=1") == 0


def test_alias_and_delete_responses() -> None:
    client, session = _client(
        _response(200, b'{"name":"products","collection_name":"products_v2"}'),
        _response(200, b'{"num_deleted":3}'),
    )
    assert client.resolve_alias("products") == "products_v2"
    assert client.delete_by_filter("products", 'title:="a b"', timeout_ms=30_000) == 3
    _, url, kwargs = session.sent[1]
    assert url == "http://search:8108/collections/products/documents"
    assert kwargs["params"] == {"filter_by": 'title:="a b"'}
    assert kwargs["timeout"] == 30.0


@pytest.mark.parametrize(
    "outcome, error, transient",
    [
        (_response(413, b"too large"), PayloadTooLargeError, False),
        (_response(503, b"busy"), ApiError, True),
        (_response(400, b"bad"), ApiError, False),
        (requests.exceptions.ConnectTimeout("slow"), SearchTimeoutError, None),
        (requests.exceptions.ConnectionError("refused"), SearchConnectionError, None),
    ],
)
def test_transport_errors_are_mapped(outcome: Any, error: type, transient: bool | None) -> None:
    client, _ = _client(outcome)
    with pytest.raises(error) as excinfo:
        client.list_collections()
    if transient is not None:
        assert excinfo.value.transient is transient


def test_build_client_selects_backend() -> None:
    assert isinstance(build_client(Settings(search_backend="memory")), InMemorySearchClient)
    remote = build_client(Settings(search_backend="typesense", host="search", port=8108, api_key="k"))
    assert isinstance(remote, TypesenseClient)
    assert remote.base_url == "http://search:8108"
