"""Tests for the Haut.AI request wrapper."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from bloom.errors import RemoteError
from bloom.models.haut_client import HautClient, parse_body
from haut_stub import ALGORITHMS, ALGORITHMS_PATH, API_KEY, BASE_URL


def _client(handler) -> HautClient:
    return HautClient(API_KEY, base_url=BASE_URL, transport=httpx.MockTransport(handler))


def test_parse_body_variants():
    assert parse_body("") is None
    assert parse_body('{"a": 1}') == {"a": 1}
    assert parse_body("Internal Server Error") == "Internal Server Error"


def test_post_sends_auth_and_json_headers():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json={"id": "s1"})

    status, data = asyncio.run(_client(handler).request("/api/v1/x/", "POST", {"name": "Ada"}))

    assert status == 201
    assert data == {"id": "s1"}
    req = seen[0]
    assert req.headers["Authorization"] == f"Bearer {API_KEY}"
    assert req.headers["Accept"] == "application/json"
    assert req.headers["Content-Type"] == "application/json"
    assert req.content == b'{"name": "Ada"}'


def test_get_has_no_content_type():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    asyncio.run(_client(handler).request("/api/v1/x/"))
    assert "Content-Type" not in seen[0].headers
    assert seen[0].content == b""


def test_non_json_success_body_returned_as_text():
    client = _client(lambda request: httpx.Response(200, text="accepted"))
    assert asyncio.run(client.request("/x/")) == (200, "accepted")


def test_empty_body_is_none():
    client = _client(lambda request: httpx.Response(204))
    assert asyncio.run(client.request("/x/", "POST", {})) == (204, None)


def test_error_status_raises_remote_error_with_parsed_body():
    client = _client(lambda request: httpx.Response(404, json={"detail": "Not found."}))
    with pytest.raises(RemoteError) as info:
        asyncio.run(client.request("/x/"))
    assert info.value.status == 404
    assert info.value.status_code == 404
    assert info.value.body == {"detail": "Not found."}
    assert info.value.retryable is False


def test_server_error_is_retryable_and_keeps_text_body():
    client = _client(lambda request: httpx.Response(503, text="upstream busy"))
    with pytest.raises(RemoteError) as info:
        asyncio.run(client.request("/x/"))
    assert info.value.body == "upstream busy"
    assert info.value.retryable is True


def test_connection_failure_maps_to_502():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteError) as info:
        asyncio.run(_client(handler).request("/x/"))
    assert info.value.status == 502


def test_send_signed_uses_only_vendor_headers():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200)

    status, _ = asyncio.run(
        _client(handler).send_signed("PUT", "https://storage.test/f.jpg", {"Content-Type": "image/jpeg"}, b"\x01\x02")
    )
    assert status == 200
    assert "Authorization" not in seen[0].headers
    assert seen[0].headers["Content-Type"] == "image/jpeg"
    assert seen[0].content == b"\x01\x02"


def test_send_signed_returns_failure_status_instead_of_raising():
    client = _client(lambda request: httpx.Response(403, text="SignatureDoesNotMatch"))
    assert asyncio.run(client.send_signed("PUT", "https://storage.test/f.jpg", {}, b"")) == (403, "SignatureDoesNotMatch")


def test_fetch_algorithms_accepts_list_or_paginated():
    def handler(request):
        assert request.url.path == ALGORITHMS_PATH
        return httpx.Response(200, json={"count": 2, "results": ALGORITHMS})

    assert asyncio.run(_client(handler).fetch_algorithms()) == ALGORITHMS
    plain = _client(lambda request: httpx.Response(200, json=ALGORITHMS))
    assert asyncio.run(plain.fetch_algorithms()) == ALGORITHMS
