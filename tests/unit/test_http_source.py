"""Unit tests for feedpager.sources.http."""

from __future__ import annotations

import httpx
import pytest
import respx

from feedpager.config import SourceSettings
from feedpager.errors import (
    ErrorCode,
    InvalidCursorError,
    SourceRejectedError,
    SourceUnavailableError,
)
from feedpager.sources.http import HttpSource, build_http_client

BASE_URL = "https://api.example.com"
ITEMS_URL = f"{BASE_URL}/feeds/global/items"

PAGE_BODY = {
    "items": [
        {"id": "p2", "created_at": "2025-01-01T00:02:00Z", "data": {"text": "second"}},
        {"id": "p1", "created_at": "2025-01-01T00:01:00Z", "data": {"text": "first"}},
    ],
    "next_cursor": "p1",
    "has_more": True,
}

# ---------------------------------------------------------------------------
# build_http_client
# ---------------------------------------------------------------------------


class TestBuildHttpClient:
    def test_client_configuration(self) -> None:
        client = build_http_client(SourceSettings(timeout_seconds=3.0))
        assert isinstance(client, httpx.AsyncClient)
        assert client.timeout.read == 3.0
        assert client.headers["Accept"] == "application/json"

    def test_extra_headers_merged(self) -> None:
        client = build_http_client(headers={"Authorization": "Bearer token"})
        assert client.headers["Authorization"] == "Bearer token"


# ---------------------------------------------------------------------------
# HttpSource
# ---------------------------------------------------------------------------


class TestHttpSource:
    async def test_successful_fetch(self) -> None:
        with respx.mock:
            route = respx.get(ITEMS_URL).mock(return_value=httpx.Response(200, json=PAGE_BODY))
            async with httpx.AsyncClient() as client:
                page = await HttpSource(client, BASE_URL).fetch_page("global", None, 2)
            assert [i.id for i in page.items] == ["p2", "p1"]
            assert page.next_cursor == "p1"
            assert page.items[0].data == {"text": "second"}
            request = route.calls.last.request
            assert request.url.params["limit"] == "2"
            assert "cursor" not in request.url.params

    async def test_cursor_sent_as_query_param(self) -> None:
        with respx.mock:
            route = respx.get(ITEMS_URL).mock(
                return_value=httpx.Response(200, json={"items": [], "has_more": False})
            )
            async with httpx.AsyncClient() as client:
                page = await HttpSource(client, f"{BASE_URL}/").fetch_page("global", "p1", 2)
            assert page.has_more is False
            assert route.calls.last.request.url.params["cursor"] == "p1"

    async def test_feed_identity_is_url_quoted(self) -> None:
        with respx.mock:
            route = respx.get(f"{BASE_URL}/feeds/tag%2Fpython/items").mock(
                return_value=httpx.Response(200, json={"items": [], "has_more": False})
            )
            async with httpx.AsyncClient() as client:
                await HttpSource(client, BASE_URL).fetch_page("tag/python", None, 2)
            assert route.called

    async def test_410_with_cursor_raises_invalid_cursor(self) -> None:
        with respx.mock:
            respx.get(ITEMS_URL).mock(return_value=httpx.Response(410))
            async with httpx.AsyncClient() as client:
                with pytest.raises(InvalidCursorError) as exc_info:
                    await HttpSource(client, BASE_URL).fetch_page("global", "gone", 2)
            assert exc_info.value.code == ErrorCode.INVALID_CURSOR
            assert exc_info.value.recoverable is False

    async def test_404_without_cursor_is_rejected(self) -> None:
        with respx.mock:
            respx.get(ITEMS_URL).mock(return_value=httpx.Response(404))
            async with httpx.AsyncClient() as client:
                with pytest.raises(SourceRejectedError) as exc_info:
                    await HttpSource(client, BASE_URL).fetch_page("global", None, 2)
            assert exc_info.value.status_code == 404

    async def test_400_raises_rejected(self) -> None:
        with respx.mock:
            respx.get(ITEMS_URL).mock(return_value=httpx.Response(400))
            async with httpx.AsyncClient() as client:
                with pytest.raises(SourceRejectedError) as exc_info:
                    await HttpSource(client, BASE_URL).fetch_page("global", None, 2)
            assert exc_info.value.code == ErrorCode.SOURCE_REJECTED
            assert exc_info.value.recoverable is False

    async def test_500_raises_unavailable(self) -> None:
        with respx.mock:
            respx.get(ITEMS_URL).mock(return_value=httpx.Response(503))
            async with httpx.AsyncClient() as client:
                with pytest.raises(SourceUnavailableError) as exc_info:
                    await HttpSource(client, BASE_URL).fetch_page("global", None, 2)
            assert exc_info.value.status_code == 503
            assert exc_info.value.recoverable is True

    async def test_429_raises_unavailable(self) -> None:
        with respx.mock:
            respx.get(ITEMS_URL).mock(return_value=httpx.Response(429))
            async with httpx.AsyncClient() as client:
                with pytest.raises(SourceUnavailableError):
                    await HttpSource(client, BASE_URL).fetch_page("global", None, 2)

    async def test_network_error_raises_unavailable(self) -> None:
        with respx.mock:
            respx.get(ITEMS_URL).mock(side_effect=httpx.ConnectError("Connection refused"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(SourceUnavailableError) as exc_info:
                    await HttpSource(client, BASE_URL).fetch_page("global", None, 2)
            assert exc_info.value.recoverable is True

    async def test_malformed_body_raises_unavailable(self) -> None:
        with respx.mock:
            # has_more without a cursor violates the page invariant
            respx.get(ITEMS_URL).mock(
                return_value=httpx.Response(200, json={"items": [], "has_more": True})
            )
            async with httpx.AsyncClient() as client:
                with pytest.raises(SourceUnavailableError):
                    await HttpSource(client, BASE_URL).fetch_page("global", None, 2)
