"""HTTP PageSource.

Talks to a JSON endpoint ``GET {base_url}/feeds/{feed}/items?limit=&cursor=``
that returns ``{"items": [...], "next_cursor": ..., "has_more": ...}``. The
server is expected to apply the n+1 lookahead and the (created_at, id) ordering.

Status mapping:
  - 2xx                       → Page
  - 404 / 410 with a cursor   → InvalidCursorError
  - 429, 5xx, network errors  → SourceUnavailableError (recoverable)
  - other 4xx                 → SourceRejectedError (not recoverable)
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from feedpager.errors import InvalidCursorError, SourceRejectedError, SourceUnavailableError
from feedpager.models.feed import Page
from feedpager.protocol import validate_limit

if TYPE_CHECKING:
    from feedpager.config import SourceSettings

log = structlog.get_logger()

_USER_AGENT = "feedpager/0.1.0"
_CURSOR_GONE_STATUSES = frozenset({404, 410})


def build_http_client(
    settings: SourceSettings | None = None,
    headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """Create the shared httpx client.

    Authentication is owned by the caller: pass auth headers via ``headers``.
    """
    timeout = settings.timeout_seconds if settings is not None else 10.0
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": _USER_AGENT, "Accept": "application/json", **(headers or {})},
        follow_redirects=True,
    )


class HttpSource:
    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    def _url(self, feed: str) -> str:
        return f"{self._base_url}/feeds/{quote(feed, safe='')}/items"

    async def fetch_page(self, feed: str, cursor: str | None, limit: int) -> Page:
        validate_limit(limit)
        params: dict[str, str | int] = {"limit": limit}
        if cursor is not None:
            params["cursor"] = cursor

        url = self._url(feed)
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            log.warning("source_request_failed", feed=feed, url=url, error=str(exc))
            raise SourceUnavailableError(f"Request for feed {feed!r} failed: {exc}") from exc

        status = response.status_code
        if status in _CURSOR_GONE_STATUSES and cursor is not None:
            raise InvalidCursorError(feed, cursor)
        if status == 429 or status >= 500:
            log.warning("source_unavailable", feed=feed, url=url, status_code=status)
            raise SourceUnavailableError(
                f"Source returned HTTP {status} for feed {feed!r}", status_code=status
            )
        if status >= 400:
            log.warning("source_rejected", feed=feed, url=url, status_code=status)
            raise SourceRejectedError(
                f"Source rejected request for feed {feed!r} with HTTP {status}",
                status_code=status,
            )

        try:
            return Page.model_validate_json(response.content)
        except ValidationError as exc:
            log.warning("source_malformed_page", feed=feed, url=url, exc_info=True)
            raise SourceUnavailableError(f"Malformed page for feed {feed!r}") from exc
