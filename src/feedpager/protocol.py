"""Cursor pagination contract between the cache manager and a data source.

Feeds are ordered newest first: ``created_at`` descending, ties broken by
``id`` descending. The tie-break makes the order total, so a page boundary
falling between two items with equal timestamps can neither skip nor repeat
one of them.

A cursor is the id of the last item of the previous page. Sources resolve it
to that item's ``(created_at, id)`` key and return the items strictly after
it, which keeps previously issued cursors valid while the head of the feed
grows.

Sources fetch ``limit + 1`` rows and hand them to :func:`build_page`, which
uses the extra row only to decide ``has_more``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from feedpager.errors import InvalidCursorError
from feedpager.models.feed import Item, Page


@runtime_checkable
class PageSource(Protocol):
    async def fetch_page(self, feed: str, cursor: str | None, limit: int) -> Page:
        """Return up to ``limit`` items strictly after ``cursor``.

        ``cursor=None`` starts at the head of the feed. Raises
        ``InvalidCursorError`` when the cursor's item no longer exists and
        ``SourceUnavailableError`` on transport or storage failure.
        """
        ...


def sort_key(item: Item) -> tuple[datetime, str]:
    return (item.created_at, item.id)


def sort_items(items: Iterable[Item]) -> list[Item]:
    """Return ``items`` in feed order (newest first)."""
    return sorted(items, key=sort_key, reverse=True)


def is_after(item: Item, anchor: Item) -> bool:
    """True when ``item`` comes strictly after ``anchor`` in feed order."""
    return sort_key(item) < sort_key(anchor)


def validate_limit(limit: int) -> int:
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    return limit


def build_page(rows: Sequence[Item], limit: int) -> Page:
    """Build a page from up to ``limit + 1`` rows already in feed order."""
    has_more = len(rows) > limit
    items = list(rows[:limit])
    next_cursor = items[-1].id if has_more else None
    return Page(items=items, next_cursor=next_cursor, has_more=has_more)


def paginate(feed: str, items: Sequence[Item], cursor: str | None, limit: int) -> Page:
    """Reference pagination over ``items``, which must already be in feed order."""
    validate_limit(limit)

    if cursor is None:
        return build_page(items[: limit + 1], limit)

    anchor = next((item for item in items if item.id == cursor), None)
    if anchor is None:
        raise InvalidCursorError(feed, cursor)

    rows: list[Item] = []
    for item in items:
        if is_after(item, anchor):
            rows.append(item)
            if len(rows) > limit:
                break
    return build_page(rows, limit)
