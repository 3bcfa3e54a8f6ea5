from __future__ import annotations

from feedpager.models.feed import Item, Page
from feedpager.protocol import paginate, sort_items


class MemorySource:
    """In-process PageSource backed by one ordered list per feed.

    Mutations (``add``/``remove``) can happen between page fetches, which
    makes it useful for exercising cursor stability in tests and demos.
    """

    def __init__(self, feeds: dict[str, list[Item]] | None = None) -> None:
        self._feeds: dict[str, list[Item]] = {
            feed: sort_items(items) for feed, items in (feeds or {}).items()
        }
        self.calls: list[tuple[str, str | None, int]] = []

    def add(self, feed: str, *items: Item) -> None:
        existing = {item.id: item for item in self._feeds.get(feed, [])}
        existing.update((item.id, item) for item in items)
        self._feeds[feed] = sort_items(existing.values())

    def remove(self, feed: str, item_id: str) -> None:
        self._feeds[feed] = [item for item in self._feeds.get(feed, []) if item.id != item_id]

    def items(self, feed: str) -> list[Item]:
        return list(self._feeds.get(feed, []))

    async def fetch_page(self, feed: str, cursor: str | None, limit: int) -> Page:
        self.calls.append((feed, cursor, limit))
        return paginate(feed, self._feeds.get(feed, []), cursor, limit)
