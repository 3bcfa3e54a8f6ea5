"""SQLite-backed PageSource using keyset pagination.

Timestamps are stored as ISO-8601 strings in UTC, so lexicographic order on
``created_at`` matches chronological order. Storage failures are translated
into ``SourceUnavailableError``; a cursor whose row has been deleted raises
``InvalidCursorError``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

import aiosqlite
import structlog

from feedpager.errors import InvalidCursorError, SourceUnavailableError
from feedpager.models.feed import Item, Page
from feedpager.protocol import build_page, validate_limit

log = structlog.get_logger()

_CREATE_ITEMS_TABLE = """
CREATE TABLE IF NOT EXISTS feed_items (
    feed        TEXT NOT NULL,
    id          TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    data        TEXT NOT NULL DEFAULT '{}',
    PRIMARY KEY (feed, id)
)
"""

_CREATE_ORDER_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_feed_items_order "
    "ON feed_items(feed, created_at DESC, id DESC)"
)

_SELECT_HEAD = (
    "SELECT id, created_at, data FROM feed_items WHERE feed = ? "
    "ORDER BY created_at DESC, id DESC LIMIT ?"
)

_SELECT_ANCHOR = "SELECT created_at FROM feed_items WHERE feed = ? AND id = ?"

_SELECT_AFTER = (
    "SELECT id, created_at, data FROM feed_items "
    "WHERE feed = ? AND (created_at < ? OR (created_at = ? AND id < ?)) "
    "ORDER BY created_at DESC, id DESC LIMIT ?"
)


def _encode_ts(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _row_to_item(row: Sequence[str]) -> Item:
    return Item(id=row[0], created_at=datetime.fromisoformat(row[1]), data=json.loads(row[2]))


class SqliteSource:
    """PageSource implementing the n+1 lookahead over an aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_ITEMS_TABLE)
        await self._db.execute(_CREATE_ORDER_INDEX)
        await self._db.commit()

    async def add_items(self, feed: str, items: Iterable[Item]) -> None:
        await self._db.executemany(
            "INSERT OR REPLACE INTO feed_items (feed, id, created_at, data) VALUES (?, ?, ?, ?)",
            [(feed, item.id, _encode_ts(item.created_at), json.dumps(item.data)) for item in items],
        )
        await self._db.commit()

    async def delete_item(self, feed: str, item_id: str) -> None:
        await self._db.execute(
            "DELETE FROM feed_items WHERE feed = ? AND id = ?",
            (feed, item_id),
        )
        await self._db.commit()

    async def fetch_page(self, feed: str, cursor: str | None, limit: int) -> Page:
        validate_limit(limit)
        try:
            if cursor is None:
                rows = await self._db.execute_fetchall(_SELECT_HEAD, (feed, limit + 1))
            else:
                anchor = [
                    row[0] for row in await self._db.execute_fetchall(_SELECT_ANCHOR, (feed, cursor))
                ]
                if not anchor:
                    raise InvalidCursorError(feed, cursor)
                created_at = anchor[0]
                rows = await self._db.execute_fetchall(
                    _SELECT_AFTER, (feed, created_at, created_at, cursor, limit + 1)
                )
        except aiosqlite.Error as exc:
            log.warning("source_read_error", feed=feed, cursor=cursor, exc_info=True)
            raise SourceUnavailableError(f"SQLite read failed for feed {feed!r}") from exc

        return build_page([_row_to_item(row) for row in rows], limit)
