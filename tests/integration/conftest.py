"""Integration test fixtures.

Provides a fully wired AppState backed by a SQLite file in tmp_path, seeded
with the 25-item "global" feed from tests/conftest.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from feedpager.config import Settings
from feedpager.sources.sqlite import SqliteSource
from feedpager.state import AppState, create_app_state

if TYPE_CHECKING:
    from pathlib import Path

    from feedpager.models.feed import Item


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        pager={
            "page_size": 10,
            "debounce_ms": 20,
            "max_cached_pages": 2,
            "retry_attempts": 2,
            "retry_backoff_ms": 1,
        },
        source={"kind": "sqlite", "db_path": str(tmp_path / "data" / "feed.db")},
    )


@pytest.fixture()
async def app_state(settings: Settings, feed_items: list[Item]) -> AppState:
    async with create_app_state(settings) as state:
        assert isinstance(state.source, SqliteSource)
        await state.source.add_items("global", feed_items)
        yield state
