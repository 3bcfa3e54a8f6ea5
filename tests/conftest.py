"""Shared fixtures: feed items and pager settings."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from feedpager.config import PagerSettings
from feedpager.models.feed import Item

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def make_item(n: int, *, minutes_ago: int | None = None, **data: object) -> Item:
    """Item ``n`` is ``n`` minutes older than BASE_TIME unless told otherwise."""
    offset = n if minutes_ago is None else minutes_ago
    return Item(
        id=f"item-{n:03d}",
        created_at=BASE_TIME - timedelta(minutes=offset),
        data=dict(data),
    )


@pytest.fixture()
def item_factory() -> Callable[..., Item]:
    return make_item


@pytest.fixture()
def feed_items() -> list[Item]:
    """25 items, newest first: item-001 ... item-025."""
    return [make_item(n) for n in range(1, 26)]


@pytest.fixture()
def pager_settings() -> PagerSettings:
    return PagerSettings(
        page_size=10,
        debounce_ms=20,
        max_cached_pages=10,
        retry_attempts=1,
        retry_backoff_ms=0,
    )
