from __future__ import annotations

from feedpager.models.feed import FeedView, Item, Page

__all__ = [
    "Item",
    "Page",
    "FeedView",
]
