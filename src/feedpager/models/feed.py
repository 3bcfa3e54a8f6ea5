from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class Item(BaseModel):
    """Single feed record. Immutable once fetched."""

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime  # Primary sort key (descending)
    data: dict[str, Any] = {}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v:
            raise ValueError("item id must not be empty")
        return v

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        # Naive timestamps are taken as UTC so every item compares with every other
        if v.tzinfo is None:
            v = v.replace(tzinfo=UTC)
        return v.astimezone(UTC)


class Page(BaseModel):
    """A bounded, contiguous slice of a feed plus its continuation cursor."""

    model_config = ConfigDict(frozen=True)

    items: list[Item] = []
    next_cursor: str | None = None  # Id of the last item; None when the feed is exhausted
    has_more: bool = False

    @model_validator(mode="after")
    def check_cursor_matches_has_more(self) -> Page:
        if self.has_more != (self.next_cursor is not None):
            raise ValueError("has_more must be true exactly when next_cursor is set")
        return self


class FeedView(BaseModel):
    """Flattened read-only view handed to the presentation layer."""

    items: list[Item]
    has_more: bool
    is_fetching_next: bool
