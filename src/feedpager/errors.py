"""Error taxonomy shared by sources, the cache manager and the scheduler.

Every error carries a machine-readable ``code`` and a ``recoverable`` flag.
Recoverable errors are transient (worth retrying with the same cursor);
non-recoverable ones require the caller to restart the feed or stop.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    INVALID_CURSOR = "INVALID_CURSOR"
    SOURCE_UNAVAILABLE = "SOURCE_UNAVAILABLE"
    SOURCE_REJECTED = "SOURCE_REJECTED"
    REQUEST_SUPERSEDED = "REQUEST_SUPERSEDED"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"


class FeedPagerError(Exception):
    """Base class for all feedpager errors."""

    def __init__(self, code: ErrorCode, message: str, *, recoverable: bool) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "recoverable": self.recoverable,
            }
        }


class InvalidCursorError(FeedPagerError):
    """The cursor's item no longer exists; continuation is unreliable."""

    def __init__(self, feed: str, cursor: str) -> None:
        super().__init__(
            ErrorCode.INVALID_CURSOR,
            f"Cursor {cursor!r} no longer resolves in feed {feed!r}",
            recoverable=False,
        )
        self.feed = feed
        self.cursor = cursor


class SourceUnavailableError(FeedPagerError):
    """Transient transport or storage failure."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(ErrorCode.SOURCE_UNAVAILABLE, message, recoverable=True)
        self.status_code = status_code


class SourceRejectedError(FeedPagerError):
    """Client-error-class rejection (bad request, forbidden, ...)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(ErrorCode.SOURCE_REJECTED, message, recoverable=False)
        self.status_code = status_code


class RequestSupersededError(FeedPagerError):
    """A fetch result arrived after its feed was reset or torn down."""

    def __init__(self, feed: str) -> None:
        super().__init__(
            ErrorCode.REQUEST_SUPERSEDED,
            f"Fetch for feed {feed!r} was superseded",
            recoverable=False,
        )
        self.feed = feed


class ItemNotFoundError(FeedPagerError):
    def __init__(self, feed: str, item_id: str) -> None:
        super().__init__(
            ErrorCode.ITEM_NOT_FOUND,
            f"Item {item_id!r} is not cached in feed {feed!r}",
            recoverable=False,
        )
        self.feed = feed
        self.item_id = item_id
