from __future__ import annotations

from feedpager.sources.http import HttpSource, build_http_client
from feedpager.sources.memory import MemorySource
from feedpager.sources.sqlite import SqliteSource

__all__ = [
    "HttpSource",
    "MemorySource",
    "SqliteSource",
    "build_http_client",
]
