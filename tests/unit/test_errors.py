"""Unit tests for the error taxonomy and structlog setup."""

from __future__ import annotations

import json

import pytest
import structlog

from feedpager.config import LoggingSettings
from feedpager.errors import (
    ErrorCode,
    FeedPagerError,
    InvalidCursorError,
    ItemNotFoundError,
    RequestSupersededError,
    SourceRejectedError,
    SourceUnavailableError,
)
from feedpager.log import setup_logging


class TestErrorTaxonomy:
    @pytest.mark.parametrize(
        ("error", "code", "recoverable"),
        [
            (InvalidCursorError("global", "c1"), ErrorCode.INVALID_CURSOR, False),
            (SourceUnavailableError("down"), ErrorCode.SOURCE_UNAVAILABLE, True),
            (SourceRejectedError("bad"), ErrorCode.SOURCE_REJECTED, False),
            (RequestSupersededError("global"), ErrorCode.REQUEST_SUPERSEDED, False),
            (ItemNotFoundError("global", "x"), ErrorCode.ITEM_NOT_FOUND, False),
        ],
    )
    def test_codes_and_recoverability(
        self, error: FeedPagerError, code: ErrorCode, recoverable: bool
    ) -> None:
        assert isinstance(error, FeedPagerError)
        assert error.code == code
        assert error.recoverable is recoverable

    def test_envelope(self) -> None:
        envelope = InvalidCursorError("global", "c1").to_dict()
        assert envelope["error"]["code"] == "INVALID_CURSOR"
        assert envelope["error"]["recoverable"] is False
        assert "c1" in envelope["error"]["message"]


class TestSetupLogging:
    def teardown_method(self) -> None:
        structlog.reset_defaults()

    def test_json_output_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingSettings(level="INFO", format="json"))
        structlog.get_logger().info("fetch_page_complete", feed="global", items=10)

        captured = capsys.readouterr()
        assert captured.out == ""
        record = json.loads(captured.err.strip())
        assert record["event"] == "fetch_page_complete"
        assert record["feed"] == "global"
        assert record["level"] == "info"

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingSettings(level="WARNING", format="text"))
        structlog.get_logger().info("hidden")
        structlog.get_logger().warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err
