"""Tests for structured JSON event logger."""

import io
import json
from unittest.mock import MagicMock

import pytest
import requests

from cli.structured_log import StructuredEventLogger


@pytest.fixture
def buf() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(buf: io.StringIO) -> StructuredEventLogger:
    return StructuredEventLogger("0xabc", enabled=True, stream=buf)


class TestEmit:
    """Basic event emission and format."""

    def test_query_start_json(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.query_start("pnl", coin="BTC", attribution_only=True)
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "query_start"
        assert record["user"] == "0xabc"
        assert record["command"] == "pnl"
        assert record["coin"] == "BTC"
        assert record["attribution_only"] is True
        assert "ts" in record

    def test_fetch_complete(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.fetch_complete(fills=12, positions=2)
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "fetch_complete"
        assert record["fills"] == 12
        assert record["positions"] == 2

    def test_query_complete(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.query_complete("trades", trades=4, volume=1234.5)
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "query_complete"
        assert record["trades"] == 4

    def test_account_dropped_overrides_user(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.account_dropped("0xdef", "timeout")
        record = json.loads(buf.getvalue().strip())
        assert record["user"] == "0xdef"
        assert record["reason"] == "timeout"

    def test_fetch_failed(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.fetch_failed("upstream 502", 502)
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "fetch_failed"
        assert record["status_code"] == 502

    def test_one_line_per_event(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.query_start("pnl")
        logger.error("boom", "detail")
        lines = buf.getvalue().strip().split("\n")
        assert [json.loads(line)["event"] for line in lines] == ["query_start", "error"]

    def test_returns_record(self, logger: StructuredEventLogger) -> None:
        record = logger.error("boom")
        assert record["event"] == "error"
        assert record["message"] == "boom"


class TestDisabled:
    def test_disabled_writes_nothing(self, buf: io.StringIO) -> None:
        quiet = StructuredEventLogger("0xabc", enabled=False, stream=buf)
        record = quiet.query_start("pnl")
        assert buf.getvalue() == ""
        assert record["event"] == "query_start"


class TestWebhook:
    def test_alert_events_posted(self, buf: io.StringIO) -> None:
        session = MagicMock()
        events = StructuredEventLogger("0xabc", stream=buf, webhook_url="https://hook.test", session=session)
        events.fetch_failed("down", 500)
        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0] == "https://hook.test"
        assert kwargs["json"]["event"] == "fetch_failed"

    def test_non_alert_events_not_posted(self, buf: io.StringIO) -> None:
        session = MagicMock()
        events = StructuredEventLogger("0xabc", stream=buf, webhook_url="https://hook.test", session=session)
        events.query_start("pnl")
        events.query_complete("pnl")
        session.post.assert_not_called()

    def test_webhook_failure_is_logged(self, buf: io.StringIO, caplog: pytest.LogCaptureFixture) -> None:
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        events = StructuredEventLogger("0xabc", stream=buf, webhook_url="https://hook.test", session=session)
        with caplog.at_level("WARNING", logger="ledger.events"):
            events.error("boom")
        assert "Webhook POST failed" in caplog.text
        assert json.loads(buf.getvalue().strip())["event"] == "error"
