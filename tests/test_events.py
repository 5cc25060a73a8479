"""Tests for tgrelay.events module."""

from __future__ import annotations

from structlog.testing import capture_logs

from tgrelay.errors import TransportError
from tgrelay.events import (
    DeliveryFailed,
    MessageDelivered,
    MessageReceived,
    PollFailed,
    log_event,
)
from tgrelay.model import Direction, Message


def _message(content: str = "hello") -> Message:
    return Message(
        id=3,
        direction=Direction.OUTBOUND,
        content=content,
        timestamp=1000,
        processed=True,
    )


class TestLogEvent:
    def test_message_received(self) -> None:
        with capture_logs() as logs:
            log_event(MessageReceived(update_id=10, message_id=1, content="secret"))

        assert logs[0]["event"] == "relay.message_received"
        assert logs[0]["update_id"] == 10
        assert "secret" not in str(logs[0])

    def test_poll_failed_is_warning(self) -> None:
        with capture_logs() as logs:
            log_event(PollFailed(offset=5, error=TransportError("timeout")))

        assert logs[0]["log_level"] == "warning"
        assert logs[0]["offset"] == 5
        assert logs[0]["error"] == "timeout"

    def test_delivery_failed_includes_preview(self) -> None:
        message = _message("x" * 80)
        with capture_logs() as logs:
            log_event(DeliveryFailed(message=message, error=TransportError("403")))

        assert logs[0]["log_level"] == "error"
        assert logs[0]["message_id"] == 3
        assert logs[0]["preview"] == message.preview()

    def test_message_delivered(self) -> None:
        with capture_logs() as logs:
            log_event(MessageDelivered(message=_message()))

        assert logs[0]["event"] == "relay.message_delivered"

