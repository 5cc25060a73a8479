"""Notifications emitted by the ingestion loop and the drain scheduler.

Components take an ``observer`` callable in their constructor and call it with
one of the event types below. Observers are synchronous and must not raise.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from .errors import TransportError
from .logging import get_logger
from .model import Message

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class MessageReceived:
    """An inbound message was accepted and enqueued."""

    update_id: int
    message_id: int
    content: str


@dataclass(frozen=True, slots=True)
class PollFailed:
    """A getUpdates call failed; the offset was not advanced."""

    offset: int
    error: TransportError


@dataclass(frozen=True, slots=True)
class MessageDelivered:
    """An outbound message was sent."""

    message: Message


@dataclass(frozen=True, slots=True)
class DeliveryFailed:
    """An outbound message was dequeued but the send failed. It is not retried."""

    message: Message
    error: TransportError


RelayEvent: TypeAlias = MessageReceived | PollFailed | MessageDelivered | DeliveryFailed
Observer: TypeAlias = Callable[[RelayEvent], None]


def log_event(event: RelayEvent) -> None:
    """Default observer: write the event to the log."""
    match event:
        case MessageReceived():
            logger.info(
                "relay.message_received",
                update_id=event.update_id,
                message_id=event.message_id,
            )
        case PollFailed():
            logger.warning(
                "relay.poll_failed", offset=event.offset, error=str(event.error)
            )
        case MessageDelivered():
            logger.info("relay.message_delivered", message_id=event.message.id)
        case DeliveryFailed():
            logger.error(
                "relay.delivery_failed",
                message_id=event.message.id,
                preview=event.message.preview(),
                error=str(event.error),
            )

