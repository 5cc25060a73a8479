"""Value types shared by the queue, the transport and the relay loops."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Direction(str, Enum):
    """Which way a message travels. The value is the persisted form."""

    OUTBOUND = "to_telegram"
    INBOUND = "from_telegram"


@dataclass(frozen=True, slots=True)
class Message:
    """A queued message.

    ``timestamp`` is milliseconds since epoch, assigned by the queue.
    Messages are ordered by ``(timestamp, id)``.
    """

    id: int
    direction: Direction
    content: str
    timestamp: int
    processed: bool = False

    def preview(self, length: int = 50) -> str:
        if len(self.content) <= length:
            return self.content
        return self.content[:length] + "..."


@dataclass(frozen=True, slots=True)
class Update:
    """One unit of delivery from the remote transport."""

    update_id: int
    sender_id: int | None = None
    text: str | None = None
