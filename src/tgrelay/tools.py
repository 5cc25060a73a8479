"""Tool operations exposed to the MCP host.

"send" enqueues OUTBOUND text for the drain scheduler; "fetch" pulls pending
INBOUND messages off the head of the queue, stopping at the first OUTBOUND
message or when the queue is empty.
"""

from __future__ import annotations

from collections.abc import Sequence

from .errors import ValidationError
from .logging import get_logger
from .model import Direction
from .queue import MessageQueue

logger = get_logger(__name__)

DEFAULT_MESSAGE_COUNT = 10


def format_messages(contents: Sequence[str]) -> str:
    """Render fetched messages as the text block returned to the host."""
    if not contents:
        return "No new messages"
    lines = [f"{i}. {content}" for i, content in enumerate(contents, start=1)]
    return "Received messages:\n" + "\n".join(lines)


class RelayTools:
    def __init__(self, queue: MessageQueue) -> None:
        self._queue = queue

    async def send_message(self, text: str) -> str:
        """Queue ``text`` for delivery and return a confirmation."""
        if not isinstance(text, str) or not text:
            raise ValidationError("Message is required and must be a non-empty string")
        message_id = await self._queue.enqueue(Direction.OUTBOUND, text)
        logger.info("tools.send_queued", id=message_id)
        return f"Message queued successfully: {text}"

    async def get_messages(self, count: int = DEFAULT_MESSAGE_COUNT) -> list[str]:
        """Dequeue up to ``count`` pending INBOUND messages, oldest first."""
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValidationError("count must be an integer")
        if count < 1:
            raise ValidationError("count must be at least 1")

        contents: list[str] = []
        while len(contents) < count:
            message = await self._queue.dequeue_if(Direction.INBOUND)
            if message is None:
                break
            contents.append(message.content)
        if contents:
            logger.info("tools.messages_fetched", count=len(contents))
        return contents
