from __future__ import annotations

from typing import Any

from tgrelay.events import RelayEvent
from tgrelay.model import Update


def update(update_id: int, sender_id: int | None = 42, text: str | None = "hello") -> Update:
    return Update(update_id=update_id, sender_id=sender_id, text=text)


class FakeTransport:
    """Scripted transport that records every call.

    ``batches`` is consumed one entry per ``get_updates`` call; an entry that is
    an exception is raised instead of returned. Once exhausted, polls return
    nothing.
    """

    def __init__(
        self,
        batches: list[list[Update] | Exception] | None = None,
        *,
        send_error: Exception | None = None,
    ) -> None:
        self.batches = list(batches or [])
        self.send_error = send_error
        self.poll_calls: list[tuple[int, int, int]] = []
        self.sent: list[tuple[int, str]] = []
        self.closed = False

    async def get_updates(self, offset: int, timeout_s: int, limit: int) -> list[Update]:
        self.poll_calls.append((offset, timeout_s, limit))
        if not self.batches:
            return []
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch

    async def send_message(self, chat_id: int, text: str) -> dict[str, Any]:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((chat_id, text))
        return {"message_id": len(self.sent)}

    async def get_me(self) -> dict[str, Any]:
        return {"id": 1, "username": "relay_bot"}

    async def close(self) -> None:
        self.closed = True


class EventLog:
    """Observer that keeps every event it is given."""

    def __init__(self) -> None:
        self.events: list[RelayEvent] = []

    def __call__(self, event: RelayEvent) -> None:
        self.events.append(event)

    def of_type(self, kind: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, kind)]
