"""Transport abstraction for the relay.

The ingestion loop and drain scheduler only depend on this protocol; the
Telegram client in :mod:`tgrelay.telegram` is the production implementation.
"""

from __future__ import annotations

from typing import Any, Protocol

from .model import Update


class RelayTransport(Protocol):
    """Long-poll chat transport.

    Implementations raise :class:`tgrelay.errors.TransportError` on failure.
    """

    async def get_updates(
        self,
        offset: int,
        timeout_s: int,
        limit: int,
    ) -> list[Update]:
        """Fetch updates with ``update_id >= offset``.

        Args:
            offset: First update id to return
            timeout_s: Long-poll wait; the call blocks up to this long
            limit: Maximum batch size

        Returns:
            Updates in the order the server delivered them
        """
        ...

    async def send_message(self, chat_id: int, text: str) -> dict[str, Any]:
        """Send a plain text message and return the sent message object."""
        ...

    async def get_me(self) -> dict[str, Any]:
        """Return the bot identity. Used for connectivity checks only."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
