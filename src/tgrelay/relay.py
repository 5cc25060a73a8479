"""Composition root: one queue, one transport, an ingestion loop and a drain scheduler.

The two loops run as sibling tasks and only coordinate through the queue.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio
from anyio.abc import TaskGroup

from .drain import DRAIN_INTERVAL_S, DrainScheduler
from .errors import TransportError
from .events import Observer, log_event
from .ingest import POLL_INTERVAL_S, IngestionLoop
from .logging import get_logger
from .queue import MessageQueue
from .settings import RelaySettings
from .telegram import TelegramClient
from .tools import RelayTools
from .transport import RelayTransport

logger = get_logger(__name__)


class Relay:
    """Wires the queue and transport to both loops and the tool operations."""

    def __init__(
        self,
        queue: MessageQueue,
        transport: RelayTransport,
        *,
        user_id: int,
        observer: Observer = log_event,
        poll_interval_s: float = POLL_INTERVAL_S,
        drain_interval_s: float = DRAIN_INTERVAL_S,
    ) -> None:
        self.queue = queue
        self.transport = transport
        self.ingest = IngestionLoop(
            queue,
            transport,
            authorized_user_id=user_id,
            observer=observer,
            poll_interval_s=poll_interval_s,
        )
        self.drain = DrainScheduler(
            queue,
            transport,
            recipient_id=user_id,
            observer=observer,
            interval_s=drain_interval_s,
        )
        self.tools = RelayTools(queue)

    def start(self, task_group: TaskGroup) -> None:
        self.ingest.start(task_group)
        self.drain.start(task_group)

    async def run(self) -> None:
        """Run both loops until :meth:`stop` is called."""
        async with anyio.create_task_group() as tg:
            self.start(tg)

    def stop(self) -> None:
        self.ingest.stop()
        self.drain.stop()


async def check_connection(transport: RelayTransport) -> str | None:
    """Return the bot username, or None if Telegram is unreachable."""
    try:
        me = await transport.get_me()
    except TransportError as e:
        logger.warning("relay.connection_check_failed", error=str(e))
        return None
    return str(me.get("username") or me.get("id") or "bot")


@asynccontextmanager
async def open_relay(
    settings: RelaySettings,
    *,
    transport: RelayTransport | None = None,
    observer: Observer = log_event,
) -> AsyncIterator[Relay]:
    """Open the queue and transport and run the relay for the block's duration."""
    queue = await MessageQueue.open(settings.queue_db_path)
    if transport is None:
        transport = TelegramClient(settings.bot_token)
    relay = Relay(queue, transport, user_id=settings.user_id, observer=observer)
    try:
        username = await check_connection(transport)
        logger.info(
            "relay.starting",
            bot=username,
            queue=str(queue.path),
            pending=await queue.unprocessed_count(),
        )
        async with anyio.create_task_group() as tg:
            relay.start(tg)
            try:
                yield relay
            finally:
                relay.stop()
    finally:
        with anyio.CancelScope(shield=True):
            await transport.close()
            await queue.close()
        logger.info("relay.stopped")
