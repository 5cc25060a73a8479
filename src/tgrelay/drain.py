"""Outbound delivery on a fixed tick.

Each tick looks at the head of the queue. If it is OUTBOUND it is dequeued and
sent; otherwise the queue is left alone for the tool server to drain. A message
is processed the moment it is dequeued, so a failed send is reported and not
retried.
"""

from __future__ import annotations

import anyio
from anyio.abc import TaskGroup

from .errors import TransportError
from .events import DeliveryFailed, MessageDelivered, Observer, log_event
from .logging import get_logger
from .model import Direction, Message
from .queue import MessageQueue
from .transport import RelayTransport

logger = get_logger(__name__)

DRAIN_INTERVAL_S = 0.5


class DrainScheduler:
    def __init__(
        self,
        queue: MessageQueue,
        transport: RelayTransport,
        *,
        recipient_id: int,
        observer: Observer = log_event,
        interval_s: float = DRAIN_INTERVAL_S,
    ) -> None:
        self._queue = queue
        self._transport = transport
        self._recipient_id = recipient_id
        self._observer = observer
        self._interval_s = interval_s
        self._running = False
        self._scope: anyio.CancelScope | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def tick(self) -> Message | None:
        """Drain at most one OUTBOUND message.

        Returns the dequeued message (delivered or not), or None if the head
        was empty or INBOUND.
        """
        head = await self._queue.peek()
        if head is None or head.direction is not Direction.OUTBOUND:
            return None
        message = await self._queue.dequeue_if(Direction.OUTBOUND)
        if message is None:
            return None

        logger.info("drain.sending", id=message.id, preview=message.preview())
        try:
            await self._transport.send_message(self._recipient_id, message.content)
        except TransportError as e:
            self._observer(DeliveryFailed(message=message, error=e))
            return message
        self._observer(MessageDelivered(message=message))
        return message

    def start(self, task_group: TaskGroup) -> None:
        if self._running:
            return
        self._running = True
        self._scope = anyio.CancelScope()
        task_group.start_soon(self._run, self._scope)
        logger.info("drain.started", interval_s=self._interval_s)

    async def run(self) -> None:
        """Tick until :meth:`stop` is called. For use as a task body."""
        if self._running:
            return
        self._running = True
        self._scope = anyio.CancelScope()
        await self._run(self._scope)

    async def _run(self, scope: anyio.CancelScope) -> None:
        with scope:
            while self._running:
                # A send in progress finishes before stop() takes effect.
                with anyio.CancelScope(shield=True):
                    await self.tick()
                await anyio.sleep(self._interval_s)
        logger.info("drain.stopped")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._scope is not None:
            self._scope.cancel()
            self._scope = None
