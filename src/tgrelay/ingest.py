"""Long-poll ingestion: Telegram updates in, INBOUND queue messages out.

Each update the authorized user sends is enqueued exactly once, even when the
API redelivers a batch because an offset advance was lost. Duplicate detection
uses a bounded window of recently accepted update ids rather than persisted
acknowledgement state.
"""

from __future__ import annotations

from enum import Enum

import anyio
from anyio.abc import TaskGroup

from .errors import TransportError
from .events import MessageReceived, Observer, PollFailed, log_event
from .logging import get_logger
from .model import Direction, Update
from .queue import MessageQueue
from .transport import RelayTransport

logger = get_logger(__name__)

POLL_TIMEOUT_S = 10
POLL_LIMIT = 100
POLL_INTERVAL_S = 1.0
WINDOW_CAPACITY = 200
WINDOW_RETENTION = 100


class LoopState(str, Enum):
    STOPPED = "stopped"
    POLLING = "polling"


class UpdateWindow:
    """Recently accepted update ids plus the highest id seen so far.

    Once more than ``capacity`` ids are held, ids older than
    ``highest - retention`` are dropped. An id that reappears after being
    dropped is treated as new.
    """

    def __init__(
        self,
        capacity: int = WINDOW_CAPACITY,
        retention: int = WINDOW_RETENTION,
    ) -> None:
        self.capacity = capacity
        self.retention = retention
        self.highest = 0
        self._seen: set[int] = set()

    def __contains__(self, update_id: object) -> bool:
        return update_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def advance(self, update_id: int) -> None:
        if update_id > self.highest:
            self.highest = update_id

    def remember(self, update_id: int) -> None:
        self._seen.add(update_id)
        self._prune()

    def _prune(self) -> None:
        if len(self._seen) <= self.capacity:
            return
        floor = self.highest - self.retention
        self._seen = {uid for uid in self._seen if uid >= floor}


class IngestionLoop:
    """Polls the transport and enqueues messages from the authorized user.

    State machine: ``STOPPED -> POLLING -> STOPPED``. :meth:`start` spawns the
    poll task in a task group; :meth:`stop` is idempotent and cancels an
    in-flight long-poll or inter-poll wait.
    """

    def __init__(
        self,
        queue: MessageQueue,
        transport: RelayTransport,
        *,
        authorized_user_id: int,
        observer: Observer = log_event,
        poll_timeout_s: int = POLL_TIMEOUT_S,
        poll_limit: int = POLL_LIMIT,
        poll_interval_s: float = POLL_INTERVAL_S,
        window: UpdateWindow | None = None,
    ) -> None:
        self._queue = queue
        self._transport = transport
        self._authorized_user_id = authorized_user_id
        self._observer = observer
        self._poll_timeout_s = poll_timeout_s
        self._poll_limit = poll_limit
        self._poll_interval_s = poll_interval_s
        self.window = window if window is not None else UpdateWindow()
        self._state = LoopState.STOPPED
        self._scope: anyio.CancelScope | None = None
        self._next_delay_s = poll_interval_s

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def highest_update_id(self) -> int:
        return self.window.highest

    @property
    def offset(self) -> int:
        return self.window.highest + 1

    def _accepted_text(self, update: Update) -> str | None:
        """The text to enqueue, or None if the update is not relayed."""
        if update.sender_id != self._authorized_user_id or not update.text:
            return None
        return update.text

    async def poll_once(self) -> int:
        """Run one poll cycle and return how many messages were enqueued.

        Transport failures are reported to the observer and leave the offset
        where it was. Storage failures propagate.
        """
        offset = self.offset
        self._next_delay_s = self._poll_interval_s
        try:
            updates = await self._transport.get_updates(
                offset, self._poll_timeout_s, self._poll_limit
            )
        except TransportError as e:
            retry_after = getattr(e, "retry_after", None)
            if isinstance(retry_after, (int, float)):
                self._next_delay_s = max(self._poll_interval_s, float(retry_after))
            self._observer(PollFailed(offset=offset, error=e))
            return 0

        if updates:
            logger.debug("ingest.updates", offset=offset, count=len(updates))

        accepted = 0
        # Once a batch is in hand it is recorded in full; stop() only
        # interrupts the waits.
        with anyio.CancelScope(shield=True):
            for update in updates:
                if update.update_id in self.window:
                    logger.debug("ingest.duplicate", update_id=update.update_id)
                    continue
                self.window.advance(update.update_id)
                text = self._accepted_text(update)
                if text is None:
                    logger.debug(
                        "ingest.discarded",
                        update_id=update.update_id,
                        sender_id=update.sender_id,
                    )
                    continue
                self.window.remember(update.update_id)
                message_id = await self._queue.enqueue(Direction.INBOUND, text)
                accepted += 1
                self._observer(
                    MessageReceived(
                        update_id=update.update_id,
                        message_id=message_id,
                        content=text,
                    )
                )
        return accepted

    def start(self, task_group: TaskGroup) -> None:
        """Move to POLLING and spawn the poll task. No-op if already polling."""
        if self._state is LoopState.POLLING:
            return
        self._state = LoopState.POLLING
        self._scope = anyio.CancelScope()
        task_group.start_soon(self._run, self._scope)
        logger.info("ingest.started", offset=self.offset)

    async def run(self) -> None:
        """Poll until :meth:`stop` is called. For use as a task body."""
        if self._state is LoopState.POLLING:
            return
        self._state = LoopState.POLLING
        self._scope = anyio.CancelScope()
        await self._run(self._scope)

    async def _run(self, scope: anyio.CancelScope) -> None:
        with scope:
            while self._state is LoopState.POLLING:
                await self.poll_once()
                if self._state is not LoopState.POLLING:
                    break
                await anyio.sleep(self._next_delay_s)
        logger.info("ingest.stopped", offset=self.offset)

    def stop(self) -> None:
        """Move to STOPPED and cancel any pending wait. Idempotent."""
        if self._state is LoopState.STOPPED:
            return
        self._state = LoopState.STOPPED
        if self._scope is not None:
            self._scope.cancel()
            self._scope = None
