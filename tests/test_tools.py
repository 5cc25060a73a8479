"""Tests for tgrelay.tools module."""

from __future__ import annotations

from pathlib import Path

import pytest

from tgrelay.errors import ValidationError
from tgrelay.model import Direction
from tgrelay.queue import MessageQueue
from tgrelay.tools import RelayTools, format_messages


@pytest.fixture
async def queue(tmp_path: Path):
    q = await MessageQueue.open(tmp_path / "queue.db")
    yield q
    await q.close()


class TestFormatMessages:
    def test_no_messages(self) -> None:
        assert format_messages([]) == "No new messages"

    def test_numbered_list(self) -> None:
        assert format_messages(["a", "b"]) == "Received messages:\n1. a\n2. b"


class TestSendMessage:
    @pytest.mark.anyio
    async def test_enqueues_outbound(self, queue: MessageQueue) -> None:
        result = await RelayTools(queue).send_message("hi there")

        assert result == "Message queued successfully: hi there"
        head = await queue.peek()
        assert head is not None
        assert head.direction is Direction.OUTBOUND
        assert head.content == "hi there"

    @pytest.mark.anyio
    @pytest.mark.parametrize("text", ["", None, 5])
    async def test_rejects_invalid_text(self, queue: MessageQueue, text) -> None:
        with pytest.raises(ValidationError):
            await RelayTools(queue).send_message(text)
        assert await queue.unprocessed_count() == 0


class TestGetMessages:
    @pytest.mark.anyio
    async def test_empty_queue(self, queue: MessageQueue) -> None:
        assert await RelayTools(queue).get_messages() == []

    @pytest.mark.anyio
    async def test_returns_inbound_in_order(self, queue: MessageQueue) -> None:
        for text in ["one", "two", "three"]:
            await queue.enqueue(Direction.INBOUND, text)

        assert await RelayTools(queue).get_messages() == ["one", "two", "three"]
        assert await queue.unprocessed_count() == 0

    @pytest.mark.anyio
    async def test_respects_count(self, queue: MessageQueue) -> None:
        for text in ["one", "two", "three"]:
            await queue.enqueue(Direction.INBOUND, text)

        tools = RelayTools(queue)
        assert await tools.get_messages(2) == ["one", "two"]
        assert await tools.get_messages(2) == ["three"]

    @pytest.mark.anyio
    async def test_large_count_has_no_ceiling(self, queue: MessageQueue) -> None:
        for i in range(150):
            await queue.enqueue(Direction.INBOUND, f"m{i}")

        contents = await RelayTools(queue).get_messages(150)

        assert len(contents) == 150
        assert contents[0] == "m0" and contents[-1] == "m149"
        assert await queue.unprocessed_count() == 0

    @pytest.mark.anyio
    async def test_stops_at_outbound_head(self, queue: MessageQueue) -> None:
        await queue.enqueue(Direction.INBOUND, "first")
        await queue.enqueue(Direction.OUTBOUND, "reply")
        await queue.enqueue(Direction.INBOUND, "second")

        assert await RelayTools(queue).get_messages() == ["first"]
        head = await queue.peek()
        assert head is not None and head.content == "reply"

    @pytest.mark.anyio
    async def test_outbound_head_blocks_fetch(self, queue: MessageQueue) -> None:
        await queue.enqueue(Direction.OUTBOUND, "reply")
        await queue.enqueue(Direction.INBOUND, "waiting")

        assert await RelayTools(queue).get_messages() == []
        assert await queue.unprocessed_count() == 2

    @pytest.mark.anyio
    @pytest.mark.parametrize("count", [0, -1, True, "3"])
    async def test_rejects_bad_count(self, queue: MessageQueue, count) -> None:
        with pytest.raises(ValidationError):
            await RelayTools(queue).get_messages(count)
