"""Tests for the httpx Telegram client."""

from __future__ import annotations

import json

import httpx
import pytest

from tgrelay.errors import TransportError
from tgrelay.model import Update
from tgrelay.telegram import (
    TelegramClient,
    TelegramError,
    TelegramRetryAfter,
    parse_update,
    retry_after_from_payload,
)

TOKEN = "123:abcDEF_ghij"


def _client(handler) -> tuple[TelegramClient, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramClient(TOKEN, client=http_client), http_client


def _ok(request: httpx.Request, result) -> httpx.Response:
    return httpx.Response(200, json={"ok": True, "result": result}, request=request)


class TestParseUpdate:
    def test_text_message(self) -> None:
        raw = {
            "update_id": 5,
            "message": {"message_id": 1, "from": {"id": 42}, "text": "hello"},
        }
        assert parse_update(raw) == Update(update_id=5, sender_id=42, text="hello")

    def test_message_without_text(self) -> None:
        raw = {"update_id": 6, "message": {"from": {"id": 42}, "photo": []}}
        assert parse_update(raw) == Update(update_id=6, sender_id=42, text=None)

    def test_non_message_update(self) -> None:
        raw = {"update_id": 7, "edited_message": {"text": "x"}}
        assert parse_update(raw) == Update(update_id=7)


class TestRetryAfterFromPayload:
    def test_reads_parameters(self) -> None:
        assert retry_after_from_payload({"parameters": {"retry_after": 3}}) == 3.0

    def test_missing(self) -> None:
        assert retry_after_from_payload({}) is None


class TestGetUpdates:
    @pytest.mark.anyio
    async def test_sends_offset_timeout_and_limit(self) -> None:
        seen: list[tuple[str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.path, json.loads(request.read())))
            return _ok(
                request,
                [
                    {"update_id": 10, "message": {"from": {"id": 42}, "text": "a"}},
                    {"update_id": 11, "message": {"from": {"id": 7}, "text": "b"}},
                ],
            )

        client, http_client = _client(handler)
        try:
            updates = await client.get_updates(offset=10, timeout_s=5, limit=50)
        finally:
            await client.close()
            await http_client.aclose()

        path, params = seen[0]
        assert path == f"/bot{TOKEN}/getUpdates"
        assert params["offset"] == 10
        assert params["timeout"] == 5
        assert params["limit"] == 50
        assert [u.update_id for u in updates] == [10, 11]
        assert updates[1].sender_id == 7

    @pytest.mark.anyio
    async def test_skips_malformed_entries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _ok(request, [{"no_id": True}, {"update_id": 3}])

        client, http_client = _client(handler)
        try:
            updates = await client.get_updates(offset=1)
        finally:
            await http_client.aclose()

        assert updates == [Update(update_id=3)]

    @pytest.mark.anyio
    async def test_skips_non_integer_update_ids(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _ok(
                request,
                [
                    {"update_id": "x"},
                    {"update_id": None},
                    {"update_id": True},
                    {"update_id": 4.5},
                    {"update_id": 8, "message": {"from": {"id": 1}, "text": "a"}},
                ],
            )

        client, http_client = _client(handler)
        try:
            updates = await client.get_updates(offset=1)
        finally:
            await http_client.aclose()

        assert updates == [Update(update_id=8, sender_id=1, text="a")]


class TestErrors:
    @pytest.mark.anyio
    async def test_api_error_raises_telegram_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                401,
                json={"ok": False, "error_code": 401, "description": "Unauthorized"},
                request=request,
            )

        client, http_client = _client(handler)
        try:
            with pytest.raises(TelegramError) as exc_info:
                await client.get_me()
        finally:
            await http_client.aclose()

        assert exc_info.value.error_code == 401
        assert exc_info.value.description == "Unauthorized"
        assert isinstance(exc_info.value, TransportError)

    @pytest.mark.anyio
    async def test_rate_limit_raises_retry_after(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                429,
                json={
                    "ok": False,
                    "error_code": 429,
                    "description": "Too Many Requests",
                    "parameters": {"retry_after": 7},
                },
                request=request,
            )

        client, http_client = _client(handler)
        try:
            with pytest.raises(TelegramRetryAfter) as exc_info:
                await client.send_message(42, "hi")
        finally:
            await http_client.aclose()

        assert exc_info.value.retry_after == 7.0

    @pytest.mark.anyio
    async def test_network_error_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        client, http_client = _client(handler)
        try:
            with pytest.raises(TelegramError):
                await client.get_updates(offset=1)
        finally:
            await http_client.aclose()

    @pytest.mark.anyio
    async def test_non_json_body_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway", request=request)

        client, http_client = _client(handler)
        try:
            with pytest.raises(TelegramError) as exc_info:
                await client.get_me()
        finally:
            await http_client.aclose()

        assert exc_info.value.error_code == 502


class TestSendMessage:
    @pytest.mark.anyio
    async def test_posts_chat_and_text(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.read()))
            return _ok(request, {"message_id": 99})

        client, http_client = _client(handler)
        try:
            result = await client.send_message(42, "hello")
        finally:
            await http_client.aclose()

        assert bodies == [{"chat_id": 42, "text": "hello"}]
        assert result == {"message_id": 99}


def test_empty_token_rejected() -> None:
    with pytest.raises(ValueError):
        TelegramClient("")
