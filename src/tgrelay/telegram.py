"""Minimal Telegram Bot API client over httpx.

Only the three calls the relay needs: ``getUpdates``, ``sendMessage`` and
``getMe``. Every failure is raised as :class:`TelegramError`, a
:class:`TransportError`.
"""

from __future__ import annotations

from typing import Any

import httpx

from .errors import TransportError
from .logging import get_logger
from .model import Update

logger = get_logger(__name__)

API_BASE_URL = "https://api.telegram.org"

# Slack added to the long-poll timeout so httpx never gives up before Telegram does.
_POLL_TIMEOUT_SLACK_S = 10.0
_DEFAULT_TIMEOUT_S = 30.0


class TelegramError(TransportError):
    """The Bot API call failed."""

    def __init__(
        self,
        method: str,
        description: str,
        *,
        error_code: int | None = None,
    ) -> None:
        super().__init__(f"{method} failed: {description}")
        self.method = method
        self.description = description
        self.error_code = error_code


class TelegramRetryAfter(TelegramError):
    """Telegram asked us to back off (HTTP 429)."""

    def __init__(self, method: str, retry_after: float) -> None:
        super().__init__(
            method, f"retry after {retry_after}s", error_code=429
        )
        self.retry_after = retry_after


def retry_after_from_payload(payload: dict[str, Any]) -> float | None:
    params = payload.get("parameters")
    if isinstance(params, dict):
        retry_after = params.get("retry_after")
        if isinstance(retry_after, (int, float)):
            return float(retry_after)
    return None


def parse_update(raw: dict[str, Any]) -> Update:
    """Flatten a raw Bot API update into an :class:`Update`.

    Callers check that ``update_id`` is an int first.

    Updates that are not plain messages (edits, callbacks, channel posts) keep
    their id so the offset still advances past them.
    """
    message = raw.get("message")
    sender_id: int | None = None
    text: str | None = None
    if isinstance(message, dict):
        sender = message.get("from")
        if isinstance(sender, dict) and isinstance(sender.get("id"), int):
            sender_id = sender["id"]
        if isinstance(message.get("text"), str):
            text = message["text"]
    return Update(update_id=raw["update_id"], sender_id=sender_id, text=text)


def _has_update_id(raw: Any) -> bool:
    if not isinstance(raw, dict):
        return False
    update_id = raw.get("update_id")
    return isinstance(update_id, int) and not isinstance(update_id, bool)


class TelegramClient:
    """Async Bot API client.

    Args:
        token: Bot token from @BotFather
        client: Optional preconfigured ``httpx.AsyncClient`` (tests pass one
            built on ``httpx.MockTransport``); it is not closed by :meth:`close`
        base_url: API root, overridable for local Bot API servers
    """

    def __init__(
        self,
        token: str,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = API_BASE_URL,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base = f"{base_url.rstrip('/')}/bot{token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT_S)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout_s: float | None = None,
    ) -> Any:
        timeout = timeout_s if timeout_s is not None else _DEFAULT_TIMEOUT_S
        logger.debug("telegram.request", method=method, params=params)
        try:
            resp = await self._client.post(
                f"{self._base}/{method}", json=params or {}, timeout=timeout
            )
        except httpx.HTTPError as e:
            raise TelegramError(method, f"network error: {e}") from e

        try:
            payload = resp.json()
        except ValueError as e:
            raise TelegramError(
                method,
                f"invalid response (HTTP {resp.status_code})",
                error_code=resp.status_code,
            ) from e

        if not isinstance(payload, dict):
            raise TelegramError(method, "invalid response shape")

        if resp.status_code == 429 or payload.get("error_code") == 429:
            retry_after = retry_after_from_payload(payload)
            raise TelegramRetryAfter(method, retry_after or 5.0)

        if not payload.get("ok"):
            raise TelegramError(
                method,
                str(payload.get("description") or f"HTTP {resp.status_code}"),
                error_code=payload.get("error_code") or resp.status_code,
            )
        return payload.get("result")

    async def get_updates(
        self,
        offset: int,
        timeout_s: int = 10,
        limit: int = 100,
    ) -> list[Update]:
        result = await self._post(
            "getUpdates",
            {
                "offset": offset,
                "timeout": timeout_s,
                "limit": limit,
                "allowed_updates": ["message"],
            },
            timeout_s=timeout_s + _POLL_TIMEOUT_SLACK_S,
        )
        if not isinstance(result, list):
            raise TelegramError("getUpdates", "expected a list of updates")
        updates: list[Update] = []
        for raw in result:
            if not _has_update_id(raw):
                logger.warning("telegram.update_skipped", raw=raw)
                continue
            updates.append(parse_update(raw))
        return updates

    async def send_message(self, chat_id: int, text: str) -> dict[str, Any]:
        result = await self._post("sendMessage", {"chat_id": chat_id, "text": text})
        if not isinstance(result, dict):
            raise TelegramError("sendMessage", "expected a message object")
        return result

    async def get_me(self) -> dict[str, Any]:
        result = await self._post("getMe")
        if not isinstance(result, dict):
            raise TelegramError("getMe", "expected a user object")
        return result
