"""MCP server exposing the relay's two tools over stdio."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from . import __version__
from .errors import StorageError, ValidationError
from .logging import get_logger
from .relay import Relay, open_relay
from .settings import RelaySettings
from .tools import DEFAULT_MESSAGE_COUNT, format_messages
from .transport import RelayTransport

logger = get_logger(__name__)

SERVER_NAME = "tgrelay"

INSTRUCTIONS = (
    "Relay for talking to the user over Telegram. "
    "Use send_telegram_message to send them text and get_telegram_messages "
    "to read what they have sent since the last call."
)


class _RelayHandle:
    """Holds the running relay between lifespan startup and shutdown."""

    def __init__(self) -> None:
        self.relay: Relay | None = None

    def get(self) -> Relay:
        if self.relay is None:
            raise ToolError("relay is not running")
        return self.relay


def _lifespan_factory(
    settings: RelaySettings,
    handle: _RelayHandle,
    transport: RelayTransport | None,
) -> Callable[[FastMCP], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastMCP) -> AsyncIterator[None]:
        async with open_relay(settings, transport=transport) as relay:
            handle.relay = relay
            try:
                yield
            finally:
                handle.relay = None

    return lifespan


def build_mcp_server(
    settings: RelaySettings,
    *,
    transport: RelayTransport | None = None,
) -> FastMCP:
    """Create the FastMCP server; the relay runs for the server's lifetime."""
    handle = _RelayHandle()
    mcp = FastMCP(
        name=SERVER_NAME,
        version=__version__,
        instructions=INSTRUCTIONS,
        lifespan=_lifespan_factory(settings, handle, transport),
    )

    @mcp.tool(
        name="send_telegram_message",
        description="Send a message to the user via Telegram",
    )
    async def send_telegram_message(message: str) -> str:
        """
        Args:
            message: The message content to send
        """
        try:
            return await handle.get().tools.send_message(message)
        except (ValidationError, StorageError) as e:
            raise ToolError(f"Failed to queue message: {e}") from e

    @mcp.tool(
        name="get_telegram_messages",
        description="Get pending messages from the Telegram user",
    )
    async def get_telegram_messages(count: int = DEFAULT_MESSAGE_COUNT) -> str:
        """
        Args:
            count: Maximum number of messages to retrieve (default: 10)
        """
        try:
            contents = await handle.get().tools.get_messages(count)
        except (ValidationError, StorageError) as e:
            raise ToolError(f"Failed to read messages: {e}") from e
        return format_messages(contents)

    return mcp


def serve(settings: RelaySettings) -> None:
    """Run the MCP server on stdio until the host disconnects."""
    mcp = build_mcp_server(settings)
    logger.info("server.starting", name=SERVER_NAME, version=__version__)
    mcp.run(transport="stdio", show_banner=False)
