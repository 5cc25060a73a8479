from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import anyio
import typer

from . import __version__
from .config_store import get_config_path
from .errors import ConfigurationError, StorageError, TransportError
from .logging import get_logger, setup_logging
from .queue import MessageQueue
from .relay import check_connection
from .settings import RelaySettings, load_settings
from .telegram import TelegramClient, TelegramError

logger = get_logger(__name__)

DEFAULT_MCP_CONFIG = Path.home() / ".cursor" / "mcp.json"
SERVER_KEY = "tgrelay"
TEST_MESSAGE = "Test message from tgrelay"


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


def _load_settings_or_exit(config: Path | None) -> RelaySettings:
    try:
        return load_settings(config)
    except ConfigurationError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)


def _server_entry() -> dict[str, Any]:
    return {"command": sys.executable, "args": ["-m", "tgrelay", "serve"]}


def register_server(mcp_config_path: Path, entry: dict[str, Any]) -> None:
    """Add or replace the tgrelay entry in an MCP client config.

    Other ``mcpServers`` entries and top-level keys are preserved.
    """
    data: dict[str, Any] = {}
    if mcp_config_path.exists():
        try:
            loaded = json.loads(mcp_config_path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"cannot parse {mcp_config_path}: {e}"
            ) from e
        if isinstance(loaded, dict):
            data = loaded
    servers = data.get("mcpServers")
    if not isinstance(servers, dict):
        servers = {}
    servers[SERVER_KEY] = entry
    data["mcpServers"] = servers
    mcp_config_path.parent.mkdir(parents=True, exist_ok=True)
    mcp_config_path.write_text(json.dumps(data, indent=2) + "\n")


async def _test_connection(settings: RelaySettings) -> str | None:
    bot = TelegramClient(settings.bot_token)
    try:
        return await check_connection(bot)
    finally:
        await bot.close()


async def _send_direct(settings: RelaySettings, text: str) -> None:
    bot = TelegramClient(settings.bot_token)
    try:
        await bot.send_message(settings.user_id, text)
    finally:
        await bot.close()


def _delivery_hints(error: TransportError) -> list[str]:
    """Explain the usual causes of a failed send to the configured user."""
    code = error.error_code if isinstance(error, TelegramError) else None
    if code == 400:
        return [
            "Chat not found. This usually means:",
            "  1. You haven't started a conversation with the bot (send /start)",
            "  2. The user id is incorrect",
        ]
    if code == 403:
        return [
            "Bot blocked or user not found. Make sure you have:",
            "  1. Started a conversation with the bot (send /start)",
            "  2. Not blocked the bot",
        ]
    return ["Make sure you have started a conversation with the bot first."]


def _send_or_exit(settings: RelaySettings, text: str, *, what: str) -> None:
    try:
        anyio.run(_send_direct, settings, text)
    except TransportError as e:
        typer.echo(f"✗ Failed to send {what}: {e}", err=True)
        for line in _delivery_hints(e):
            typer.echo(f"  {line}", err=True)
        raise typer.Exit(code=1)


async def _pending_count(settings: RelaySettings) -> int:
    async with await MessageQueue.open(settings.queue_db_path) as queue:
        return await queue.unprocessed_count()


app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Relay messages between an MCP host and you on Telegram.",
)


def _config_option() -> Any:
    return typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config.toml (defaults to ~/.tgrelay/config.toml).",
    )


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log Telegram requests and queue operations.",
    ),
) -> None:
    """tgrelay CLI. Runs the MCP server when no command is given."""
    ctx.obj = {"debug": debug}
    if ctx.invoked_subcommand is None:
        _serve(config=None, debug=debug)
        raise typer.Exit()


def _serve(*, config: Path | None, debug: bool) -> None:
    from .server import serve

    settings = _load_settings_or_exit(config)
    setup_logging(debug=debug, level=settings.log_level)
    try:
        serve(settings)
    except KeyboardInterrupt:
        logger.info("shutdown.interrupted")
        raise typer.Exit(code=130)
    except StorageError as e:
        logger.error("server.storage_failed", error=str(e))
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)


@app.command("serve", help="Run the MCP server on stdio.")
def serve_command(ctx: typer.Context, config: Path = _config_option()) -> None:
    _serve(config=config, debug=bool(ctx.obj and ctx.obj.get("debug")))


@app.command("setup", help="Run interactive setup wizard.")
def setup_command(config: Path = _config_option()) -> None:
    from .onboarding import run_onboarding_sync

    setup_logging(level="warning")
    result = run_onboarding_sync(config)
    if result is None:
        raise typer.Exit(code=1)


@app.command("test", help="Check the bot token and send a test message.")
def test_command(config: Path = _config_option()) -> None:
    settings = _load_settings_or_exit(config)
    setup_logging(level="error")
    username = anyio.run(_test_connection, settings)
    if username is None:
        typer.echo("✗ Failed to connect to Telegram", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✓ Connected to Telegram bot: @{username}")
    _send_or_exit(settings, TEST_MESSAGE, what="test message")
    typer.echo(f"✓ Test message sent to user {settings.user_id}")


@app.command("send", help="Send a message straight to the configured user.")
def send_command(
    message: str = typer.Argument(..., help="Text to send."),
    config: Path = _config_option(),
) -> None:
    settings = _load_settings_or_exit(config)
    setup_logging(level="error")
    _send_or_exit(settings, message, what="message")
    typer.echo(f"✓ Message sent: {message}")


@app.command("status", help="Show how many messages are waiting in the queue.")
def status_command(config: Path = _config_option()) -> None:
    settings = _load_settings_or_exit(config)
    setup_logging(level="warning")
    try:
        pending = anyio.run(_pending_count, settings)
    except StorageError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Config: {config or get_config_path()}")
    typer.echo(f"Queue: {settings.queue_db_path}")
    typer.echo(f"Pending messages: {pending}")


@app.command("register", help="Register the server with an MCP client.")
def register_command(
    mcp_config: Path = typer.Option(
        DEFAULT_MCP_CONFIG,
        "--mcp-config",
        help="MCP client config file to update.",
    ),
) -> None:
    try:
        register_server(mcp_config, _server_entry())
    except ConfigurationError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✓ MCP server registered in {mcp_config}")
    typer.echo("Restart your MCP client to pick up the new server.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
