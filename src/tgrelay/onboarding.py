"""Interactive setup for tgrelay.

Collects the bot token and the authorized user's id, checks the token against
Telegram and writes the config file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import anyio
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from .config_store import backup_config, get_config_path
from .errors import TransportError
from .logging import get_logger, suppress_logs
from .settings import save_settings
from .telegram import TelegramClient

logger = get_logger(__name__)
console = Console(stderr=True)


async def validate_bot_token(token: str) -> dict[str, Any] | None:
    """Validate bot token by calling Telegram getMe API.

    Returns:
        Bot info dict if valid, None otherwise
    """
    bot = TelegramClient(token)
    try:
        return await bot.get_me()
    except TransportError:
        return None
    finally:
        await bot.close()


async def detect_user_from_message(
    token: str, timeout_seconds: int = 60
) -> tuple[int, str] | None:
    """Wait for a private message to the bot to learn the sender's user id.

    Returns:
        Tuple of (user_id, message text) if detected, None on timeout
    """
    bot = TelegramClient(token)
    try:
        # Skip whatever is already pending so only a fresh message counts
        updates = await bot.get_updates(offset=0, timeout_s=0, limit=100)
        offset = max((u.update_id for u in updates), default=0) + 1

        deadline = anyio.current_time() + timeout_seconds
        while anyio.current_time() < deadline:
            remaining = int(deadline - anyio.current_time())
            if remaining <= 0:
                break
            updates = await bot.get_updates(
                offset=offset, timeout_s=min(remaining, 10), limit=100
            )
            for update in updates:
                offset = update.update_id + 1
                if update.sender_id is not None:
                    return (update.sender_id, update.text or "")
        return None
    finally:
        await bot.close()


def show_welcome() -> None:
    panel = Panel(
        "Let's connect your coding assistant to Telegram.",
        title="tgrelay setup",
        border_style="cyan",
        padding=(1, 2),
        expand=False,
    )
    console.print()
    console.print(panel)
    console.print()


def prompt_bot_token() -> str:
    """Prompt user for Telegram bot token with instructions."""
    console.print("[bold]Step 1:[/bold] Telegram Bot Token")
    console.print()
    console.print("To create a bot, talk to @BotFather on Telegram:")
    console.print("  1. Send /newbot")
    console.print("  2. Choose a name and username for your bot")
    console.print("  3. Copy the token BotFather gives you")
    console.print()

    token = Prompt.ask("[cyan]Enter your bot token[/cyan]", console=console)
    return token.strip()


def prompt_user_id(bot_username: str) -> int | None:
    """Ask for the user id, or None to detect it from a message."""
    console.print()
    console.print("[bold]Step 2:[/bold] Your Telegram user id")
    console.print()
    console.print(f"Only messages from this user are relayed from @{bot_username}.")
    console.print()

    choice = Prompt.ask(
        "Enter the user id manually or detect it?",
        choices=["manual", "detect"],
        default="detect",
        console=console,
    )
    if choice != "manual":
        return None

    while True:
        user_id = IntPrompt.ask("[cyan]Enter your user id[/cyan]", console=console)
        if user_id > 0:
            return user_id
        console.print("[red]Invalid user id. Must be a positive integer.[/red]")


def mask_token(bot_token: str) -> str:
    if len(bot_token) > 10:
        return bot_token[:5] + "..." + bot_token[-5:]
    return "***"


def show_config_preview(bot_token: str, user_id: int, config_path: Path) -> None:
    console.print()
    console.print("[bold]Configuration Preview:[/bold]")
    console.print()

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Bot Token", mask_token(bot_token))
    table.add_row("User ID", str(user_id))
    table.add_row("Config File", str(config_path))

    console.print(table)
    console.print()


def run_onboarding_sync(config_path: Path | None = None) -> Path | None:
    """Synchronous wrapper around :func:`run_onboarding`."""
    return anyio.run(run_onboarding, config_path)


async def run_onboarding(config_path: Path | None = None) -> Path | None:
    """Run the setup wizard.

    Info and debug logs are held back while prompting so they do not land in
    the middle of the questions.

    Returns:
        Path to the written config file, or None if cancelled
    """
    with suppress_logs():
        return await _run_wizard(config_path)


async def _run_wizard(config_path: Path | None) -> Path | None:
    if config_path is None:
        config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not Confirm.ask("Do you want to overwrite it?", console=console):
            return None

    show_welcome()

    bot_token = prompt_bot_token()
    if not bot_token:
        console.print("[red]Bot token is required.[/red]")
        return None

    console.print()
    console.print("Validating bot token...", end=" ")
    bot_info = await validate_bot_token(bot_token)
    if bot_info is None:
        console.print("[red]failed[/red]")
        console.print("[red]Invalid bot token. Please check and try again.[/red]")
        return None

    bot_username = bot_info.get("username", "bot")
    console.print(f"[green]connected to @{bot_username}[/green]")

    user_id = prompt_user_id(bot_username)
    if user_id is None:
        console.print()
        console.print(f"[cyan]Send any message to @{bot_username} now...[/cyan]")
        console.print("[dim](Waiting up to 60 seconds)[/dim]")
        try:
            detected = await detect_user_from_message(bot_token, timeout_seconds=60)
        except TransportError as e:
            console.print(f"[red]Telegram error: {e}[/red]")
            return None
        if detected is None:
            console.print("[red]Timeout waiting for message. Please try again.[/red]")
            return None
        user_id, _text = detected
        console.print(f"[green]Detected user id {user_id}[/green]")

    show_config_preview(bot_token, user_id, config_path)
    if not Confirm.ask("Save this configuration?", console=console):
        console.print("[yellow]Setup cancelled.[/yellow]")
        return None

    try:
        backup_config(config_path)
        save_settings(config_path, bot_token=bot_token, user_id=user_id)
    except OSError as e:
        console.print(f"[red]Error writing configuration: {e}[/red]")
        logger.exception("onboarding.save_failed")
        return None

    console.print()
    console.print(f"[green]Configuration saved to {config_path}[/green]")
    console.print()
    console.print("[bold]Next steps:[/bold]")
    console.print("  Run [cyan]tgrelay register[/cyan] to add the server to your MCP client")
    console.print()
    return config_path
