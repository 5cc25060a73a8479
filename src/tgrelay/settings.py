"""Pydantic settings for the relay.

This module provides:
- TOML file support (``~/.tgrelay/config.toml``)
- Environment variable support (TGRELAY__TELEGRAM__BOT_TOKEN, etc.), which
  overrides the file
- SecretStr for the bot token to prevent accidental logging
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import pydantic
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .config_store import get_config_path, read_raw_toml, write_raw_toml
from .errors import ConfigurationError
from .logging import get_logger
from .queue import DEFAULT_QUEUE_DB_PATH

logger = get_logger(__name__)


class TelegramSettings(BaseModel):
    """Telegram credentials and the single authorized user."""

    bot_token: SecretStr
    user_id: int = Field(gt=0)


class RelaySettings(BaseSettings):
    """Relay configuration.

    Environment variables use TGRELAY__ prefix with __ as nested delimiter:
    - TGRELAY__TELEGRAM__BOT_TOKEN -> telegram.bot_token
    - TGRELAY__TELEGRAM__USER_ID -> telegram.user_id
    - TGRELAY__QUEUE_DB_PATH -> queue_db_path
    """

    model_config = SettingsConfigDict(
        env_prefix="TGRELAY__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    telegram: TelegramSettings
    queue_db_path: Path = DEFAULT_QUEUE_DB_PATH
    log_level: str = "info"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # File values arrive as init kwargs; the environment wins over them.
        return (env_settings, init_settings)

    @property
    def bot_token(self) -> str:
        return self.telegram.bot_token.get_secret_value()

    @property
    def user_id(self) -> int:
        return self.telegram.user_id


def _parse_file(data: dict[str, Any]) -> dict[str, Any]:
    """Map the TOML layout onto RelaySettings fields."""
    values: dict[str, Any] = {}
    telegram = data.get("telegram")
    if isinstance(telegram, dict):
        values["telegram"] = {
            k: telegram[k] for k in ("bot_token", "user_id") if k in telegram
        }
    relay = data.get("relay")
    if isinstance(relay, dict):
        if "queue_db_path" in relay:
            values["queue_db_path"] = Path(relay["queue_db_path"]).expanduser()
        if "log_level" in relay:
            values["log_level"] = relay["log_level"]
    return values


def load_settings(config_path: Path | None = None) -> RelaySettings:
    """Load settings from the TOML file and the environment.

    Raises:
        ConfigurationError: if the file is unreadable or the bot token or
            user id are missing or invalid
    """
    if config_path is None:
        config_path = get_config_path()

    values: dict[str, Any] = {}
    if config_path.exists():
        try:
            values = _parse_file(read_raw_toml(config_path))
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error("settings.load_failed", path=str(config_path), error=str(e))
            raise ConfigurationError(f"cannot read {config_path}: {e}") from e

    try:
        return RelaySettings(**values)
    except pydantic.ValidationError as e:
        missing = sorted(
            ".".join(str(part) for part in err["loc"]) for err in e.errors()
        )
        hint = (
            ""
            if config_path.exists()
            else f" (no config at {config_path}; run 'tgrelay setup')"
        )
        raise ConfigurationError(
            f"invalid or missing settings: {', '.join(missing)}{hint}"
        ) from e


def save_settings(
    config_path: Path,
    *,
    bot_token: str,
    user_id: int,
    queue_db_path: Path | None = None,
) -> None:
    """Write a config file with the given credentials."""
    data: dict[str, Any] = {
        "telegram": {"bot_token": bot_token, "user_id": user_id},
    }
    if queue_db_path is not None:
        data["relay"] = {"queue_db_path": str(queue_db_path)}
    write_raw_toml(data, config_path)
    logger.info("settings.saved", path=str(config_path))
