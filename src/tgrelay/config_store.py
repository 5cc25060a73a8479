"""Raw TOML configuration I/O utilities.

Separates file I/O from validation so the settings layer only ever sees a
plain dictionary.
"""

from __future__ import annotations

import os
import shutil
import tomllib
from pathlib import Path
from typing import Any

import tomlkit

CONFIG_DIR = ".tgrelay"
CONFIG_FILE = "config.toml"
CONFIG_PATH_ENV = "TGRELAY_CONFIG"


def get_config_path() -> Path:
    """Get the path to the config file.

    ``TGRELAY_CONFIG`` overrides the default ``~/.tgrelay/config.toml``.
    """
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / CONFIG_DIR / CONFIG_FILE


def read_raw_toml(path: Path) -> dict[str, Any]:
    """Read raw TOML data from a file.

    Raises:
        FileNotFoundError: If the file does not exist
        tomllib.TOMLDecodeError: If the file is not valid TOML
    """
    with open(path, "rb") as f:
        return tomllib.load(f)


def write_raw_toml(data: dict[str, Any], path: Path) -> None:
    """Write raw TOML data to a file readable only by its owner.

    The file holds the bot token.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = tomlkit.dumps(data)
    path.write_text(content)
    path.chmod(0o600)


def backup_config(path: Path) -> Path | None:
    """Copy the config file aside before it is overwritten.

    Returns:
        Path to the backup file, or None if there was nothing to back up
    """
    if not path.exists():
        return None

    backup_path = path.with_suffix(".toml.bak")
    shutil.copy2(path, backup_path)
    return backup_path
