import sys
from pathlib import Path

import pytest
import structlog

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parent))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_structlog():
    """Reset structlog configuration before each test to avoid caching issues."""
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point config lookup at a temp file and clear TGRELAY__ env vars."""
    import os

    for key in list(os.environ):
        if key.startswith("TGRELAY"):
            monkeypatch.delenv(key, raising=False)
    config_path = tmp_path / "config.toml"
    monkeypatch.setenv("TGRELAY_CONFIG", str(config_path))
    return config_path
