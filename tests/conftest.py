from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
SANDBOX_HOME = ROOT / ".test_place" / "global-home"
os.environ.setdefault("NOTNOW_HOME", str(SANDBOX_HOME))
os.environ.setdefault("NOTNOW_TELEMETRY", "0")
SANDBOX_HOME.mkdir(parents=True, exist_ok=True)
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from notnow.app.commands import HandlerServices, build_registry  # noqa: E402
from notnow.settings import RuntimeSettings  # noqa: E402

NOW = datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings(tmp_path: Path) -> RuntimeSettings:
    home = tmp_path / "home"
    return RuntimeSettings(
        home_dir=home,
        state_dir=home / "state",
        log_dir=home / "logs",
        config_path=home / "notnow.yaml",
        cli_version="0.3.0",
    )


@pytest.fixture
def registry(settings: RuntimeSettings):
    return build_registry(HandlerServices(settings=settings))
