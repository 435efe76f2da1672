from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from notnow.settings import DEFAULT_SNAPSHOT_MAX_AGE, ConfigError, load_config, load_settings


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "notnow.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_settings_honours_home_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NOTNOW_HOME", str(tmp_path / "home"))
    settings = load_settings()

    assert settings.home_dir == tmp_path / "home"
    assert settings.log_dir == tmp_path / "home" / "logs"
    assert settings.config_path == tmp_path / "home" / "notnow.yaml"


def test_load_config_full(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
backend:
  type: github
  options:
    owner: acme
    repo: widgets
client_id: ci-runner
snapshot:
  max_age_seconds: 600
labels:
  sync: true
""",
    )
    config = load_config(path)

    assert config.backend["type"] == "github"
    assert config.backend["options"]["repo"] == "widgets"
    assert config.client_id == "ci-runner"
    assert config.snapshot_max_age == timedelta(minutes=10)
    assert config.extra == {"labels": {"sync": True}}


def test_load_config_defaults(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, "backend:\n  type: file\n  options:\n    path: issues.json\n"))

    assert config.client_id == "notnow"
    assert config.snapshot_max_age == DEFAULT_SNAPSHOT_MAX_AGE
    assert config.extra == {}


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("- just\n- a list\n", "root is not a mapping"),
        ("client_id: x\n", "backend is not a mapping"),
        ("backend:\n  options: {}\n", "backend.type must be a string"),
        ("backend:\n  type: file\nclient_id: ''\n", "client_id must be a non-empty string"),
        ("backend:\n  type: file\nsnapshot: []\n", "snapshot is not a mapping"),
        ("backend:\n  type: file\nsnapshot:\n  max_age_seconds: -5\n", "max_age_seconds"),
        ("backend:\n  type: file\nsnapshot:\n  max_age_seconds: true\n", "max_age_seconds"),
    ],
)
def test_load_config_rejects_invalid(tmp_path: Path, text: str, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        load_config(_write(tmp_path, text))


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="configuration missing"):
        load_config(tmp_path / "absent.yaml")
