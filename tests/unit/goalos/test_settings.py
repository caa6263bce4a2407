"""Tests for StoreSettings resolution and persistence"""

import json
from pathlib import Path

import pytest

from goalos.config.settings import StoreSettings, load_settings, save_settings
from goalos.core.errors import ValidationError
from goalos.models.branch import BranchCollisionPolicy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in ("GOALOS_HOME", "GOALOS_ACTOR", "GOALOS_BRANCH_COLLISION"):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path: Path) -> None:
    settings = StoreSettings.resolve(home=tmp_path)

    assert settings.home == tmp_path
    assert settings.actor == "main"
    assert settings.branch_collision == BranchCollisionPolicy.FAIL
    assert settings.lock_timeout_seconds == 10.0


def test_home_from_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GOALOS_HOME", str(tmp_path / "env-home"))

    assert StoreSettings.resolve().home == tmp_path / "env-home"
    assert StoreSettings.resolve(home=tmp_path).home == tmp_path


def test_resolution_order(monkeypatch, tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(
        json.dumps({"actor": "file-actor", "branch_collision": "suffix", "lock_timeout_seconds": 2}),
        encoding="utf-8",
    )

    from_file = StoreSettings.resolve(home=tmp_path)
    assert from_file.actor == "file-actor"
    assert from_file.branch_collision == BranchCollisionPolicy.SUFFIX
    assert from_file.lock_timeout_seconds == 2.0

    monkeypatch.setenv("GOALOS_ACTOR", "env-actor")
    assert StoreSettings.resolve(home=tmp_path).actor == "env-actor"
    assert StoreSettings.resolve(home=tmp_path, actor="cli-actor").actor == "cli-actor"


def test_settings_file_cannot_move_home(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(json.dumps({"home": "/elsewhere"}), encoding="utf-8")

    assert StoreSettings.resolve(home=tmp_path).home == tmp_path


def test_invalid_value_raises(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GOALOS_BRANCH_COLLISION", "overwrite")

    with pytest.raises(ValidationError):
        StoreSettings.resolve(home=tmp_path)


def test_unreadable_settings_file_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text("{broken", encoding="utf-8")

    assert load_settings(tmp_path) == {}
    assert StoreSettings.resolve(home=tmp_path).actor == "main"


def test_save_and_reload(tmp_path: Path) -> None:
    settings = StoreSettings(home=tmp_path, actor="agent-7", branch_collision=BranchCollisionPolicy.SUFFIX)

    path = save_settings(settings)

    assert path == tmp_path / "settings.json"
    reloaded = StoreSettings.resolve(home=tmp_path)
    assert reloaded.actor == "agent-7"
    assert reloaded.branch_collision == BranchCollisionPolicy.SUFFIX
