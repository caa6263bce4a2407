from pathlib import Path
from typing import Any, Dict

import pytest

from goalos.config.settings import StoreSettings
from goalos.models.branch import BranchCollisionPolicy
from goalos.services.goal_service import GoalService
from goalos.services.session_service import SessionService
from goalos.store.yaml_store import YamlStore


def goal_input(**overrides: Any) -> Dict[str, Any]:
    data = {
        "title": "Streaming API",
        "current_state": "Clients poll every 5s",
        "desired_state": "Server pushes updates",
        "project": "/work/api",
    }
    data.update(overrides)
    return data


@pytest.fixture
def settings(tmp_path: Path) -> StoreSettings:
    return StoreSettings(home=tmp_path / "home", device="test-device", lock_timeout_seconds=1.0)


@pytest.fixture
def suffix_settings(tmp_path: Path) -> StoreSettings:
    return StoreSettings(
        home=tmp_path / "home",
        device="test-device",
        branch_collision=BranchCollisionPolicy.SUFFIX,
        lock_timeout_seconds=1.0,
    )


@pytest.fixture
def store(settings: StoreSettings) -> YamlStore:
    return YamlStore(settings)


@pytest.fixture
def service(settings: StoreSettings) -> GoalService:
    return GoalService(settings)


@pytest.fixture
def sessions(service: GoalService) -> SessionService:
    return SessionService(goals=service)


@pytest.fixture
def make_input():
    """Factory for valid goal creation payloads"""
    return goal_input
