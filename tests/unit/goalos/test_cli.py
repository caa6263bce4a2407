"""Tests for the goalos command line"""

import re
from pathlib import Path
from typing import List, Optional

import pytest
from click.testing import CliRunner

from goalos.cli.main import cli
from goalos.config.settings import StoreSettings
from goalos.services.goal_service import GoalService


@pytest.fixture
def home(tmp_path: Path) -> Path:
    return tmp_path / "home"


@pytest.fixture
def invoke(home: Path):
    runner = CliRunner()

    def _invoke(*args: str, input: Optional[str] = None):
        return runner.invoke(cli, ["--home", str(home), *args], input=input)

    return _invoke


def _create(invoke, title: str = "Streaming API", extra: List[str] = ()) -> str:
    result = invoke(
        "goal", "create", title,
        "-c", "Clients poll",
        "-d", "Server pushes",
        "-p", "/work/api",
        *extra,
    )
    assert result.exit_code == 0, result.output
    match = re.search(r"Goal created: (goal_\w+)", result.output)
    assert match is not None
    return match.group(1)


def test_create_and_show(invoke, home: Path) -> None:
    goal_id = _create(invoke, extra=["-t", "api", "--criteria", "SSE endpoint live"])

    result = invoke("goal", "show", goal_id)

    assert result.exit_code == 0
    assert "Streaming API" in result.output
    assert "SSE endpoint live" in result.output

    goal = GoalService(StoreSettings(home=home)).get(goal_id)
    assert goal.tags == ["api"]
    assert len(goal.snapshots) == 1


def test_list_empty(invoke) -> None:
    result = invoke("goal", "list")

    assert result.exit_code == 0
    assert "No goals found" in result.output


def test_list_filters_by_status(invoke) -> None:
    first = _create(invoke, "First")
    _create(invoke, "Second")
    invoke("goal", "pause", first)

    result = invoke("goal", "list", "--status", "paused")

    assert result.exit_code == 0
    assert "Goals (showing 1)" in result.output


def test_progress_is_clamped(invoke, home: Path) -> None:
    goal_id = _create(invoke)

    result = invoke("goal", "progress", goal_id, "1.5")

    assert result.exit_code == 0
    assert "Progress: 100%" in result.output
    assert GoalService(StoreSettings(home=home)).get(goal_id).progress == 1.0


def test_missing_goal_exits_with_error(invoke) -> None:
    result = invoke("goal", "show", "goal_missing")

    assert result.exit_code == 1
    assert "Goal not found" in result.output


def test_invalid_transition_exits_with_error(invoke) -> None:
    goal_id = _create(invoke)
    invoke("goal", "complete", goal_id)

    result = invoke("goal", "pause", goal_id)

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_branch_switch_and_merge(invoke, home: Path) -> None:
    goal_id = _create(invoke)

    result = invoke("goal", "branch", goal_id, "try sse")
    assert result.exit_code == 0
    assert "Branch created: branch_try_sse" in result.output

    result = invoke("goal", "switch", goal_id, "branch_try_sse")
    assert result.exit_code == 0
    assert "Current branch: branch_try_sse" in result.output

    result = invoke("goal", "merge-branch", goal_id, "branch_try_sse", "--summary", "SSE works")
    assert result.exit_code == 0

    goal = GoalService(StoreSettings(home=home)).get(goal_id)
    assert goal.current_branch_id == "branch_main"
    assert goal.branch_ref("branch_try_sse").status.value == "merged"


def test_duplicate_branch_fails(invoke) -> None:
    goal_id = _create(invoke)
    invoke("goal", "branch", goal_id, "try sse")

    result = invoke("goal", "branch", goal_id, "try sse")

    assert result.exit_code == 1
    assert "Branch already exists" in result.output


def test_link_and_tree(invoke) -> None:
    parent = _create(invoke, "Parent")
    child = _create(invoke, "Child")

    result = invoke("goal", "link", child, parent, "--type", "parent")
    assert result.exit_code == 0

    result = invoke("goal", "tree", child)
    assert result.exit_code == 0
    assert parent in result.output


def test_purge_requires_known_goal(invoke) -> None:
    result = invoke("goal", "purge", "goal_missing", "--yes")

    assert result.exit_code == 1
    assert "Goal not found" in result.output


def test_index_rebuild_and_stats(invoke) -> None:
    _create(invoke, "First")
    _create(invoke, "Second")

    result = invoke("index", "rebuild")
    assert result.exit_code == 0
    assert "Index rebuilt: 2 goals" in result.output

    result = invoke("stats")
    assert result.exit_code == 0
    assert "Total goals: 2" in result.output


def test_project_create(invoke) -> None:
    result = invoke("project", "create", "api", "/work/api")

    assert result.exit_code == 0
    assert "Project: proj_api" in result.output


def test_session_focus_and_context(invoke) -> None:
    goal_id = _create(invoke)

    result = invoke("session", "focus", goal_id, "--text", "Heartbeat frames")
    assert result.exit_code == 0
    assert "Heartbeat frames" in result.output

    result = invoke("session", "context")
    assert result.exit_code == 0
    assert "## Resuming Previous Session" in result.output

    result = invoke("session", "context", "--detailed")
    assert result.exit_code == 0
    assert "**Focus:** Heartbeat frames" in result.output
