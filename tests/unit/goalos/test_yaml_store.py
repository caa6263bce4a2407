import pytest
import yaml

from goalos.core.errors import SchemaError, ValidationError
from goalos.index.builder import build_index
from goalos.models.goal import create_goal, update_goal
from goalos.models.project import add_goal_to_project, create_project
from goalos.models.session_state import update_session_state
from goalos.models.snapshot import SnapshotTrigger
from goalos.store.yaml_store import YamlStore
from goalos.versioning import compute_changes, create_branch, create_snapshot


def test_goal_round_trip(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input(tags=["api", "sse"], verification={"criteria": ["200 OK"]}))
    store.save_goal(goal)

    assert store.load_goal(goal.id) == goal
    assert store.paths.active_goal(goal.id).exists()


def test_snapshot_round_trip(store: YamlStore, make_input) -> None:
    before = create_goal(make_input())
    after = update_goal(before, {"progress": 0.5})
    snapshot = create_snapshot(
        after,
        "Progress updated",
        "Progress: 0% → 50%",
        SnapshotTrigger.AUTO_PROGRESS,
        compute_changes(before, after),
    )
    store.save_snapshot(snapshot)

    loaded = store.load_snapshot(after.id, snapshot.id)
    assert loaded == snapshot
    assert loaded.changes[0].from_ == 0.0

    raw = yaml.safe_load(store.paths.snapshot(after.id, snapshot.id).read_text(encoding="utf-8"))
    assert raw["changes"][0]["from"] == 0.0
    assert raw["schema_version"] == 1


def test_branch_round_trip(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    branch = create_branch(goal, "Try SSE", "server-sent events")
    store.save_branch(branch)

    assert store.load_branch(goal.id, branch.id) == branch
    assert store.list_branches(goal.id) == [branch.id]
    assert [b.id for b in store.load_all_branches(goal.id)] == [branch.id]


def test_project_round_trip(store: YamlStore) -> None:
    project = create_project({"name": "API", "path": "/work/api/", "aliases": ["/mnt/api"]})
    project = add_goal_to_project(project, "goal_1", "paused")
    store.save_project(project)

    loaded = store.load_project(project.id)
    assert loaded == project
    assert loaded.path == "/work/api"
    assert store.find_project_by_path("/mnt/api/src").id == project.id
    assert store.find_project_by_path("/elsewhere") is None


def test_missing_records_are_absent(store: YamlStore) -> None:
    assert store.load_goal("goal_missing") is None
    assert store.load_snapshot("goal_missing", "snap_missing") is None
    assert store.load_branch("goal_missing", "branch_missing") is None
    assert store.load_project("proj_missing") is None
    assert store.load_index() is None
    assert store.list_goals() == []
    assert store.list_snapshots("goal_missing") == []


def test_goal_sub_areas_are_created_lazily(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    store.save_goal(goal)

    assert not store.paths.goal_snapshots_dir(goal.id).exists()
    assert not store.paths.goal_branches_dir(goal.id).exists()

    store.save_snapshot(create_snapshot(goal, "first"))
    assert store.paths.goal_snapshots_dir(goal.id).is_dir()


def test_snapshots_listed_chronologically(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    created = [create_snapshot(goal, f"event {i}") for i in range(5)]
    for snapshot in reversed(created):
        store.save_snapshot(snapshot)

    assert store.list_snapshots(goal.id) == [s.id for s in created]
    assert [s.event for s in store.load_all_snapshots(goal.id)] == [f"event {i}" for i in range(5)]


def test_archive_scenario(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    store.save_goal(goal)

    assert store.archive_goal(goal.id) is True
    assert store.load_goal(goal.id) == goal
    assert store.is_archived(goal.id)
    assert goal.id not in store.list_goals(include_archived=False)
    assert goal.id in store.list_goals(include_archived=True)

    # only in archived now
    assert store.archive_goal(goal.id) is False
    assert store.archive_goal("goal_missing") is False


def test_saving_archived_goal_keeps_it_archived(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    store.save_goal(goal)
    store.archive_goal(goal.id)

    store.save_goal(update_goal(goal, {"description": "edited"}))

    assert not store.paths.active_goal(goal.id).exists()
    assert store.load_goal(goal.id).description == "edited"


def test_delete_goal_removes_everything(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    store.save_goal(goal)
    store.save_snapshot(create_snapshot(goal, "first"))
    store.save_branch(create_branch(goal, "alt"))

    assert store.delete_goal(goal.id) is True
    assert store.load_goal(goal.id) is None
    assert not store.paths.goal_snapshots_dir(goal.id).exists()
    assert not store.paths.goal_branches_dir(goal.id).exists()
    assert store.delete_goal(goal.id) is False


def test_delete_per_entity_kind(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    snapshot = create_snapshot(goal, "first")
    branch = create_branch(goal, "alt")
    project = create_project({"name": "API", "path": "/work/api"})
    store.save_snapshot(snapshot)
    store.save_branch(branch)
    store.save_project(project)

    assert store.delete_snapshot(goal.id, snapshot.id) is True
    assert store.delete_branch(goal.id, branch.id) is True
    assert store.delete_project(project.id) is True
    assert store.load_snapshot(goal.id, snapshot.id) is None
    assert store.load_branch(goal.id, branch.id) is None
    assert store.load_project(project.id) is None
    assert store.delete_project(project.id) is False


@pytest.mark.parametrize("bad_id", ["", "../escape", "a/b", "a\\b", ".hidden"])
def test_record_ids_cannot_escape_their_directory(store: YamlStore, bad_id: str) -> None:
    with pytest.raises(ValidationError):
        store.load_goal(bad_id)


def test_unknown_schema_version_fails_closed(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    path = store.save_goal(goal)

    document = yaml.safe_load(path.read_text(encoding="utf-8"))
    document["schema_version"] = 2
    path.write_text(yaml.safe_dump(document), encoding="utf-8")

    with pytest.raises(SchemaError):
        store.load_goal(goal.id)


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "schema_version: 1\ntitle: missing everything else\n",
        "schema_version: 1\nid: [unclosed\n",
    ],
)
def test_malformed_record_raises_schema_error(store: YamlStore, content: str) -> None:
    path = store.paths.active_goal("goal_bad")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")

    with pytest.raises(SchemaError):
        store.load_goal("goal_bad")


def test_session_state_defaults_and_round_trip(store: YamlStore) -> None:
    state = store.load_session_state()

    assert state.active_context is None
    assert state.last_device == "test-device"

    state = update_session_state(state, session="sess-1", goal="goal_1", focus="wiring SSE")
    store.save_session_state(state)

    loaded = store.load_session_state()
    assert loaded == state
    assert loaded.active_context.focus == "wiring SSE"


def test_index_round_trip(store: YamlStore, make_input) -> None:
    parent = create_goal(make_input(title="Parent"))
    child = create_goal(make_input(title="Child", parent=parent.id))
    index = build_index([parent, child])

    store.save_index(index)

    assert store.load_index() == index
    assert '"from"' in store.paths.index_file.read_text(encoding="utf-8")


def test_index_with_unknown_schema_version(store: YamlStore) -> None:
    path = store.paths.index_file
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('{"schema_version": 7, "generated": "x"}', encoding="utf-8")

    with pytest.raises(SchemaError):
        store.load_index()


def test_writes_leave_no_temp_files(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    for i in range(3):
        store.save_goal(update_goal(goal, {"progress": i / 10}))

    leftovers = [p.name for p in store.paths.active_dir.iterdir() if p.suffix != ".yaml"]
    assert leftovers == []
