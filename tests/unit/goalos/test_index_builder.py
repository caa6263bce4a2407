import pytest

from goalos.core.errors import StorageError
from goalos.index.builder import IndexBuilder, build_index
from goalos.models.goal import create_goal, update_goal
from goalos.models.index import EdgeType
from goalos.store.yaml_store import YamlStore


def _graph(make_input):
    parent = create_goal(make_input(title="Realtime", tags=["api"]))
    child = create_goal(make_input(title="SSE", tags=["api", "sse"], parent=parent.id))
    parent = parent.model_copy(update={"children": [child.id]})
    other = create_goal(make_input(title="Docs", project="/work/docs"))
    other = other.model_copy(update={"depends_on": [child.id], "informs": [parent.id], "evolved_from": parent.id})
    return parent, child, other


def test_build_index_groups_and_entries(make_input) -> None:
    parent, child, other = _graph(make_input)
    index = build_index([other, child, parent])

    assert set(index.goals) == {parent.id, child.id, other.id}
    assert index.goals[child.id].parent == parent.id
    assert index.goals[parent.id].children == [child.id]
    assert sorted(index.by_status["active"]) == sorted([parent.id, child.id, other.id])
    assert index.by_project["/work/docs"] == [other.id]
    assert sorted(index.by_tag["api"]) == sorted([parent.id, child.id])
    assert index.by_tag["sse"] == [child.id]


def test_build_index_edges_are_not_deduplicated(make_input) -> None:
    parent, child, other = _graph(make_input)
    index = build_index([parent, child, other])

    edges = {(e.from_, e.to, e.type) for e in index.graph.edges}
    assert (parent.id, child.id, EdgeType.PARENT) in edges
    assert (parent.id, child.id, EdgeType.CHILD) in edges
    assert (other.id, child.id, EdgeType.DEPENDS_ON) in edges
    assert (other.id, parent.id, EdgeType.INFORMS) in edges
    assert (parent.id, other.id, EdgeType.EVOLVED_FROM) in edges
    assert len(index.graph.edges) == 5


def test_build_index_is_deterministic(make_input) -> None:
    goals = list(_graph(make_input))

    first = build_index(goals).model_dump(exclude={"generated"})
    second = build_index(list(reversed(goals))).model_dump(exclude={"generated"})

    assert first == second


def test_archived_goals_are_indexed(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    done = update_goal(create_goal(make_input(title="Old")), {"status": "completed"})
    store.save_goal(goal)
    store.save_goal(done)
    store.archive_goal(done.id)

    index = IndexBuilder(store).rebuild()

    assert set(index.goals) == {goal.id, done.id}
    assert index.by_status["completed"] == [done.id]


def test_get_index_populates_when_missing(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    store.save_goal(goal)
    builder = IndexBuilder(store)

    assert not store.paths.index_file.exists()
    index = builder.get_index()

    assert goal.id in index.goals
    assert store.paths.index_file.exists()


def test_get_index_returns_cached_even_if_stale(store: YamlStore, make_input) -> None:
    builder = IndexBuilder(store)
    builder.rebuild()

    store.save_goal(create_goal(make_input()))

    assert builder.get_index().goals == {}
    assert len(builder.rebuild().goals) == 1


def test_failed_rebuild_keeps_previous_index(monkeypatch, store: YamlStore, make_input) -> None:
    first = create_goal(make_input(title="First"))
    store.save_goal(first)
    builder = IndexBuilder(store)
    builder.rebuild()
    store.save_goal(create_goal(make_input(title="Second")))

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("goalos.store.yaml_store.os.replace", failing_replace)

    with pytest.raises(StorageError):
        builder.rebuild()

    assert list(store.load_index().goals) == [first.id]
    assert list(store.paths.goals_dir.glob(".index.json.*.tmp")) == []


def test_save_raises_storage_error_when_write_fails(monkeypatch, store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())

    def failing_fsync(fd):
        raise OSError("read-only file system")

    monkeypatch.setattr("goalos.store.yaml_store.os.fsync", failing_fsync)

    with pytest.raises(StorageError):
        store.save_goal(goal)

    assert store.load_goal(goal.id) is None
    assert list(store.paths.active_dir.glob("*.tmp")) == []
