import sys

import pytest

from goalos.core.errors import CycleDetectedError
from goalos.index.builder import IndexBuilder, build_index
from goalos.index.query import QueryEngine
from goalos.models.goal import create_goal, update_goal
from goalos.store.yaml_store import YamlStore


def _engine(store: YamlStore, *goals) -> QueryEngine:
    for goal in goals:
        store.save_goal(goal)
    builder = IndexBuilder(store)
    builder.rebuild()
    return QueryEngine(builder)


def _tree(make_input):
    root = create_goal(make_input(title="Platform rewrite"))
    middle = create_goal(make_input(title="Realtime API", parent=root.id, tags=["api", "realtime"]))
    leaf = create_goal(make_input(title="SSE endpoint", parent=middle.id, tags=["api"]))
    sibling = create_goal(make_input(title="Auth", parent=root.id, project="/work/auth", tags=["realtime"]))
    return root, middle, leaf, sibling


def test_lookups(store: YamlStore, make_input) -> None:
    root, middle, leaf, sibling = _tree(make_input)
    paused = update_goal(sibling, {"status": "paused"})
    query = _engine(store, root, middle, leaf, paused)

    assert query.by_status("paused") == [sibling.id]
    assert sibling.id not in query.active_goals()
    assert query.by_project("/work/auth") == [sibling.id]
    assert sorted(query.by_tag("api")) == sorted([middle.id, leaf.id])
    assert query.by_tag("unknown") == []
    assert query.by_status("blocked") == []
    assert query.by_project("/nowhere") == []


def test_by_tags_intersection(store: YamlStore, make_input) -> None:
    query = _engine(store, *_tree(make_input))

    both = query.by_tags(["api", "realtime"])
    assert len(both) == 1
    assert store.load_goal(both[0]).title == "Realtime API"
    assert query.by_tags([]) == []
    assert query.by_tags(["api", "missing"]) == []


def test_graph_walks(store: YamlStore, make_input) -> None:
    root, middle, leaf, sibling = _tree(make_input)
    query = _engine(store, root, middle, leaf, sibling)

    assert sorted(query.children_of(root.id)) == sorted([middle.id, sibling.id])
    assert query.parent_of(leaf.id) == middle.id
    assert query.parent_of(root.id) is None
    assert query.parent_of("goal_missing") is None
    assert query.ancestors_of(leaf.id) == [middle.id, root.id]
    assert query.ancestors_of(root.id) == []
    assert sorted(query.descendants_of(root.id)) == sorted([middle.id, leaf.id, sibling.id])
    assert query.descendants_of(leaf.id) == []


def test_walks_detect_cycles(store: YamlStore, make_input) -> None:
    a = create_goal(make_input(title="A"))
    b = create_goal(make_input(title="B", parent=a.id))
    a = a.model_copy(update={"parent": b.id})
    query = _engine(store, a, b)

    with pytest.raises(CycleDetectedError) as exc_info:
        query.ancestors_of(a.id)
    assert exc_info.value.path[0] == a.id

    with pytest.raises(CycleDetectedError):
        query.descendants_of(a.id)


def test_self_parent_is_a_cycle(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input())
    goal = goal.model_copy(update={"parent": goal.id})
    query = _engine(store, goal)

    with pytest.raises(CycleDetectedError):
        query.ancestors_of(goal.id)
    with pytest.raises(CycleDetectedError):
        query.descendants_of(goal.id)


def test_search_is_case_insensitive_on_titles(store: YamlStore, make_input) -> None:
    root, middle, leaf, sibling = _tree(make_input)
    query = _engine(store, root, middle, leaf, sibling)

    assert sorted(query.search("REALTIME")) == [middle.id]
    assert query.search("sse") == [leaf.id]
    # descriptions and states are not searched
    assert query.search("poll") == []


def test_stats(store: YamlStore, make_input) -> None:
    root, middle, leaf, sibling = _tree(make_input)
    query = _engine(store, root, middle, leaf, update_goal(sibling, {"status": "paused"}))

    stats = query.stats()

    assert stats.total == 4
    assert stats.by_status == {"active": 3, "paused": 1}
    assert stats.by_project == {"/work/api": 3, "/work/auth": 1}
    assert stats.to_dict()["total"] == 4


class _FixedIndex:
    def __init__(self, goals):
        self.index = build_index(goals)

    def get_index(self):
        return self.index


def test_walks_handle_chains_deeper_than_recursion_limit(make_input) -> None:
    depth = sys.getrecursionlimit() + 200
    chain = [create_goal(make_input(title="Goal 0"))]
    for i in range(1, depth):
        chain.append(create_goal(make_input(title=f"Goal {i}", parent=chain[-1].id)))
    query = QueryEngine(_FixedIndex(chain))

    descendants = query.descendants_of(chain[0].id)

    assert len(descendants) == depth - 1
    assert descendants[0] == chain[1].id
    assert descendants[-1] == chain[-1].id
    assert len(query.ancestors_of(chain[-1].id)) == depth - 1


def test_duplicate_tags_index_goal_once(store: YamlStore, make_input) -> None:
    goal = create_goal(make_input(tags=["api", "sse", "api"]))
    tagged = goal.model_copy(update={"tags": ["api", "api"]})
    query = _engine(store, tagged)

    assert goal.tags == ["api", "sse"]
    assert query.by_tag("api") == [goal.id]
    assert query.by_tags(["api", "api"]) == [goal.id]
