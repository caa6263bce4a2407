"""
Index Builder

Builds the fast-query index from goal records. The index is never
authoritative: it can always be rebuilt from the goals on disk.
"""

import logging
from typing import Iterable

from goalos.models.goal import Goal
from goalos.models.index import EdgeType, GoalIndex, GoalIndexEntry, GraphEdge, create_empty_index
from goalos.store.yaml_store import YamlStore

logger = logging.getLogger(__name__)


def build_index(goals: Iterable[Goal]) -> GoalIndex:
    """
    Build a complete index in a single pass

    Goals are visited in id order, so two builds over the same goal set
    differ only in `generated`. Parent and child edges are not
    deduplicated: a consistent parent/children pair yields both.
    """
    index = create_empty_index()

    for goal in sorted(goals, key=lambda g: g.id):
        status = goal.status.value

        index.goals[goal.id] = GoalIndexEntry(
            title=goal.title,
            status=status,
            progress=goal.progress,
            project=goal.project,
            parent=goal.parent,
            children=list(goal.children),
            tags=list(dict.fromkeys(goal.tags)),
            updated=goal.updated,
        )

        index.by_status.setdefault(status, []).append(goal.id)
        index.by_project.setdefault(goal.project, []).append(goal.id)
        for tag in dict.fromkeys(goal.tags):
            index.by_tag.setdefault(tag, []).append(goal.id)

        edges = index.graph.edges
        if goal.parent:
            edges.append(GraphEdge(from_=goal.parent, to=goal.id, type=EdgeType.PARENT))
        for child_id in goal.children:
            edges.append(GraphEdge(from_=goal.id, to=child_id, type=EdgeType.CHILD))
        for dep_id in goal.depends_on:
            edges.append(GraphEdge(from_=goal.id, to=dep_id, type=EdgeType.DEPENDS_ON))
        for informs_id in goal.informs:
            edges.append(GraphEdge(from_=goal.id, to=informs_id, type=EdgeType.INFORMS))
        if goal.evolved_from:
            edges.append(GraphEdge(from_=goal.evolved_from, to=goal.id, type=EdgeType.EVOLVED_FROM))

    return index


class IndexBuilder:
    """Keeps the persisted index in step with the goal records"""

    def __init__(self, store: YamlStore):
        self.store = store

    def rebuild(self) -> GoalIndex:
        """
        Rebuild from all goals (active and archived) and persist

        The new document replaces the old one in a single os.replace; if
        building or writing fails the previous index is left intact.
        """
        goals = self.store.load_all_goals(include_archived=True)
        index = build_index(goals)
        self.store.save_index(index)
        logger.debug(f"Rebuilt index: {len(index.goals)} goals, {len(index.graph.edges)} edges")
        return index

    def get_index(self) -> GoalIndex:
        """Cached index, or a synchronous rebuild when none is stored"""
        cached = self.store.load_index()
        if cached is not None:
            return cached
        logger.info("No index found, rebuilding")
        return self.rebuild()
