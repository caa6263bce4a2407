"""
Query Engine

Read-only lookups and graph walks over the index. Every call re-fetches
the index, so results reflect the most recent rebuild.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from goalos.core.errors import CycleDetectedError
from goalos.index.builder import IndexBuilder
from goalos.models.goal import GoalStatus
from goalos.models.index import EdgeType, GoalIndex


@dataclass
class GoalStats:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_project: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "by_project": dict(self.by_project),
        }


class QueryEngine:
    def __init__(self, builder: IndexBuilder):
        self.builder = builder

    def _index(self) -> GoalIndex:
        return self.builder.get_index()

    def by_status(self, status: str) -> List[str]:
        status = getattr(status, "value", status)
        return list(self._index().by_status.get(status, []))

    def by_project(self, project: str) -> List[str]:
        return list(self._index().by_project.get(project, []))

    def by_tag(self, tag: str) -> List[str]:
        return list(self._index().by_tag.get(tag, []))

    def by_tags(self, tags: Iterable[str]) -> List[str]:
        """Goals carrying every one of tags; no tags matches nothing"""
        tags = list(tags)
        if not tags:
            return []

        index = self._index()
        result = list(index.by_tag.get(tags[0], []))
        for tag in tags[1:]:
            tagged = set(index.by_tag.get(tag, []))
            result = [goal_id for goal_id in result if goal_id in tagged]
        return result

    def active_goals(self) -> List[str]:
        return self.by_status(GoalStatus.ACTIVE.value)

    def children_of(self, goal_id: str) -> List[str]:
        """Children as recorded by the children's own parent field"""
        return self._children_of(self._index(), goal_id)

    def parent_of(self, goal_id: str) -> Optional[str]:
        entry = self._index().goals.get(goal_id)
        return entry.parent if entry else None

    def ancestors_of(self, goal_id: str) -> List[str]:
        """
        Parent chain, nearest first

        Raises:
            CycleDetectedError: The parent chain loops back on itself
        """
        index = self._index()
        ancestors: List[str] = []
        seen = {goal_id}

        entry = index.goals.get(goal_id)
        current = entry.parent if entry else None
        while current:
            if current in seen:
                raise CycleDetectedError(goal_id, [goal_id, *ancestors, current])
            seen.add(current)
            ancestors.append(current)
            entry = index.goals.get(current)
            current = entry.parent if entry else None
        return ancestors

    def descendants_of(self, goal_id: str) -> List[str]:
        """
        All descendants, depth-first in edge order

        Raises:
            CycleDetectedError: A goal is reachable from itself
        """
        children: Dict[str, List[str]] = {}
        for edge in self._index().graph.edges:
            if edge.type == EdgeType.PARENT:
                children.setdefault(edge.from_, []).append(edge.to)

        descendants: List[str] = []
        visited = set()
        path = [goal_id]
        on_path = {goal_id}
        stack = [iter(children.get(goal_id, []))]

        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if child in on_path:
                raise CycleDetectedError(goal_id, [*path, child])
            if child in visited:
                continue
            visited.add(child)
            descendants.append(child)
            path.append(child)
            on_path.add(child)
            stack.append(iter(children.get(child, [])))

        return descendants

    def search(self, text: str) -> List[str]:
        """Case-insensitive substring match on titles"""
        needle = text.lower()
        return [
            goal_id
            for goal_id, entry in self._index().goals.items()
            if needle in entry.title.lower()
        ]

    def stats(self) -> GoalStats:
        index = self._index()
        return GoalStats(
            total=len(index.goals),
            by_status={status: len(ids) for status, ids in index.by_status.items()},
            by_project={project: len(ids) for project, ids in index.by_project.items()},
        )

    @staticmethod
    def _children_of(index: GoalIndex, goal_id: str) -> List[str]:
        return [
            edge.to
            for edge in index.graph.edges
            if edge.type == EdgeType.PARENT and edge.from_ == goal_id
        ]
