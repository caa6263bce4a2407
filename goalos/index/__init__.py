"""
GoalOS Graph Index

Derived, rebuildable JSON index over all goals and the read-only Query
Engine on top of it.
"""

from goalos.index.builder import IndexBuilder, build_index
from goalos.index.query import GoalStats, QueryEngine

__all__ = ["IndexBuilder", "build_index", "GoalStats", "QueryEngine"]
