"""
Index Model

Fast-query JSON index derived from the goal records. It holds no truth of
its own and can be rebuilt from the goals at any time.
"""

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from goalos.core.clock import utc_now_iso

INDEX_SCHEMA_VERSION = 1


class EdgeType(str, Enum):
    PARENT = "parent"
    CHILD = "child"
    DEPENDS_ON = "depends_on"
    INFORMS = "informs"
    EVOLVED_FROM = "evolved_from"


class GoalIndexEntry(BaseModel):
    title: str
    status: str
    progress: float
    project: str
    parent: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    updated: str


class GraphEdge(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    to: str
    type: EdgeType


class IndexGraph(BaseModel):
    edges: List[GraphEdge] = Field(default_factory=list)


class GoalIndex(BaseModel):
    """Index document (schema_version 1)"""

    schema_version: Literal[1] = INDEX_SCHEMA_VERSION
    generated: str

    goals: Dict[str, GoalIndexEntry] = Field(default_factory=dict)

    by_status: Dict[str, List[str]] = Field(default_factory=dict)
    by_project: Dict[str, List[str]] = Field(default_factory=dict)
    by_tag: Dict[str, List[str]] = Field(default_factory=dict)

    graph: IndexGraph = Field(default_factory=IndexGraph)


def create_empty_index() -> GoalIndex:
    return GoalIndex(generated=utc_now_iso())
