"""
GoalOS entity models

Typed records for Goal, Snapshot, Branch, Project, SessionState and the
derived index, plus pure construction/mutation helpers. No I/O happens in
this package.
"""

from goalos.models.base import SCHEMA_VERSION, to_document
from goalos.models.branch import (
    MAIN_BRANCH_ID,
    Branch,
    BranchCollisionPolicy,
    BranchResolution,
    BranchStatus,
    generate_branch_id,
)
from goalos.models.goal import (
    BranchReference,
    CreateGoalInput,
    Goal,
    GoalStatus,
    Priority,
    UpdateGoalInput,
    Verification,
    VerificationMethod,
    create_goal,
    generate_goal_id,
    update_goal,
)
from goalos.models.index import EdgeType, GoalIndex, GoalIndexEntry, GraphEdge, create_empty_index
from goalos.models.project import (
    CreateProjectInput,
    Project,
    add_goal_to_project,
    create_project,
    find_best_matching_project,
)
from goalos.models.session_state import (
    ActiveAgent,
    ParallelContext,
    RecentFile,
    SessionState,
    create_empty_session_state,
    update_session_state,
)
from goalos.models.snapshot import FieldChange, Snapshot, SnapshotTrigger, generate_snapshot_id

__all__ = [
    "SCHEMA_VERSION",
    "to_document",
    "MAIN_BRANCH_ID",
    "Branch",
    "BranchCollisionPolicy",
    "BranchResolution",
    "BranchStatus",
    "generate_branch_id",
    "BranchReference",
    "CreateGoalInput",
    "Goal",
    "GoalStatus",
    "Priority",
    "UpdateGoalInput",
    "Verification",
    "VerificationMethod",
    "create_goal",
    "generate_goal_id",
    "update_goal",
    "EdgeType",
    "GoalIndex",
    "GoalIndexEntry",
    "GraphEdge",
    "create_empty_index",
    "CreateProjectInput",
    "Project",
    "add_goal_to_project",
    "create_project",
    "find_best_matching_project",
    "ActiveAgent",
    "ParallelContext",
    "RecentFile",
    "SessionState",
    "create_empty_session_state",
    "update_session_state",
    "FieldChange",
    "Snapshot",
    "SnapshotTrigger",
    "generate_snapshot_id",
]
