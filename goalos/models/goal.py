"""
Goal Model

The fundamental unit of GoalOS: a Current State -> Desired State
transformation with verification criteria, status and progress.

All helpers here are pure: they return new Goal objects and never touch
the store. Snapshots are the Versioning Engine's job, persistence is the
Record Store's.
"""

import math
import threading
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from goalos.core.clock import id_stamp_seconds, utc_now_iso
from goalos.core.errors import InvalidTransitionError, ValidationError
from goalos.models.base import Record, coerce_input, random_suffix, require_text
from goalos.models.branch import MAIN_BRANCH_ID, BranchStatus


class GoalStatus(str, Enum):
    """Goal status enumeration"""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    BLOCKED = "blocked"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class VerificationMethod(str, Enum):
    MANUAL = "manual"
    AUTOMATED = "automated"
    HYBRID = "hybrid"


# completed and abandoned are terminal
ALLOWED_TRANSITIONS: Dict[GoalStatus, Set[GoalStatus]] = {
    GoalStatus.ACTIVE: {
        GoalStatus.PAUSED,
        GoalStatus.COMPLETED,
        GoalStatus.ABANDONED,
        GoalStatus.BLOCKED,
    },
    GoalStatus.PAUSED: {GoalStatus.ACTIVE, GoalStatus.ABANDONED},
    GoalStatus.BLOCKED: {GoalStatus.ACTIVE},
    GoalStatus.COMPLETED: set(),
    GoalStatus.ABANDONED: set(),
}


class Verification(BaseModel):
    """How to tell the desired state has been reached"""

    criteria: List[str] = Field(default_factory=list)
    method: VerificationMethod = VerificationMethod.MANUAL
    test_commands: Optional[List[str]] = None


class VerificationPatch(BaseModel):
    """Partial verification used by create/update inputs"""

    model_config = ConfigDict(extra="forbid")

    criteria: Optional[List[str]] = None
    method: Optional[VerificationMethod] = None
    test_commands: Optional[List[str]] = None


class SessionReference(BaseModel):
    session_id: str
    date: str
    summary: str = ""


class AgentAssignment(BaseModel):
    id: str
    task: str
    status: Literal["pending", "active", "completed", "failed"] = "pending"
    started: Optional[str] = None
    completed: Optional[str] = None


class Decision(BaseModel):
    decision: str
    rationale: str
    date: str
    reversible: bool = True


class GoalContext(BaseModel):
    """Work context accumulated while pursuing a goal"""

    primary_files: List[str] = Field(default_factory=list)
    related_files: List[str] = Field(default_factory=list)
    sessions: List[SessionReference] = Field(default_factory=list)
    agents: List[AgentAssignment] = Field(default_factory=list)
    learnings: List[str] = Field(default_factory=list)
    decisions: List[Decision] = Field(default_factory=list)


class BranchReference(BaseModel):
    """Lightweight pointer from a goal to one of its branches"""

    id: str
    name: str
    status: BranchStatus = BranchStatus.ACTIVE
    reason: Optional[str] = None
    snapshot: Optional[str] = None
    current: Optional[bool] = None


class Goal(Record):
    """Goal record (schema_version 1)"""

    id: str
    created: str
    updated: str

    current_state: str
    desired_state: str

    verification: Verification = Field(default_factory=Verification)

    status: GoalStatus = GoalStatus.ACTIVE
    progress: float = Field(0.0, ge=0.0, le=1.0)

    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    project: str
    priority: Priority = Priority.MEDIUM

    # Graph edges
    parent: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    depends_on: List[str] = Field(default_factory=list)
    informs: List[str] = Field(default_factory=list)
    evolved_from: Optional[str] = None

    context: GoalContext = Field(default_factory=GoalContext)

    branches: List[BranchReference] = Field(default_factory=list)
    snapshots: List[str] = Field(default_factory=list)

    created_by: str = "main"
    last_touched_by: str = "main"

    @property
    def current_branch_id(self) -> str:
        """ID of the branch flagged current (branch_main if none is)"""
        for ref in self.branches:
            if ref.current:
                return ref.id
        return MAIN_BRANCH_ID

    @property
    def latest_snapshot_id(self) -> Optional[str]:
        return self.snapshots[-1] if self.snapshots else None

    def branch_ref(self, branch_id: str) -> Optional[BranchReference]:
        for ref in self.branches:
            if ref.id == branch_id:
                return ref
        return None


class CreateGoalInput(BaseModel):
    """Input for creating a new goal (minimal required fields)"""

    model_config = ConfigDict(extra="forbid")

    title: str
    current_state: str
    desired_state: str
    project: str

    description: str = ""
    tags: List[str] = Field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    parent: Optional[str] = None
    verification: Optional[VerificationPatch] = None


class UpdateGoalInput(BaseModel):
    """Input for updating an existing goal; only set fields are applied"""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    current_state: Optional[str] = None
    desired_state: Optional[str] = None
    description: Optional[str] = None
    status: Optional[GoalStatus] = None
    progress: Optional[float] = None
    tags: Optional[List[str]] = None
    priority: Optional[Priority] = None
    verification: Optional[VerificationPatch] = None


_issued_ids: Set[str] = set()
_issued_lock = threading.Lock()


def generate_goal_id() -> str:
    """
    Generate a new goal ID: goal_<YYYYMMDDHHMMSS><4 base-36 chars>

    IDs are never reused within a process.
    """
    with _issued_lock:
        while True:
            candidate = f"goal_{id_stamp_seconds()}{random_suffix(4)}"
            if candidate not in _issued_ids:
                _issued_ids.add(candidate)
                return candidate


def create_goal(data: Union[CreateGoalInput, Dict[str, Any]], created_by: str = "main") -> Goal:
    """
    Create a new goal with defaults

    Args:
        data: CreateGoalInput or equivalent mapping
        created_by: Actor recorded as creator and last toucher

    Returns:
        Goal in active status with progress 0 and a current branch_main

    Raises:
        ValidationError: If title, current_state, desired_state or
            project is blank, or any field has the wrong type
    """
    payload = coerce_input(CreateGoalInput, data)
    for name in ("title", "current_state", "desired_state", "project"):
        require_text(getattr(payload, name), name)

    now = utc_now_iso()
    patch = payload.verification
    verification = Verification(
        criteria=(patch.criteria if patch and patch.criteria is not None else []),
        method=(patch.method if patch and patch.method else VerificationMethod.MANUAL),
        test_commands=(patch.test_commands if patch else None),
    )

    return Goal(
        id=generate_goal_id(),
        created=now,
        updated=now,
        current_state=payload.current_state,
        desired_state=payload.desired_state,
        verification=verification,
        status=GoalStatus.ACTIVE,
        progress=0.0,
        title=payload.title,
        description=payload.description,
        tags=list(dict.fromkeys(payload.tags)),
        project=payload.project,
        priority=payload.priority,
        parent=payload.parent,
        branches=[
            BranchReference(id=MAIN_BRANCH_ID, name="main", status=BranchStatus.ACTIVE, current=True)
        ],
        created_by=created_by,
        last_touched_by=created_by,
    )


def check_status_transition(current: GoalStatus, target: GoalStatus, goal_id: Optional[str] = None) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed"""
    if current == target:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        reason = "terminal status" if not ALLOWED_TRANSITIONS[current] else None
        raise InvalidTransitionError(current.value, target.value, entity_id=goal_id, reason=reason)


def update_goal(
    goal: Goal,
    data: Union[UpdateGoalInput, Dict[str, Any]],
    updated_by: str = "main",
) -> Goal:
    """
    Apply a patch to a goal

    Only fields present in the patch are applied; verification is merged
    key-wise. `updated` and `last_touched_by` are always refreshed. No
    snapshot is created here.

    Raises:
        ValidationError: Unknown field, blank required text, progress
            outside [0, 1], or a disallowed status transition
    """
    patch = coerce_input(UpdateGoalInput, data)
    fields = patch.model_dump(exclude_unset=True)

    for name in ("title", "current_state", "desired_state"):
        if fields.get(name) is not None:
            require_text(fields[name], name)

    if fields.get("progress") is not None:
        progress = fields["progress"]
        if math.isnan(progress) or not 0.0 <= progress <= 1.0:
            raise ValidationError(
                f"progress must be within [0, 1], got {progress}",
                field="progress",
                entity_id=goal.id,
            )

    if fields.get("status") is not None:
        check_status_transition(goal.status, patch.status, goal.id)

    updates: Dict[str, Any] = {}
    for name in ("title", "current_state", "desired_state", "description", "progress"):
        if fields.get(name) is not None:
            updates[name] = fields[name]
    if patch.status is not None:
        updates["status"] = patch.status
    if patch.priority is not None:
        updates["priority"] = patch.priority
    if patch.tags is not None:
        updates["tags"] = list(dict.fromkeys(patch.tags))
    if patch.verification is not None:
        merged = goal.verification.model_dump()
        merged.update(patch.verification.model_dump(exclude_unset=True))
        updates["verification"] = Verification.model_validate(merged)

    updates["updated"] = utc_now_iso()
    updates["last_touched_by"] = updated_by
    return goal.model_copy(deep=True, update=updates)


def add_learning(goal: Goal, learning: str, updated_by: str = "main") -> Goal:
    """Append a free-text learning to the goal's work context"""
    require_text(learning, "learning")
    updated = goal.model_copy(deep=True)
    updated.context.learnings.append(learning)
    return _touch(updated, updated_by)


def add_decision(
    goal: Goal,
    decision: str,
    rationale: str,
    reversible: bool = True,
    updated_by: str = "main",
) -> Goal:
    """Record a structured decision with its rationale"""
    require_text(decision, "decision")
    updated = goal.model_copy(deep=True)
    updated.context.decisions.append(
        Decision(decision=decision, rationale=rationale, date=utc_now_iso(), reversible=reversible)
    )
    return _touch(updated, updated_by)


def add_session_reference(goal: Goal, session_id: str, summary: str = "", updated_by: str = "main") -> Goal:
    """Link a session to the goal (one entry per session id)"""
    updated = goal.model_copy(deep=True)
    sessions = [s for s in updated.context.sessions if s.session_id != session_id]
    sessions.append(SessionReference(session_id=session_id, date=utc_now_iso(), summary=summary))
    updated.context.sessions = sessions
    return _touch(updated, updated_by)


def add_primary_files(goal: Goal, paths: List[str], updated_by: str = "main") -> Goal:
    """Merge file paths into primary_files, keeping first-seen order"""
    updated = goal.model_copy(deep=True)
    for path in paths:
        if path not in updated.context.primary_files:
            updated.context.primary_files.append(path)
    return _touch(updated, updated_by)


def _touch(goal: Goal, updated_by: str) -> Goal:
    goal.updated = utc_now_iso()
    goal.last_touched_by = updated_by
    return goal
