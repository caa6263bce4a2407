"""
Versioning Engine

Snapshot creation, field-level change detection and the branch lifecycle.
Every function is pure: inputs are never mutated, callers persist the
returned records (and append new snapshot ids to the goal themselves).

Branch lifecycle:
    active -> merged     (terminal)
    active -> abandoned  (terminal)

branch_main is never merged or abandoned.
"""

import logging
from typing import Any, Collection, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from goalos.core.clock import utc_now_iso
from goalos.core.errors import (
    BranchConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from goalos.models.base import require_text
from goalos.models.branch import (
    MAIN_BRANCH_ID,
    Branch,
    BranchCollisionPolicy,
    BranchResolution,
    BranchStatus,
    generate_branch_id,
)
from goalos.models.goal import BranchReference, Goal, GoalStatus
from goalos.models.snapshot import FieldChange, Snapshot, SnapshotTrigger, generate_snapshot_id

logger = logging.getLogger(__name__)

DEFAULT_FIELDS = ("progress", "status", "current_state", "desired_state")

GoalLike = Union[BaseModel, Mapping[str, Any]]


# ============================================
# Snapshots
# ============================================

def create_snapshot(
    goal: Goal,
    event: str,
    summary: str = "",
    trigger: Union[SnapshotTrigger, str] = SnapshotTrigger.MANUAL,
    changes: Sequence[FieldChange] = (),
    session: Optional[str] = None,
) -> Snapshot:
    """
    Capture the goal's core fields at this moment

    The snapshot records the goal's current branch and links to the goal's
    latest snapshot through previous_snapshot. The goal is not modified.

    Args:
        goal: Goal to capture
        event: Short description of what happened
        summary: Longer free-text summary
        trigger: What caused the snapshot
        changes: Field-level changes since the previous state
        session: Optional session id

    Returns:
        New, unsaved Snapshot
    """
    require_text(event, "event")
    return Snapshot(
        id=generate_snapshot_id(),
        goal_id=goal.id,
        created=utc_now_iso(),
        trigger=SnapshotTrigger(trigger),
        current_state=goal.current_state,
        desired_state=goal.desired_state,
        progress=goal.progress,
        status=GoalStatus(goal.status).value,
        event=event,
        summary=summary,
        changes=list(changes),
        previous_snapshot=goal.latest_snapshot_id,
        branch=goal.current_branch_id,
        session=session,
    )


def _field_value(obj: GoalLike, field: str) -> Any:
    if isinstance(obj, BaseModel):
        value = getattr(obj, field, None)
    else:
        value = obj.get(field)

    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
    # str enums compare by value
    return getattr(value, "value", value)


def compute_changes(
    before: GoalLike,
    after: GoalLike,
    fields: Iterable[str] = DEFAULT_FIELDS,
) -> List[FieldChange]:
    """
    Field-by-field deep comparison

    Returns one FieldChange (from/to) per differing field; equal fields
    produce nothing, so compute_changes(x, x) is always empty.
    """
    changes = []
    for field in fields:
        old = _field_value(before, field)
        new = _field_value(after, field)
        if old != new:
            changes.append(FieldChange(field=field, from_=old, to=new))
    return changes


def snapshot_event_for(status: Optional[Union[GoalStatus, str]], progress: Optional[float]) -> str:
    """Default event text for an update touching status and/or progress"""
    status_value = getattr(status, "value", status)
    if status_value == GoalStatus.COMPLETED.value:
        return "Goal completed"
    if status_value == GoalStatus.ABANDONED.value:
        return "Goal abandoned"
    if status_value == GoalStatus.PAUSED.value:
        return "Goal paused"
    if status_value == GoalStatus.ACTIVE.value:
        return "Goal resumed"
    if status_value == GoalStatus.BLOCKED.value:
        return "Goal blocked"
    if progress is not None:
        return "Progress updated"
    return "Goal updated"


def summarize_changes(changes: Sequence[FieldChange]) -> str:
    """
    Human-readable summary, one line per change

    Example:
        Progress: 20% → 50%
        Status: active → completed
    """
    lines = []
    for change in changes:
        if change.field == "progress":
            from_pct = round((change.from_ or 0) * 100)
            to_pct = round((change.to or 0) * 100)
            lines.append(f"Progress: {from_pct}% → {to_pct}%")
        elif change.field == "status":
            lines.append(f"Status: {change.from_} → {change.to}")
        else:
            lines.append(f"{change.field} updated")
    return "\n".join(lines)


# ============================================
# Branches
# ============================================

def create_branch(
    goal: Goal,
    name: str,
    description: str = "",
    existing_ids: Collection[str] = (),
    policy: BranchCollisionPolicy = BranchCollisionPolicy.FAIL,
) -> Branch:
    """
    Start an alternative exploration path for a goal

    parent_branch is the goal's current branch and branch_point its latest
    snapshot, so callers wanting a dedicated branch point must snapshot
    first.

    Args:
        goal: Owning goal
        name: Branch name (slugified into the id)
        description: Optional description
        existing_ids: Branch ids already taken for this goal
        policy: FAIL raises on a slug collision, SUFFIX appends _2, _3, ...

    Raises:
        ValidationError: Blank name, or a name with no usable characters
        BranchConflictError: Slug collision under the FAIL policy
    """
    require_text(name, "name")
    base_id = generate_branch_id(name)
    if base_id.strip("_") == "branch":
        raise ValidationError(f"Branch name '{name}' has no usable characters", field="name")

    taken = set(existing_ids) | {MAIN_BRANCH_ID} | {ref.id for ref in goal.branches}
    branch_id = base_id
    if branch_id in taken:
        if BranchCollisionPolicy(policy) == BranchCollisionPolicy.FAIL:
            raise BranchConflictError(branch_id, goal.id)
        n = 2
        while f"{base_id}_{n}" in taken:
            n += 1
        branch_id = f"{base_id}_{n}"
        logger.info(f"Branch id {base_id} taken on goal {goal.id}, using {branch_id}")

    now = utc_now_iso()
    return Branch(
        id=branch_id,
        goal_id=goal.id,
        created=now,
        updated=now,
        name=name,
        description=description,
        status=BranchStatus.ACTIVE,
        parent_branch=goal.current_branch_id,
        branch_point=goal.latest_snapshot_id or "",
        snapshots=[],
    )


def switch_branch(goal: Goal, branch_id: str, known_branch_ids: Collection[str] = ()) -> Goal:
    """
    Flag branch_id as the goal's current branch

    Args:
        goal: Goal to update
        branch_id: Target branch
        known_branch_ids: Ids of Branch records stored for this goal

    Raises:
        NotFoundError: Target is neither branch_main nor a stored branch
            referenced by the goal
        InvalidTransitionError: Target branch is merged or abandoned
    """
    ref = goal.branch_ref(branch_id)
    exists = branch_id == MAIN_BRANCH_ID or (ref is not None and branch_id in set(known_branch_ids))
    if not exists:
        raise NotFoundError("Branch", branch_id)

    if ref is not None and ref.status != BranchStatus.ACTIVE:
        raise InvalidTransitionError(
            ref.status.value,
            "current",
            entity_id=branch_id,
            reason="only active branches can be switched to",
        )

    updated = goal.model_copy(deep=True)
    if updated.branch_ref(MAIN_BRANCH_ID) is None and branch_id == MAIN_BRANCH_ID:
        updated.branches.insert(0, BranchReference(id=MAIN_BRANCH_ID, name="main"))

    for branch_ref in updated.branches:
        branch_ref.current = True if branch_ref.id == branch_id else None
    updated.updated = utc_now_iso()
    return updated


def _resolve_branch(
    branch: Branch,
    status: BranchStatus,
    reason: Optional[str],
    decider: str,
) -> Branch:
    if branch.id == MAIN_BRANCH_ID:
        raise InvalidTransitionError(
            branch.status.value,
            status.value,
            entity_id=branch.id,
            reason="the main branch cannot be resolved",
        )
    if branch.is_resolved or branch.status != BranchStatus.ACTIVE:
        raise InvalidTransitionError(
            branch.status.value,
            status.value,
            entity_id=branch.id,
            reason="branch is already resolved",
        )

    now = utc_now_iso()
    return branch.model_copy(
        deep=True,
        update={
            "status": status,
            "updated": now,
            "resolution": BranchResolution(
                status=status,
                reason=reason,
                decided=now,
                decided_by=decider,
            ),
        },
    )


def abandon_branch(branch: Branch, reason: str, decider: str = "main") -> Branch:
    """
    Resolve a branch as abandoned

    Raises:
        InvalidTransitionError: branch_main or an already-resolved branch
    """
    return _resolve_branch(branch, BranchStatus.ABANDONED, reason, decider)


def merge_branch(
    branch: Branch,
    target: str = MAIN_BRANCH_ID,
    merge_snapshot: Optional[str] = None,
    decider: str = "main",
) -> Branch:
    """
    Resolve a branch as merged into target

    Raises:
        InvalidTransitionError: branch_main, an already-resolved branch, or
            a branch merged into itself
    """
    if target == branch.id:
        raise InvalidTransitionError(
            branch.status.value,
            BranchStatus.MERGED.value,
            entity_id=branch.id,
            reason="a branch cannot be merged into itself",
        )
    merged = _resolve_branch(branch, BranchStatus.MERGED, None, decider)
    merged.merged_to = target
    merged.merge_snapshot = merge_snapshot
    return merged
