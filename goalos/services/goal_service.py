"""
Goal Service

High-level goal, branch and project operations with automatic snapshots
and index rebuilds.

Usage:
    from goalos import GoalService, StoreSettings

    service = GoalService(StoreSettings.resolve())
    goal = service.create({
        "title": "Streaming API",
        "current_state": "Polling",
        "desired_state": "Server-sent events",
        "project": "/work/api",
    })
    service.set_progress(goal.id, 0.4)
"""

import logging
import math
from typing import Any, Dict, List, Optional, Union

from goalos.config.settings import StoreSettings
from goalos.core.clock import utc_now_iso
from goalos.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from goalos.index.builder import IndexBuilder
from goalos.index.query import QueryEngine
from goalos.models import goal as goal_model
from goalos.models.base import coerce_input
from goalos.models.branch import MAIN_BRANCH_ID, Branch, BranchStatus
from goalos.models.goal import (
    BranchReference,
    CreateGoalInput,
    Goal,
    GoalStatus,
    UpdateGoalInput,
    create_goal,
    update_goal,
)
from goalos.models.index import EdgeType, GoalIndex
from goalos.models.project import CreateProjectInput, Project, add_goal_to_project, create_project
from goalos.models.snapshot import Snapshot, SnapshotTrigger
from goalos.store.lock import StoreLock
from goalos.store.yaml_store import YamlStore
from goalos.versioning import (
    abandon_branch,
    compute_changes,
    create_branch,
    create_snapshot,
    merge_branch,
    snapshot_event_for,
    summarize_changes,
    switch_branch,
)

logger = logging.getLogger(__name__)

LINK_TYPES = (EdgeType.PARENT, EdgeType.DEPENDS_ON, EdgeType.INFORMS, EdgeType.EVOLVED_FROM)


class GoalService:
    """
    Goal Service: the single write path for goals, branches and projects

    Mutating methods hold the store lock for the whole logical operation,
    including snapshot writes and the index rebuild. The lock is
    re-entrant, so composite operations (complete, abandon, ...) can call
    other mutating methods.
    """

    def __init__(self, settings: Optional[StoreSettings] = None):
        self.settings = settings or StoreSettings.resolve()
        self.store = YamlStore(self.settings)
        self.indexer = IndexBuilder(self.store)
        self.query = QueryEngine(self.indexer)
        self.lock = StoreLock(self.store.paths.lock_file, timeout=self.settings.lock_timeout_seconds)

    def _actor(self, actor: Optional[str]) -> str:
        return actor or self.settings.actor

    # ============================================
    # Goal CRUD
    # ============================================

    def create(
        self,
        data: Union[CreateGoalInput, Dict[str, Any]],
        created_by: Optional[str] = None,
        auto_snapshot: bool = True,
    ) -> Goal:
        """
        Create and persist a new goal

        A parent, when given, must exist; the new goal is appended to the
        parent's children. The goal is filed under its project when a
        project matches goal.project.

        Raises:
            ValidationError: Invalid input
            NotFoundError: Parent goal does not exist
        """
        goal = create_goal(data, created_by=self._actor(created_by))

        with self.lock:
            parent = None
            if goal.parent:
                parent = self.require(goal.parent)

            if auto_snapshot:
                snapshot = create_snapshot(goal, "Goal created", f"Initial goal: {goal.title}")
                goal = self._record_snapshot(goal, snapshot)
            self.store.save_goal(goal)

            if parent is not None and goal.id not in parent.children:
                parent = parent.model_copy(deep=True)
                parent.children.append(goal.id)
                parent.updated = goal.created
                self.store.save_goal(parent)

            self._sync_project(goal)
            self.indexer.rebuild()

        logger.info(f"Created goal {goal.id}: {goal.title}")
        return goal

    def get(self, goal_id: str) -> Optional[Goal]:
        return self.store.load_goal(goal_id)

    def require(self, goal_id: str) -> Goal:
        """Load a goal or raise NotFoundError"""
        goal = self.store.load_goal(goal_id)
        if goal is None:
            raise NotFoundError("Goal", goal_id)
        return goal

    def list(self, include_archived: bool = False) -> List[str]:
        return self.store.list_goals(include_archived=include_archived)

    def get_all(self, include_archived: bool = False) -> List[Goal]:
        return self.store.load_all_goals(include_archived=include_archived)

    def update(
        self,
        goal_id: str,
        data: Union[UpdateGoalInput, Dict[str, Any]],
        updated_by: Optional[str] = None,
        auto_snapshot: bool = True,
        snapshot_event: Optional[str] = None,
    ) -> Goal:
        """
        Apply a patch to a goal

        When the patch touches progress or status and the resulting change
        set is non-empty, an auto_progress snapshot is recorded.

        Raises:
            NotFoundError: Goal does not exist
            ValidationError: Invalid patch or disallowed status transition
        """
        patch = coerce_input(UpdateGoalInput, data)

        with self.lock:
            before = self.require(goal_id)
            after = update_goal(before, patch, updated_by=self._actor(updated_by))

            if auto_snapshot and (patch.progress is not None or patch.status is not None):
                changes = compute_changes(before, after)
                if changes:
                    snapshot = create_snapshot(
                        after,
                        snapshot_event or snapshot_event_for(patch.status, patch.progress),
                        summarize_changes(changes),
                        SnapshotTrigger.AUTO_PROGRESS,
                        changes,
                    )
                    after = self._record_snapshot(after, snapshot)

            self.store.save_goal(after)

            if after.status != before.status:
                self._sync_project(after)
            self.indexer.rebuild()

        return after

    def complete(self, goal_id: str, summary: Optional[str] = None, updated_by: Optional[str] = None) -> Goal:
        """Mark completed at full progress; a summary adds a milestone snapshot"""
        with self.lock:
            goal = self.update(
                goal_id,
                {"status": GoalStatus.COMPLETED, "progress": 1.0},
                updated_by=updated_by,
                snapshot_event="Goal completed",
            )
            if summary:
                snapshot = create_snapshot(goal, "Goal completed", summary, SnapshotTrigger.MILESTONE)
                goal = self._record_snapshot(goal, snapshot)
                self.store.save_goal(goal)
        logger.info(f"Completed goal {goal_id}")
        return goal

    def abandon(self, goal_id: str, reason: str, updated_by: Optional[str] = None) -> Goal:
        return self.update(
            goal_id,
            {"status": GoalStatus.ABANDONED},
            updated_by=updated_by,
            snapshot_event=f"Goal abandoned: {reason}",
        )

    def pause(self, goal_id: str, updated_by: Optional[str] = None) -> Goal:
        return self.update(goal_id, {"status": GoalStatus.PAUSED}, updated_by=updated_by, snapshot_event="Goal paused")

    def resume(self, goal_id: str, updated_by: Optional[str] = None) -> Goal:
        return self.update(goal_id, {"status": GoalStatus.ACTIVE}, updated_by=updated_by, snapshot_event="Goal resumed")

    def block(self, goal_id: str, updated_by: Optional[str] = None) -> Goal:
        return self.update(goal_id, {"status": GoalStatus.BLOCKED}, updated_by=updated_by, snapshot_event="Goal blocked")

    def set_progress(self, goal_id: str, progress: float, updated_by: Optional[str] = None) -> Goal:
        """Set progress, clamping into [0, 1]"""
        if progress is None or math.isnan(progress):
            raise ValidationError("progress must be a number", field="progress", entity_id=goal_id)
        clamped = max(0.0, min(1.0, float(progress)))
        return self.update(goal_id, {"progress": clamped}, updated_by=updated_by)

    def archive(self, goal_id: str) -> bool:
        """
        Move an active goal to the archive

        Returns:
            False when the goal is already archived

        Raises:
            NotFoundError: Goal does not exist at all
        """
        with self.lock:
            self.require(goal_id)
            archived = self.store.archive_goal(goal_id)
            if archived:
                self.indexer.rebuild()
        return archived

    def purge(self, goal_id: str) -> bool:
        """
        Irreversibly delete a goal with its snapshots and branches

        References to the goal are dropped from other goals (children,
        depends_on, informs; parent and evolved_from are cleared) and from
        project lists, so the rebuilt index has no dangling edges.
        """
        with self.lock:
            removed = self.store.delete_goal(goal_id)
            if not removed:
                return False

            for other in self.store.load_all_goals(include_archived=True):
                cleaned = _without_reference(other, goal_id)
                if cleaned is not None:
                    self.store.save_goal(cleaned)

            for project in self.store.load_all_projects():
                lists = ("active_goals", "paused_goals", "completed_goals", "abandoned_goals")
                if any(goal_id in getattr(project, name) for name in lists):
                    project = project.model_copy(deep=True)
                    for name in lists:
                        setattr(project, name, [gid for gid in getattr(project, name) if gid != goal_id])
                    self.store.save_project(project)

            self.indexer.rebuild()

        logger.warning(f"Purged goal {goal_id}")
        return True

    # ============================================
    # Work context
    # ============================================

    def add_learning(self, goal_id: str, learning: str, updated_by: Optional[str] = None) -> Goal:
        with self.lock:
            goal = goal_model.add_learning(self.require(goal_id), learning, self._actor(updated_by))
            self.store.save_goal(goal)
            self.indexer.rebuild()
        return goal

    def add_decision(
        self,
        goal_id: str,
        decision: str,
        rationale: str,
        reversible: bool = True,
        updated_by: Optional[str] = None,
    ) -> Goal:
        with self.lock:
            goal = goal_model.add_decision(
                self.require(goal_id),
                decision,
                rationale,
                reversible=reversible,
                updated_by=self._actor(updated_by),
            )
            self.store.save_goal(goal)
            self.indexer.rebuild()
        return goal

    def link_goals(self, goal_id: str, target_id: str, relation: Union[EdgeType, str]) -> Goal:
        """
        Record a relation from goal_id to target_id

        parent: target becomes goal's parent (and lists goal as a child)
        depends_on / informs: target appended to goal's list
        evolved_from: goal evolved from target

        Raises:
            NotFoundError: Either goal does not exist
            ValidationError: Self-link or unsupported relation
        """
        try:
            relation = EdgeType(relation)
        except ValueError as e:
            raise ValidationError(f"Unsupported relation: {relation}", field="relation") from e
        if relation not in LINK_TYPES:
            raise ValidationError(f"Unsupported relation: {relation.value}", field="relation")
        if goal_id == target_id:
            raise ValidationError("A goal cannot be linked to itself", field="relation", entity_id=goal_id)

        with self.lock:
            goal = self.require(goal_id).model_copy(deep=True)
            target = self.require(target_id)

            if relation == EdgeType.PARENT:
                if target_id in self.query.descendants_of(goal_id):
                    raise ValidationError(
                        f"{target_id} is a descendant of {goal_id}",
                        field="parent",
                        entity_id=goal_id,
                    )
                if goal.parent and goal.parent != target_id:
                    previous = self.store.load_goal(goal.parent)
                    if previous is not None and goal_id in previous.children:
                        previous = previous.model_copy(deep=True)
                        previous.children.remove(goal_id)
                        self.store.save_goal(previous)
                goal.parent = target_id
                if goal_id not in target.children:
                    target = target.model_copy(deep=True)
                    target.children.append(goal_id)
                    self.store.save_goal(target)
            elif relation == EdgeType.DEPENDS_ON:
                if target_id not in goal.depends_on:
                    goal.depends_on.append(target_id)
            elif relation == EdgeType.INFORMS:
                if target_id not in goal.informs:
                    goal.informs.append(target_id)
            else:
                goal.evolved_from = target_id

            goal = goal_model.update_goal(goal, {}, updated_by=self.settings.actor)
            self.store.save_goal(goal)
            self.indexer.rebuild()
        return goal

    def record_session(
        self,
        goal_id: str,
        session_id: str,
        summary: str = "",
        files: Optional[List[str]] = None,
    ) -> Snapshot:
        """Attach a finished session to a goal and snapshot it (session_end)"""
        with self.lock:
            goal = self.require(goal_id)
            goal = goal_model.add_session_reference(goal, session_id, summary, self.settings.actor)
            if files:
                goal = goal_model.add_primary_files(goal, files, self.settings.actor)

            snapshot = create_snapshot(
                goal,
                "Session ended",
                summary or "Session ended without explicit summary",
                SnapshotTrigger.SESSION_END,
                session=session_id,
            )
            goal = self._record_snapshot(goal, snapshot)
            self.store.save_goal(goal)
            self.indexer.rebuild()
        return snapshot

    # ============================================
    # Snapshots
    # ============================================

    def get_snapshot(self, goal_id: str, snapshot_id: str) -> Optional[Snapshot]:
        return self.store.load_snapshot(goal_id, snapshot_id)

    def get_snapshots(self, goal_id: str) -> List[Snapshot]:
        return self.store.load_all_snapshots(goal_id)

    def create_manual_snapshot(
        self,
        goal_id: str,
        event: str,
        summary: str = "",
        session: Optional[str] = None,
    ) -> Snapshot:
        with self.lock:
            goal = self.require(goal_id)
            snapshot = create_snapshot(goal, event, summary, SnapshotTrigger.MANUAL, session=session)
            goal = self._record_snapshot(goal, snapshot)
            self.store.save_goal(goal)
        return snapshot

    def _record_snapshot(self, goal: Goal, snapshot: Snapshot) -> Goal:
        """
        Persist a snapshot and append it to the goal (returned, unsaved)

        Snapshots taken on a non-main branch are also appended to that
        branch's record.
        """
        self.store.save_snapshot(snapshot)
        updated = goal.model_copy(deep=True)
        updated.snapshots.append(snapshot.id)

        if snapshot.branch != MAIN_BRANCH_ID:
            branch = self.store.load_branch(goal.id, snapshot.branch)
            if branch is not None:
                branch = branch.model_copy(deep=True)
                branch.snapshots.append(snapshot.id)
                branch.updated = snapshot.created
                branch.progress = snapshot.progress
                branch.current_state = snapshot.current_state
                self.store.save_branch(branch)
        return updated

    # ============================================
    # Branches
    # ============================================

    def get_branch(self, goal_id: str, branch_id: str) -> Optional[Branch]:
        return self.store.load_branch(goal_id, branch_id)

    def get_branches(self, goal_id: str) -> List[Branch]:
        return self.store.load_all_branches(goal_id)

    def create_goal_branch(self, goal_id: str, name: str, description: str = "") -> Branch:
        """
        Snapshot the goal (branch_create) and start a branch rooted there

        Raises:
            NotFoundError: Goal does not exist
            BranchConflictError: Slug collision under the fail policy
        """
        with self.lock:
            goal = self.require(goal_id)
            snapshot = create_snapshot(
                goal,
                f"Branch created: {name}",
                f"Starting exploration: {description or name}",
                SnapshotTrigger.BRANCH_CREATE,
            )

            # validate against the goal as it will look once the snapshot lands
            staged = goal.model_copy(deep=True)
            staged.snapshots.append(snapshot.id)
            branch = create_branch(
                staged,
                name,
                description,
                existing_ids=self.store.list_branches(goal_id),
                policy=self.settings.branch_collision,
            )

            goal = self._record_snapshot(goal, snapshot)
            self.store.save_branch(branch)
            goal.branches.append(
                BranchReference(id=branch.id, name=branch.name, status=BranchStatus.ACTIVE, snapshot=snapshot.id)
            )
            self.store.save_goal(goal)
            self.indexer.rebuild()

        logger.info(f"Created branch {branch.id} on goal {goal_id}")
        return branch

    def switch_branch(self, goal_id: str, branch_id: str) -> Goal:
        """
        Raises:
            NotFoundError: Goal or branch does not exist
            InvalidTransitionError: Branch is not active
        """
        with self.lock:
            goal = self.require(goal_id)
            goal = switch_branch(goal, branch_id, self.store.list_branches(goal_id))
            self.store.save_goal(goal)
            self.indexer.rebuild()
        return goal

    def abandon_goal_branch(
        self,
        goal_id: str,
        branch_id: str,
        reason: str,
        decided_by: Optional[str] = None,
    ) -> Branch:
        """
        Resolve a branch as abandoned and mirror it on the goal's reference

        If the abandoned branch was current, branch_main becomes current.
        """
        with self.lock:
            goal = self.require(goal_id)
            branch = self._require_branch(goal_id, branch_id)
            abandoned = abandon_branch(branch, reason, self._actor(decided_by))

            goal = goal.model_copy(deep=True)
            ref = goal.branch_ref(branch_id)
            if ref is None:
                ref = BranchReference(id=branch.id, name=branch.name)
                goal.branches.append(ref)
            was_current = bool(ref.current)
            ref.status = BranchStatus.ABANDONED
            ref.reason = reason

            if was_current:
                goal = switch_branch(goal, MAIN_BRANCH_ID)
            goal = update_goal(goal, {}, updated_by=self._actor(decided_by))

            self.store.save_branch(abandoned)
            self.store.save_goal(goal)
            self.indexer.rebuild()

        logger.info(f"Abandoned branch {branch_id} on goal {goal_id}: {reason}")
        return abandoned

    def merge_goal_branch(
        self,
        goal_id: str,
        branch_id: str,
        target: str = MAIN_BRANCH_ID,
        summary: str = "",
        decided_by: Optional[str] = None,
    ) -> Branch:
        """
        Merge a branch into target

        The target becomes the current branch and a milestone snapshot is
        taken on it; that snapshot is recorded as the merge snapshot.

        Raises:
            NotFoundError: Goal, branch or target does not exist
            InvalidTransitionError: Branch already resolved, branch_main,
                or target not active
        """
        decider = self._actor(decided_by)
        with self.lock:
            goal = self.require(goal_id)
            branch = self._require_branch(goal_id, branch_id)

            # validate both sides before anything is written
            merge_branch(branch, target, None, decider)
            switched = switch_branch(goal, target, self.store.list_branches(goal_id))

            snapshot = create_snapshot(
                switched,
                f"Branch merged: {branch.name}",
                summary or f"Merged {branch.id} into {target}",
                SnapshotTrigger.MILESTONE,
            )
            merged = merge_branch(branch, target, snapshot.id, decider)

            goal = self._record_snapshot(switched, snapshot)
            ref = goal.branch_ref(branch_id)
            if ref is None:
                ref = BranchReference(id=branch.id, name=branch.name)
                goal.branches.append(ref)
            ref.status = BranchStatus.MERGED
            ref.current = None
            goal = update_goal(goal, {}, updated_by=decider)

            self.store.save_branch(merged)
            self.store.save_goal(goal)
            self.indexer.rebuild()

        logger.info(f"Merged branch {branch_id} into {target} on goal {goal_id}")
        return merged

    def _require_branch(self, goal_id: str, branch_id: str) -> Branch:
        if branch_id == MAIN_BRANCH_ID:
            raise InvalidTransitionError(
                BranchStatus.ACTIVE.value,
                "resolved",
                entity_id=branch_id,
                reason="the main branch cannot be resolved",
            )
        branch = self.store.load_branch(goal_id, branch_id)
        if branch is None:
            raise NotFoundError("Branch", branch_id)
        return branch

    # ============================================
    # Projects
    # ============================================

    def get_or_create_project(self, name: str, path: str, description: str = "") -> Project:
        """Project matching path, or a newly created one"""
        with self.lock:
            existing = self.store.find_project_by_path(path)
            if existing is not None:
                return existing

            project = create_project(CreateProjectInput(name=name, path=path, description=description))
            if self.store.load_project(project.id) is not None:
                raise ValidationError(
                    f"Project id {project.id} already used by a different path",
                    field="name",
                    entity_id=project.id,
                )
            self.store.save_project(project)

        logger.info(f"Created project {project.id} at {project.path}")
        return project

    def get_project(self, project_id: str) -> Optional[Project]:
        return self.store.load_project(project_id)

    def get_projects(self) -> List[Project]:
        return self.store.load_all_projects()

    def _sync_project(self, goal: Goal) -> None:
        """File the goal under its project's list for its current status"""
        project = None
        if goal.project.startswith("proj_") and "/" not in goal.project and "\\" not in goal.project:
            project = self.store.load_project(goal.project)
        if project is None:
            project = self.store.find_project_by_path(goal.project)
        if project is None:
            return
        self.store.save_project(add_goal_to_project(project, goal.id, goal.status.value))

    # ============================================
    # Index
    # ============================================

    def rebuild_index(self) -> GoalIndex:
        with self.lock:
            return self.indexer.rebuild()

    def get_index(self) -> GoalIndex:
        return self.indexer.get_index()


def _without_reference(goal: Goal, removed_id: str) -> Optional[Goal]:
    """Copy of goal with removed_id dropped from its relations, or None if it had none"""
    updates: Dict[str, Any] = {}
    for name in ("children", "depends_on", "informs"):
        ids = getattr(goal, name)
        if removed_id in ids:
            updates[name] = [gid for gid in ids if gid != removed_id]
    for name in ("parent", "evolved_from"):
        if getattr(goal, name) == removed_id:
            updates[name] = None

    if not updates:
        return None
    updates["updated"] = utc_now_iso()
    return goal.model_copy(deep=True, update=updates)
