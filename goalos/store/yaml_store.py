"""
YAML Record Store

One human-editable YAML document per Goal, Snapshot, Branch and Project,
a single SessionState document, and the JSON index. Every write goes to a
temporary file in the target directory and is moved into place with
os.replace, so readers never observe a half-written record.

Read paths return None (or an empty list) for missing records. Documents
whose schema_version is not 1, or that do not match the record shape,
raise SchemaError.

Writes through this class are not serialised across processes; use
GoalService (which holds the store lock) for multi-process safety.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from goalos.config.settings import StoreSettings
from goalos.core.errors import SchemaError, StorageError
from goalos.models.base import SCHEMA_VERSION, to_document
from goalos.models.branch import Branch
from goalos.models.goal import Goal
from goalos.models.index import INDEX_SCHEMA_VERSION, GoalIndex
from goalos.models.project import Project, find_best_matching_project
from goalos.models.session_state import SessionState, create_empty_session_state
from goalos.models.snapshot import Snapshot
from goalos.store.paths import StorePaths

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class YamlStore:
    """File-backed Record Store rooted at settings.home"""

    def __init__(self, settings: StoreSettings):
        self.settings = settings
        self.paths = StorePaths.from_settings(settings)

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def save_goal(self, goal: Goal) -> Path:
        """
        Upsert a goal

        Archived goals are rewritten in place; everything else lives in
        the active area.
        """
        archived_path = self.paths.archived_goal(goal.id)
        target = archived_path if archived_path.exists() else self.paths.active_goal(goal.id)
        self._write_yaml(target, to_document(goal))
        logger.debug(f"Saved goal {goal.id} to {target}")
        return target

    def load_goal(self, goal_id: str) -> Optional[Goal]:
        """Load a goal, checking the active area then the archived one"""
        for path in (self.paths.active_goal(goal_id), self.paths.archived_goal(goal_id)):
            if path.exists():
                return self._read_record(path, Goal)
        return None

    def is_archived(self, goal_id: str) -> bool:
        return self.paths.archived_goal(goal_id).exists()

    def list_goals(self, include_archived: bool = False) -> List[str]:
        """Goal ids in the active area (plus archived when asked), sorted"""
        ids = set(self._list_ids(self.paths.active_dir))
        if include_archived:
            ids.update(self._list_ids(self.paths.archived_dir))
        return sorted(ids)

    def load_all_goals(self, include_archived: bool = True) -> List[Goal]:
        """Load every goal, sorted by id"""
        goals = []
        for goal_id in self.list_goals(include_archived=include_archived):
            goal = self.load_goal(goal_id)
            if goal is not None:
                goals.append(goal)
        return goals

    def archive_goal(self, goal_id: str) -> bool:
        """
        Move a goal from active to archived

        Returns:
            False if the goal is not currently in the active area
        """
        source = self.paths.active_goal(goal_id)
        if not source.exists():
            return False

        target = self.paths.archived_goal(goal_id)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            raise StorageError(f"Failed to archive goal: {e}", entity_id=goal_id) from e

        logger.info(f"Archived goal {goal_id}")
        return True

    def delete_goal(self, goal_id: str) -> bool:
        """
        Hard-delete a goal with its snapshots and branches

        Returns:
            False if nothing was removed
        """
        removed = False
        try:
            for path in (self.paths.active_goal(goal_id), self.paths.archived_goal(goal_id)):
                if path.exists():
                    path.unlink()
                    removed = True
            for directory in (
                self.paths.goal_snapshots_dir(goal_id),
                self.paths.goal_branches_dir(goal_id),
            ):
                if directory.exists():
                    shutil.rmtree(directory)
                    removed = True
        except OSError as e:
            raise StorageError(f"Failed to delete goal: {e}", entity_id=goal_id) from e

        if removed:
            logger.info(f"Deleted goal {goal_id}")
        return removed

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save_snapshot(self, snapshot: Snapshot) -> Path:
        path = self.paths.snapshot(snapshot.goal_id, snapshot.id)
        self._write_yaml(path, to_document(snapshot))
        logger.debug(f"Saved snapshot {snapshot.id} for goal {snapshot.goal_id}")
        return path

    def load_snapshot(self, goal_id: str, snapshot_id: str) -> Optional[Snapshot]:
        path = self.paths.snapshot(goal_id, snapshot_id)
        if not path.exists():
            return None
        return self._read_record(path, Snapshot)

    def list_snapshots(self, goal_id: str) -> List[str]:
        """Snapshot ids of a goal in chronological (= lexicographic) order"""
        return sorted(self._list_ids(self.paths.goal_snapshots_dir(goal_id)))

    def load_all_snapshots(self, goal_id: str) -> List[Snapshot]:
        snapshots = []
        for snapshot_id in self.list_snapshots(goal_id):
            snapshot = self.load_snapshot(goal_id, snapshot_id)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def delete_snapshot(self, goal_id: str, snapshot_id: str) -> bool:
        return self._unlink(self.paths.snapshot(goal_id, snapshot_id), snapshot_id)

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def save_branch(self, branch: Branch) -> Path:
        path = self.paths.branch(branch.goal_id, branch.id)
        self._write_yaml(path, to_document(branch))
        logger.debug(f"Saved branch {branch.id} for goal {branch.goal_id}")
        return path

    def load_branch(self, goal_id: str, branch_id: str) -> Optional[Branch]:
        path = self.paths.branch(goal_id, branch_id)
        if not path.exists():
            return None
        return self._read_record(path, Branch)

    def list_branches(self, goal_id: str) -> List[str]:
        return sorted(self._list_ids(self.paths.goal_branches_dir(goal_id)))

    def load_all_branches(self, goal_id: str) -> List[Branch]:
        branches = []
        for branch_id in self.list_branches(goal_id):
            branch = self.load_branch(goal_id, branch_id)
            if branch is not None:
                branches.append(branch)
        return branches

    def delete_branch(self, goal_id: str, branch_id: str) -> bool:
        return self._unlink(self.paths.branch(goal_id, branch_id), branch_id)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def save_project(self, project: Project) -> Path:
        path = self.paths.project(project.id)
        self._write_yaml(path, to_document(project))
        logger.debug(f"Saved project {project.id}")
        return path

    def load_project(self, project_id: str) -> Optional[Project]:
        path = self.paths.project(project_id)
        if not path.exists():
            return None
        return self._read_record(path, Project)

    def list_projects(self) -> List[str]:
        return sorted(self._list_ids(self.paths.projects_dir))

    def load_all_projects(self) -> List[Project]:
        projects = []
        for project_id in self.list_projects():
            project = self.load_project(project_id)
            if project is not None:
                projects.append(project)
        return projects

    def delete_project(self, project_id: str) -> bool:
        return self._unlink(self.paths.project(project_id), project_id)

    def find_project_by_path(self, path: str) -> Optional[Project]:
        """Most specific project whose path or alias contains path"""
        return find_best_matching_project(self.load_all_projects(), path)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def save_session_state(self, state: SessionState) -> Path:
        path = self.paths.session_state_file
        self._write_yaml(path, to_document(state))
        return path

    def load_session_state(self) -> SessionState:
        """Stored session state, or a fresh empty one when none exists"""
        path = self.paths.session_state_file
        if not path.exists():
            return create_empty_session_state(self.settings.device)
        return self._read_record(path, SessionState)

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def save_index(self, index: GoalIndex) -> Path:
        """Replace the whole index document"""
        path = self.paths.index_file
        content = json.dumps(to_document(index), indent=2, ensure_ascii=False)
        self._write_text(path, content + "\n")
        logger.debug(f"Saved index with {len(index.goals)} goals")
        return path

    def load_index(self) -> Optional[GoalIndex]:
        path = self.paths.index_file
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise SchemaError(f"Index is not valid JSON: {e}", path=str(path)) from e
        except OSError as e:
            raise StorageError(f"Failed to read index: {e}", path=str(path)) from e

        return self._validate(data, GoalIndex, path, expected_version=INDEX_SCHEMA_VERSION)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read_record(self, path: Path, model_cls: Type[RecordT]) -> RecordT:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SchemaError(f"Malformed YAML record: {e}", path=str(path)) from e
        except OSError as e:
            raise StorageError(f"Failed to read record: {e}", path=str(path)) from e

        return self._validate(data, model_cls, path, expected_version=SCHEMA_VERSION)

    @staticmethod
    def _validate(data: Any, model_cls: Type[RecordT], path: Path, expected_version: int) -> RecordT:
        if not isinstance(data, dict):
            raise SchemaError(f"{model_cls.__name__} record must be a mapping", path=str(path))

        version = data.get("schema_version")
        if version != expected_version:
            raise SchemaError(
                f"Unsupported schema_version {version!r} for {model_cls.__name__}",
                path=str(path),
            )

        try:
            return model_cls.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise SchemaError(
                f"Malformed {model_cls.__name__} record: {first.get('msg')}",
                path=str(path),
                field=field,
            ) from e

    def _write_yaml(self, path: Path, document: Dict[str, Any]) -> None:
        content = yaml.safe_dump(
            document,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
        self._write_text(path, content)

    @staticmethod
    def _write_text(path: Path, content: str) -> None:
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write record: {e}", path=str(path)) from e

    @staticmethod
    def _list_ids(directory: Path) -> List[str]:
        if not directory.exists():
            return []
        try:
            return [p.stem for p in directory.glob("*.yaml") if not p.name.startswith(".")]
        except OSError as e:
            raise StorageError(f"Failed to list records: {e}", path=str(directory)) from e

    @staticmethod
    def _unlink(path: Path, entity_id: str) -> bool:
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete record: {e}", entity_id=entity_id) from e
        return True
