"""On-disk layout of a goal store, derived from StoreSettings.home"""

from dataclasses import dataclass
from pathlib import Path

from goalos.config.settings import StoreSettings
from goalos.core.errors import ValidationError


@dataclass(frozen=True)
class StorePaths:
    """
    Layout under <home>:

        goals/active/<goal_id>.yaml
        goals/archived/<goal_id>.yaml
        goals/snapshots/<goal_id>/<snap_id>.yaml
        goals/branches/<goal_id>/<branch_id>.yaml
        goals/projects/<proj_id>.yaml
        goals/session-state.yaml
        goals/index.json
        goals/.lock
    """

    home: Path

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> "StorePaths":
        return cls(home=Path(settings.home))

    @property
    def goals_dir(self) -> Path:
        return self.home / "goals"

    @property
    def active_dir(self) -> Path:
        return self.goals_dir / "active"

    @property
    def archived_dir(self) -> Path:
        return self.goals_dir / "archived"

    @property
    def snapshots_dir(self) -> Path:
        return self.goals_dir / "snapshots"

    @property
    def branches_dir(self) -> Path:
        return self.goals_dir / "branches"

    @property
    def projects_dir(self) -> Path:
        return self.goals_dir / "projects"

    @property
    def session_state_file(self) -> Path:
        return self.goals_dir / "session-state.yaml"

    @property
    def index_file(self) -> Path:
        return self.goals_dir / "index.json"

    @property
    def lock_file(self) -> Path:
        return self.goals_dir / ".lock"

    def active_goal(self, goal_id: str) -> Path:
        return self.active_dir / f"{_checked(goal_id)}.yaml"

    def archived_goal(self, goal_id: str) -> Path:
        return self.archived_dir / f"{_checked(goal_id)}.yaml"

    def goal_snapshots_dir(self, goal_id: str) -> Path:
        return self.snapshots_dir / _checked(goal_id)

    def snapshot(self, goal_id: str, snapshot_id: str) -> Path:
        return self.goal_snapshots_dir(goal_id) / f"{_checked(snapshot_id)}.yaml"

    def goal_branches_dir(self, goal_id: str) -> Path:
        return self.branches_dir / _checked(goal_id)

    def branch(self, goal_id: str, branch_id: str) -> Path:
        return self.goal_branches_dir(goal_id) / f"{_checked(branch_id)}.yaml"

    def project(self, project_id: str) -> Path:
        return self.projects_dir / f"{_checked(project_id)}.yaml"

    def ensure_base_dirs(self) -> None:
        """Create the fixed top-level areas (goal sub-areas stay lazy)"""
        for directory in (self.active_dir, self.archived_dir, self.projects_dir):
            directory.mkdir(parents=True, exist_ok=True)


def _checked(entity_id: str) -> str:
    """Reject ids that would escape their directory"""
    if not entity_id or "/" in entity_id or "\\" in entity_id or entity_id.startswith("."):
        raise ValidationError(f"Invalid record id: {entity_id!r}", field="id")
    return entity_id
