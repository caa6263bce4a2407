"""
Project Model

Groups goals by codebase. A project matches a working directory through
its primary path or any alias, and keeps goal ids in four status lists.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from goalos.core.clock import utc_now_iso
from goalos.models.base import Record, coerce_input, require_text, slugify

PROJECT_SLUG_LIMIT = 30

# blocked goals stay listed as active
STATUS_LISTS: Dict[str, str] = {
    "active": "active_goals",
    "blocked": "active_goals",
    "paused": "paused_goals",
    "completed": "completed_goals",
    "abandoned": "abandoned_goals",
}


class AgentConfig(BaseModel):
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)


class Project(Record):
    """Project record (schema_version 1)"""

    id: str
    name: str
    path: str
    created: str
    updated: str

    repo: Optional[str] = None
    branch: str = "main"

    aliases: List[str] = Field(default_factory=list)
    auto_detect: bool = True

    description: str = ""

    active_goals: List[str] = Field(default_factory=list)
    paused_goals: List[str] = Field(default_factory=list)
    completed_goals: List[str] = Field(default_factory=list)
    abandoned_goals: List[str] = Field(default_factory=list)

    default_agents: List[AgentConfig] = Field(default_factory=list)
    tech_stack: List[str] = Field(default_factory=list)
    conventions: List[str] = Field(default_factory=list)


class CreateProjectInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    path: str
    description: str = ""
    repo: Optional[str] = None
    branch: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    auto_detect: bool = True
    tech_stack: List[str] = Field(default_factory=list)
    conventions: List[str] = Field(default_factory=list)


def generate_project_id(name: str) -> str:
    return f"proj_{slugify(name, PROJECT_SLUG_LIMIT)}"


def normalize_path(path: str) -> str:
    """Strip trailing slashes (but keep a bare '/')"""
    stripped = path.rstrip("/")
    return stripped or "/"


def create_project(data: Union[CreateProjectInput, Dict[str, Any]]) -> Project:
    """
    Create a new project

    Raises:
        ValidationError: If name or path is blank
    """
    payload = coerce_input(CreateProjectInput, data)
    require_text(payload.name, "name")
    require_text(payload.path, "path")

    now = utc_now_iso()
    return Project(
        id=generate_project_id(payload.name),
        name=payload.name,
        path=normalize_path(payload.path),
        created=now,
        updated=now,
        repo=payload.repo,
        branch=payload.branch or "main",
        aliases=list(payload.aliases),
        auto_detect=payload.auto_detect,
        description=payload.description,
        tech_stack=list(payload.tech_stack),
        conventions=list(payload.conventions),
    )


def add_goal_to_project(project: Project, goal_id: str, status: str = "active") -> Project:
    """
    Place a goal id in the list matching its status

    The id is removed from all four lists before being appended to the
    target one, so repeated calls with the same status are idempotent.
    """
    target = STATUS_LISTS.get(getattr(status, "value", status))
    if target is None:
        raise ValueError(f"Unknown goal status for project membership: {status}")

    updated = project.model_copy(deep=True)
    for list_name in ("active_goals", "paused_goals", "completed_goals", "abandoned_goals"):
        setattr(updated, list_name, [gid for gid in getattr(updated, list_name) if gid != goal_id])
    getattr(updated, target).append(goal_id)
    updated.updated = utc_now_iso()
    return updated


def all_project_goals(project: Project) -> List[str]:
    """All goal ids of a project: active, paused, completed, abandoned"""
    return [
        *project.active_goals,
        *project.paused_goals,
        *project.completed_goals,
        *project.abandoned_goals,
    ]


def _path_within(test_path: str, root: str) -> bool:
    root = normalize_path(root)
    if root == "/":
        return test_path.startswith("/")
    return test_path == root or test_path.startswith(root + "/")


def path_matches_project(project: Project, test_path: str) -> bool:
    """True if test_path is the project path, an alias, or inside either"""
    if not project.auto_detect:
        return False

    normalized = normalize_path(test_path)
    if _path_within(normalized, project.path):
        return True
    return any(_path_within(normalized, alias) for alias in project.aliases)


def find_best_matching_project(projects: Sequence[Project], test_path: str) -> Optional[Project]:
    """
    Find the most specific project for a path

    Specificity is the length of the longest matching root (primary path
    or alias). Ties keep the first project in iteration order.
    """
    normalized = normalize_path(test_path)
    best: Optional[Project] = None
    best_length = 0

    for project in projects:
        if not project.auto_detect:
            continue
        for root in [project.path, *project.aliases]:
            root = normalize_path(root)
            if _path_within(normalized, root) and len(root) > best_length:
                best = project
                best_length = len(root)

    return best
