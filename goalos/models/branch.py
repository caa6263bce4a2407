"""
Branch Model

An alternative exploration path for a goal, rooted at the snapshot that
was latest when the branch was created. Branches resolve exactly once:
active -> merged or active -> abandoned.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from goalos.models.base import Record, slugify

MAIN_BRANCH_ID = "branch_main"
BRANCH_SLUG_LIMIT = 20


class BranchStatus(str, Enum):
    """Branch status enumeration"""

    ACTIVE = "active"
    MERGED = "merged"
    ABANDONED = "abandoned"


class BranchCollisionPolicy(str, Enum):
    """What to do when a new branch name slugifies onto an existing id"""

    FAIL = "fail"  # raise BranchConflictError
    SUFFIX = "suffix"  # branch_x -> branch_x_2, branch_x_3, ...


class BranchResolution(BaseModel):
    status: BranchStatus
    reason: Optional[str] = None
    decided: str
    decided_by: str


class Branch(Record):
    """Branch record (schema_version 1)"""

    id: str
    goal_id: str
    created: str
    updated: str

    name: str
    description: str = ""

    status: BranchStatus = BranchStatus.ACTIVE
    parent_branch: str = MAIN_BRANCH_ID
    branch_point: str = ""  # snapshot id, empty when the goal had none

    # Branch-specific state (diverged from main)
    current_state: Optional[str] = None
    progress: Optional[float] = Field(None, ge=0.0, le=1.0)

    snapshots: List[str] = Field(default_factory=list)

    resolution: Optional[BranchResolution] = None
    merged_to: Optional[str] = None
    merge_snapshot: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None


def generate_branch_id(name: str) -> str:
    """branch_ + slug of name, truncated to 20 characters"""
    return f"branch_{slugify(name, BRANCH_SLUG_LIMIT)}"
