"""
Snapshot Model

Immutable point-in-time capture of a goal's core fields. Snapshots of one
goal form a singly linked chain through previous_snapshot.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from goalos.core.clock import id_stamp_micros
from goalos.models.base import Record, random_suffix
from goalos.models.branch import MAIN_BRANCH_ID


class SnapshotTrigger(str, Enum):
    MANUAL = "manual"
    AUTO_PROGRESS = "auto_progress"
    BRANCH_CREATE = "branch_create"
    MILESTONE = "milestone"
    SESSION_END = "session_end"


class FieldChange(BaseModel):
    """
    One field-level difference

    Scalar changes use from/to; collection changes may use added/removed.
    """

    model_config = ConfigDict(populate_by_name=True)

    field: str
    from_: Optional[Any] = Field(None, alias="from")
    to: Optional[Any] = None
    added: Optional[Any] = None
    removed: Optional[Any] = None


class Snapshot(Record):
    """Snapshot record (schema_version 1)"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    goal_id: str
    created: str
    trigger: SnapshotTrigger = SnapshotTrigger.MANUAL

    # State at this moment
    current_state: str
    desired_state: str
    progress: float = Field(ge=0.0, le=1.0)
    status: str

    # What happened
    event: str
    summary: str = ""

    changes: List[FieldChange] = Field(default_factory=list)

    previous_snapshot: Optional[str] = None
    branch: str = MAIN_BRANCH_ID
    session: Optional[str] = None


def generate_snapshot_id() -> str:
    """
    Generate a new snapshot ID: snap_<YYYYMMDDHHMMSSffffff><2 base-36 chars>

    The microsecond prefix is strictly increasing within a process, so
    sorting snapshot ids lexicographically sorts them chronologically.
    """
    return f"snap_{id_stamp_micros()}{random_suffix(2)}"
