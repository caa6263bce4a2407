"""GoalOS - Persistent goal graph with snapshots, branches and a query index.

GoalOS keeps goals (Current State -> Desired State transformations) as
human-editable YAML records, versions them with immutable snapshots and
exploration branches, and derives a JSON index for fast lookups.

Usage:
    from goalos import GoalService, StoreSettings

    service = GoalService(StoreSettings.resolve())
    goal = service.create(CreateGoalInput(
        title="Ship SSE transport",
        current_state="Polling only",
        desired_state="Server-sent events in production",
        project="/work/api",
    ))
    service.set_progress(goal.id, 0.4)
"""

__version__ = "0.1.0"

from goalos.config.settings import StoreSettings
from goalos.models.goal import CreateGoalInput, Goal, UpdateGoalInput
from goalos.services.goal_service import GoalService
from goalos.services.session_service import SessionService

__all__ = [
    "__version__",
    "CreateGoalInput",
    "Goal",
    "GoalService",
    "SessionService",
    "StoreSettings",
    "UpdateGoalInput",
]
