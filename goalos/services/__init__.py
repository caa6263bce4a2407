"""
GoalOS services

Orchestration on top of the core: each mutating operation runs
mutation -> snapshot -> persist -> project bookkeeping -> index rebuild
while holding the store lock.
"""

from goalos.services.goal_service import GoalService
from goalos.services.session_service import SessionService

__all__ = ["GoalService", "SessionService"]
