"""
Session Service

Bookkeeping for the single SessionState record: which goal and branch
were active, what was in focus, recently touched files, open tasks and
questions, agents and parallel work streams.
"""

import logging
from typing import Callable, List, Optional

from goalos.config.settings import StoreSettings
from goalos.core.clock import utc_now_iso
from goalos.core.errors import NotFoundError
from goalos.models.base import require_text
from goalos.models.session_state import (
    RECENT_FILES_LIMIT,
    ActiveAgent,
    ParallelContext,
    RecentFile,
    SessionState,
    add_parallel_context,
    update_session_state,
)
from goalos.services.goal_service import GoalService

logger = logging.getLogger(__name__)


class SessionService:
    """Session Service: read-modify-write of SessionState under the store lock"""

    def __init__(self, settings: Optional[StoreSettings] = None, goals: Optional[GoalService] = None):
        self.goals = goals or GoalService(settings)
        self.settings = self.goals.settings
        self.store = self.goals.store
        self.lock = self.goals.lock

    def get_state(self) -> SessionState:
        return self.store.load_session_state()

    def _mutate(self, change: Callable[[SessionState], SessionState]) -> SessionState:
        with self.lock:
            state = change(self.store.load_session_state())
            self.store.save_session_state(state)
        return state

    def start_session(self, session_id: str) -> SessionState:
        """Record the new session id and this device"""
        logger.info(f"Session started: {session_id}")
        return self._mutate(
            lambda state: update_session_state(state, session=session_id, device=self.settings.device)
        )

    def end_session(
        self,
        session_id: str,
        focus: Optional[str] = None,
        files: Optional[List[RecentFile]] = None,
        tasks: Optional[List[str]] = None,
        questions: Optional[List[str]] = None,
    ) -> SessionState:
        """Record what the finished session left behind; None keeps the old value"""
        logger.info(f"Session ended: {session_id}")
        return self._mutate(
            lambda state: update_session_state(
                state,
                session=session_id,
                device=self.settings.device,
                focus=focus or None,
                files=files or None,
                tasks=tasks or None,
                questions=questions or None,
            )
        )

    def set_active_goal(self, goal_id: str, branch: Optional[str] = None) -> SessionState:
        """
        Make goal_id the active goal, focused on its title

        Raises:
            NotFoundError: Goal does not exist
        """
        goal = self.goals.get(goal_id)
        if goal is None:
            raise NotFoundError("Goal", goal_id)

        return self._mutate(
            lambda state: update_session_state(
                state,
                goal=goal.id,
                branch=branch or goal.current_branch_id,
                focus=goal.title,
            )
        )

    def set_focus(self, focus: str) -> SessionState:
        require_text(focus, "focus")
        return self._mutate(lambda state: update_session_state(state, focus=focus))

    def add_recent_file(self, path: str) -> SessionState:
        """Move path to the front of recent files (at most 10 kept)"""
        require_text(path, "path")

        def change(state: SessionState) -> SessionState:
            current = state.active_context.recent_files if state.active_context else []
            files = [RecentFile(path=path, last_edit=utc_now_iso())]
            files.extend(f for f in current if f.path != path)
            return update_session_state(state, files=files[:RECENT_FILES_LIMIT])

        return self._mutate(change)

    def add_pending_task(self, task: str) -> SessionState:
        require_text(task, "task")

        def change(state: SessionState) -> SessionState:
            tasks = list(state.active_context.pending_tasks) if state.active_context else []
            if task not in tasks:
                tasks.append(task)
            return update_session_state(state, tasks=tasks)

        return self._mutate(change)

    def complete_pending_task(self, task: str) -> SessionState:
        def change(state: SessionState) -> SessionState:
            tasks = state.active_context.pending_tasks if state.active_context else []
            return update_session_state(state, tasks=[t for t in tasks if t != task])

        return self._mutate(change)

    def add_pending_question(self, question: str) -> SessionState:
        require_text(question, "question")

        def change(state: SessionState) -> SessionState:
            questions = list(state.active_context.pending_questions) if state.active_context else []
            if question not in questions:
                questions.append(question)
            return update_session_state(state, questions=questions)

        return self._mutate(change)

    def update_agent(self, agent: ActiveAgent) -> SessionState:
        """Insert or replace an agent by id"""

        def change(state: SessionState) -> SessionState:
            agents = list(state.active_context.active_agents) if state.active_context else []
            for i, existing in enumerate(agents):
                if existing.id == agent.id:
                    agents[i] = agent
                    break
            else:
                agents.append(agent)
            return update_session_state(state, agents=agents)

        return self._mutate(change)

    def add_parallel(self, context: ParallelContext) -> SessionState:
        return self._mutate(lambda state: add_parallel_context(state, context))
