"""
Session State Model

Continuity layer for cross-device resume: what was being worked on, on
which branch, which files were touched and what was left to do.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from goalos.core.clock import utc_now_iso
from goalos.models.base import Record
from goalos.models.branch import MAIN_BRANCH_ID

EMPTY_RESUME_PROMPT = "No previous session context available."
RECENT_FILES_LIMIT = 10


class RecentFile(BaseModel):
    path: str
    last_edit: str


class ActiveAgent(BaseModel):
    id: str
    task: str
    started: str
    status: Literal["pending", "working", "completed", "failed"] = "pending"


class ActiveContext(BaseModel):
    goal: str = ""
    branch: str = MAIN_BRANCH_ID
    focus: str = ""

    recent_files: List[RecentFile] = Field(default_factory=list)
    pending_questions: List[str] = Field(default_factory=list)
    pending_tasks: List[str] = Field(default_factory=list)
    active_agents: List[ActiveAgent] = Field(default_factory=list)


class ParallelContext(BaseModel):
    goal: str
    project: str
    status: Literal["active", "paused"] = "active"
    last_summary: str = ""


class SessionState(Record):
    """Session state record (schema_version 1)"""

    last_updated: str
    last_device: str = "unknown"
    last_session: str = ""

    active_context: Optional[ActiveContext] = None

    resume_prompt: str = EMPTY_RESUME_PROMPT

    parallel_contexts: List[ParallelContext] = Field(default_factory=list)


def create_empty_session_state(device: str = "unknown") -> SessionState:
    return SessionState(last_updated=utc_now_iso(), last_device=device)


def generate_resume_prompt(state: SessionState) -> str:
    """Render the short 'where was I' prompt stored with the state"""
    if state.active_context is None:
        return "No previous session context available. What would you like to work on?"

    ctx = state.active_context
    lines: List[str] = [f"You were working on: **{ctx.focus}**", ""]

    if ctx.recent_files:
        lines.append("**Recent files:**")
        lines.extend(f"- {f.path}" for f in ctx.recent_files[:5])
        lines.append("")

    if ctx.pending_tasks:
        lines.append("**Next steps:**")
        lines.extend(f"- {task}" for task in ctx.pending_tasks)
        lines.append("")

    if ctx.pending_questions:
        lines.append("**Open questions:**")
        lines.extend(f"- {q}" for q in ctx.pending_questions)
        lines.append("")

    working = [a for a in ctx.active_agents if a.status == "working"]
    if working:
        lines.append("**Active agents:**")
        lines.extend(f"- {a.id}: {a.task}" for a in working)
        lines.append("")

    return "\n".join(lines)


def update_session_state(
    state: SessionState,
    session: Optional[str] = None,
    device: Optional[str] = None,
    goal: Optional[str] = None,
    branch: Optional[str] = None,
    focus: Optional[str] = None,
    files: Optional[List[RecentFile]] = None,
    questions: Optional[List[str]] = None,
    tasks: Optional[List[str]] = None,
    agents: Optional[List[ActiveAgent]] = None,
) -> SessionState:
    """
    Return a new state with the given context fields replaced

    Arguments left as None keep their previous value. The resume prompt
    is regenerated from the result.
    """
    context = (
        state.active_context.model_copy(deep=True)
        if state.active_context is not None
        else ActiveContext()
    )

    if goal is not None:
        context.goal = goal
    if branch is not None:
        context.branch = branch
    if focus is not None:
        context.focus = focus
    if files is not None:
        context.recent_files = list(files)[:RECENT_FILES_LIMIT]
    if questions is not None:
        context.pending_questions = list(questions)
    if tasks is not None:
        context.pending_tasks = list(tasks)
    if agents is not None:
        context.active_agents = list(agents)

    updated = state.model_copy(
        deep=True,
        update={
            "last_updated": utc_now_iso(),
            "last_device": device if device is not None else state.last_device,
            "last_session": session if session is not None else state.last_session,
            "active_context": context,
        },
    )
    updated.resume_prompt = generate_resume_prompt(updated)
    return updated


def add_parallel_context(state: SessionState, context: ParallelContext) -> SessionState:
    """Add a parallel work stream, replacing any existing one for the same goal"""
    parallel = [c for c in state.parallel_contexts]
    for i, existing in enumerate(parallel):
        if existing.goal == context.goal:
            parallel[i] = context
            break
    else:
        parallel.append(context)

    return state.model_copy(
        deep=True,
        update={"last_updated": utc_now_iso(), "parallel_contexts": parallel},
    )
