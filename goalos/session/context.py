"""
Session context rendering

Markdown text injected at session start (a resume block or an overview
of active goals) and a detailed dump of the session state.
"""

from typing import List, Optional

from goalos.models.project import Project
from goalos.models.session_state import SessionState
from goalos.services.goal_service import GoalService

START_GOALS_LIMIT = 5


def _percent(progress: float) -> int:
    return round(progress * 100)


def _active_goal_ids(goals: GoalService, project: Optional[Project]) -> List[str]:
    active = goals.query.active_goals()
    if project is None:
        return active

    members = set(project.active_goals)
    entries = goals.get_index().goals
    return [
        goal_id
        for goal_id in active
        if goal_id in members
        or (goal_id in entries and entries[goal_id].project in (project.id, project.path))
    ]


def generate_start_context(goals: GoalService, state: SessionState, cwd: Optional[str] = None) -> str:
    """
    Context shown when a session starts

    With a previous active goal: a resume block. Otherwise up to five
    active goals, restricted to the project containing cwd when one
    matches.
    """
    if state.active_context is None or not state.active_context.goal:
        project = goals.store.find_project_by_path(cwd) if cwd else None
        active_ids = _active_goal_ids(goals, project)

        if not active_ids:
            return "\n".join(
                [
                    "<session-context>",
                    "No active goals. What would you like to work on?",
                    "",
                    "Quick actions:",
                    '- "Create a goal for [description]" - Start tracking a new goal',
                    '- "Show my projects" - See available projects',
                    "</session-context>",
                ]
            )

        heading = f"## Active Goals: {project.name}" if project else "## Active Goals"
        lines = ["<session-context>", heading, ""]
        for goal_id in active_ids[:START_GOALS_LIMIT]:
            goal = goals.get(goal_id)
            if goal is not None:
                lines.append(f"- **{goal.title}** ({_percent(goal.progress)}%) - {goal.project}")
        if len(active_ids) > START_GOALS_LIMIT:
            lines.append(f"...and {len(active_ids) - START_GOALS_LIMIT} more")
        lines.extend(
            [
                "",
                "Quick actions:",
                '- "Continue [goal name]" - Resume work on a goal',
                '- "What was I doing?" - Show last session context',
                '- "Create a goal for [description]" - Start a new goal',
                "</session-context>",
            ]
        )
        return "\n".join(lines)

    goal = goals.get(state.active_context.goal)
    title = goal.title if goal else "Unknown goal"
    progress = _percent(goal.progress) if goal else 0

    return "\n".join(
        [
            "<session-context>",
            "## Resuming Previous Session",
            "",
            f"**Last active goal:** {title} ({progress}% complete)",
            f"**Last device:** {state.last_device}",
            f"**Last updated:** {state.last_updated}",
            "",
            state.resume_prompt,
            "",
            "Quick actions:",
            '- "Continue where I left off" - Resume this goal',
            '- "Switch to [project/goal]" - Change context',
            '- "Show my goals" - List all active goals',
            "</session-context>",
        ]
    )


def generate_detailed_context(state: SessionState) -> str:
    """Full markdown dump of the session state"""
    lines = [
        "## Session State Details",
        "",
        f"**Last Session:** {state.last_session}",
        f"**Last Device:** {state.last_device}",
        f"**Last Updated:** {state.last_updated}",
        "",
    ]

    ctx = state.active_context
    if ctx is not None:
        lines.extend(
            [
                "### Active Context",
                f"**Goal:** {ctx.goal}",
                f"**Branch:** {ctx.branch}",
                f"**Focus:** {ctx.focus}",
                "",
            ]
        )

        if ctx.recent_files:
            lines.append("### Recent Files")
            lines.extend(f"- {f.path} ({f.last_edit})" for f in ctx.recent_files)
            lines.append("")

        if ctx.pending_tasks:
            lines.append("### Pending Tasks")
            lines.extend(f"- [ ] {task}" for task in ctx.pending_tasks)
            lines.append("")

        if ctx.pending_questions:
            lines.append("### Open Questions")
            lines.extend(f"- {q}" for q in ctx.pending_questions)
            lines.append("")

        if ctx.active_agents:
            lines.append("### Active Agents")
            lines.extend(f"- **{a.id}** [{a.status}]: {a.task}" for a in ctx.active_agents)
            lines.append("")

    if state.parallel_contexts:
        lines.append("### Parallel Work Streams")
        lines.extend(f"- **{c.project}** [{c.status}]: {c.last_summary}" for c in state.parallel_contexts)
        lines.append("")

    return "\n".join(lines)
