"""GoalOS CLI - Command-line interface for the goal store."""

import functools
import logging
import os
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from goalos import __version__
from goalos.config.settings import StoreSettings
from goalos.core.errors import GoalOSError
from goalos.models.goal import Goal, GoalStatus, Priority
from goalos.models.index import EdgeType
from goalos.services.goal_service import LINK_TYPES, GoalService
from goalos.services.session_service import SessionService
from goalos.session.context import generate_detailed_context, generate_start_context

console = Console()

STATUS_STYLES = {
    "active": "green",
    "paused": "yellow",
    "blocked": "magenta",
    "completed": "cyan",
    "abandoned": "red",
    "merged": "cyan",
}


def _styled(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def handle_errors(func):
    """Print GoalOS errors in red and exit 1"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except GoalOSError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            click.get_current_context().exit(1)

    return wrapper


def _goals(ctx: click.Context) -> GoalService:
    if "goals" not in ctx.obj:
        ctx.obj["goals"] = GoalService(ctx.obj["settings"])
    return ctx.obj["goals"]


def _sessions(ctx: click.Context) -> SessionService:
    if "sessions" not in ctx.obj:
        ctx.obj["sessions"] = SessionService(goals=_goals(ctx))
    return ctx.obj["sessions"]


def _percent(progress: float) -> str:
    return f"{round(progress * 100)}%"


@click.group()
@click.version_option(version=__version__, prog_name="goalos")
@click.option("--home", type=click.Path(file_okay=False, path_type=Path), help="Store home (default ~/.goalos)")
@click.option("--actor", help="Actor recorded on changes")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, home: Optional[Path], actor: Optional[str], verbose: bool):
    """GoalOS - Versioned goal graph for long-running work."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = StoreSettings.resolve(home=home, actor=actor)
    except GoalOSError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        ctx.exit(1)


# ============================================
# goal
# ============================================

@cli.group(name="goal")
def goal_group():
    """Goal management commands"""
    pass


@goal_group.command("create")
@click.argument("title")
@click.option("--current", "-c", "current_state", required=True, help="Current state")
@click.option("--desired", "-d", "desired_state", required=True, help="Desired state")
@click.option("--project", "-p", help="Project id or path (default: cwd)")
@click.option("--description", default="", help="Longer description")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--priority", type=click.Choice([p.value for p in Priority]), default=Priority.MEDIUM.value)
@click.option("--parent", help="Parent goal id")
@click.option("--criteria", multiple=True, help="Verification criterion (repeatable)")
@click.pass_context
@handle_errors
def create_goal_cmd(
    ctx: click.Context,
    title: str,
    current_state: str,
    desired_state: str,
    project: Optional[str],
    description: str,
    tags: Tuple[str, ...],
    priority: str,
    parent: Optional[str],
    criteria: Tuple[str, ...],
):
    """Create a new goal"""
    data = {
        "title": title,
        "current_state": current_state,
        "desired_state": desired_state,
        "project": project or os.getcwd(),
        "description": description,
        "tags": list(tags),
        "priority": priority,
        "parent": parent,
    }
    if criteria:
        data["verification"] = {"criteria": list(criteria)}

    goal = _goals(ctx).create(data)
    console.print(f"[green]✓ Goal created: {goal.id}[/green]")
    console.print(f"  {escape(goal.title)}")


@goal_group.command("list")
@click.option("--status", type=click.Choice([s.value for s in GoalStatus]), help="Filter by status")
@click.option("--project", help="Filter by project")
@click.option("--tag", "tags", multiple=True, help="Filter by tag (repeatable, all must match)")
@click.option("--all", "include_archived", is_flag=True, help="Include archived goals")
@click.pass_context
@handle_errors
def list_goals_cmd(ctx: click.Context, status: Optional[str], project: Optional[str], tags: Tuple[str, ...], include_archived: bool):
    """List goals"""
    service = _goals(ctx)
    index = service.get_index()

    goal_ids = list(index.goals) if include_archived else service.list()
    if status:
        matching = set(service.query.by_status(status))
        goal_ids = [gid for gid in goal_ids if gid in matching]
    if project:
        matching = set(service.query.by_project(project))
        goal_ids = [gid for gid in goal_ids if gid in matching]
    if tags:
        matching = set(service.query.by_tags(tags))
        goal_ids = [gid for gid in goal_ids if gid in matching]

    if not goal_ids:
        console.print("[yellow]No goals found[/yellow]")
        return

    table = Table(title=f"Goals (showing {len(goal_ids)})")
    table.add_column("Goal ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Project", style="dim")

    for goal_id in goal_ids:
        entry = index.goals.get(goal_id)
        if entry is None:
            continue
        table.add_row(goal_id, escape(entry.title[:50]), _styled(entry.status), _percent(entry.progress), escape(entry.project))

    console.print(table)


def _render_goal(goal: Goal) -> None:
    lines = [
        f"[cyan]Goal ID:[/cyan] {goal.id}",
        f"[cyan]Title:[/cyan] {escape(goal.title)}",
        f"[cyan]Status:[/cyan] {_styled(goal.status.value)}",
        f"[cyan]Progress:[/cyan] {_percent(goal.progress)}",
        f"[cyan]Priority:[/cyan] {goal.priority.value}",
        f"[cyan]Project:[/cyan] {escape(goal.project)}",
        f"[cyan]Current:[/cyan] {escape(goal.current_state)}",
        f"[cyan]Desired:[/cyan] {escape(goal.desired_state)}",
        f"[cyan]Branch:[/cyan] {goal.current_branch_id}",
        f"[cyan]Updated:[/cyan] {goal.updated} by {escape(goal.last_touched_by)}",
    ]
    if goal.tags:
        lines.append(f"[cyan]Tags:[/cyan] {escape(', '.join(goal.tags))}")
    if goal.parent:
        lines.append(f"[cyan]Parent:[/cyan] {goal.parent}")
    if goal.children:
        lines.append(f"[cyan]Children:[/cyan] {', '.join(goal.children)}")
    if goal.depends_on:
        lines.append(f"[cyan]Depends on:[/cyan] {', '.join(goal.depends_on)}")
    if goal.verification.criteria:
        lines.append("[cyan]Criteria:[/cyan]")
        lines.extend(f"  - {escape(c)}" for c in goal.verification.criteria)
    if goal.context.learnings:
        lines.append("[cyan]Learnings:[/cyan]")
        lines.extend(f"  - {escape(item)}" for item in goal.context.learnings)
    lines.append(f"[cyan]Snapshots:[/cyan] {len(goal.snapshots)}")

    console.print(Panel("\n".join(lines), title="Goal Details", border_style="cyan"))


@goal_group.command("show")
@click.argument("goal_id")
@click.pass_context
@handle_errors
def show_goal_cmd(ctx: click.Context, goal_id: str):
    """Show goal details"""
    _render_goal(_goals(ctx).require(goal_id))


@goal_group.command("complete")
@click.argument("goal_id")
@click.option("--summary", help="Completion summary (adds a milestone snapshot)")
@click.pass_context
@handle_errors
def complete_goal_cmd(ctx: click.Context, goal_id: str, summary: Optional[str]):
    """Mark a goal completed"""
    goal = _goals(ctx).complete(goal_id, summary=summary)
    console.print(f"[green]✓ Goal completed: {goal.id}[/green]")


@goal_group.command("abandon")
@click.argument("goal_id")
@click.argument("reason")
@click.pass_context
@handle_errors
def abandon_goal_cmd(ctx: click.Context, goal_id: str, reason: str):
    """Abandon a goal"""
    goal = _goals(ctx).abandon(goal_id, reason)
    console.print(f"[yellow]Goal abandoned: {goal.id}[/yellow]")


@goal_group.command("pause")
@click.argument("goal_id")
@click.pass_context
@handle_errors
def pause_goal_cmd(ctx: click.Context, goal_id: str):
    """Pause an active goal"""
    goal = _goals(ctx).pause(goal_id)
    console.print(f"[yellow]Goal paused: {goal.id}[/yellow]")


@goal_group.command("resume")
@click.argument("goal_id")
@click.pass_context
@handle_errors
def resume_goal_cmd(ctx: click.Context, goal_id: str):
    """Resume a paused or blocked goal"""
    goal = _goals(ctx).resume(goal_id)
    console.print(f"[green]✓ Goal resumed: {goal.id}[/green]")


@goal_group.command("progress")
@click.argument("goal_id")
@click.argument("value", type=float)
@click.pass_context
@handle_errors
def progress_goal_cmd(ctx: click.Context, goal_id: str, value: float):
    """Set progress (0.0 - 1.0, clamped)"""
    goal = _goals(ctx).set_progress(goal_id, value)
    console.print(f"[green]✓ Progress: {_percent(goal.progress)}[/green]")


@goal_group.command("snapshot")
@click.argument("goal_id")
@click.argument("event")
@click.option("--summary", default="", help="Snapshot summary")
@click.pass_context
@handle_errors
def snapshot_goal_cmd(ctx: click.Context, goal_id: str, event: str, summary: str):
    """Take a manual snapshot"""
    snapshot = _goals(ctx).create_manual_snapshot(goal_id, event, summary)
    console.print(f"[green]✓ Snapshot created: {snapshot.id}[/green]")


@goal_group.command("history")
@click.argument("goal_id")
@click.pass_context
@handle_errors
def history_goal_cmd(ctx: click.Context, goal_id: str):
    """Show snapshot history"""
    service = _goals(ctx)
    service.require(goal_id)
    snapshots = service.get_snapshots(goal_id)

    if not snapshots:
        console.print("[yellow]No snapshots found[/yellow]")
        return

    table = Table(title=f"History of {goal_id}")
    table.add_column("Created", style="dim", no_wrap=True)
    table.add_column("Trigger", style="magenta")
    table.add_column("Event")
    table.add_column("Progress", justify="right")
    table.add_column("Branch", style="cyan")

    for snapshot in snapshots:
        table.add_row(
            snapshot.created[:19],
            snapshot.trigger.value,
            escape(snapshot.event),
            _percent(snapshot.progress),
            snapshot.branch,
        )
    console.print(table)


@goal_group.command("branch")
@click.argument("goal_id")
@click.argument("name")
@click.option("--description", default="", help="What this branch explores")
@click.pass_context
@handle_errors
def branch_goal_cmd(ctx: click.Context, goal_id: str, name: str, description: str):
    """Create an exploration branch"""
    branch = _goals(ctx).create_goal_branch(goal_id, name, description)
    console.print(f"[green]✓ Branch created: {branch.id}[/green]")


@goal_group.command("branches")
@click.argument("goal_id")
@click.pass_context
@handle_errors
def branches_goal_cmd(ctx: click.Context, goal_id: str):
    """List a goal's branches"""
    goal = _goals(ctx).require(goal_id)

    table = Table(title=f"Branches of {goal_id}")
    table.add_column("Branch ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Current", justify="center")
    table.add_column("Reason", style="dim")

    for ref in goal.branches:
        table.add_row(
            ref.id,
            escape(ref.name),
            _styled(ref.status.value),
            "*" if ref.current else "",
            escape(ref.reason or ""),
        )
    console.print(table)


@goal_group.command("switch")
@click.argument("goal_id")
@click.argument("branch_id")
@click.pass_context
@handle_errors
def switch_goal_cmd(ctx: click.Context, goal_id: str, branch_id: str):
    """Switch the goal's current branch"""
    goal = _goals(ctx).switch_branch(goal_id, branch_id)
    console.print(f"[green]✓ Current branch: {goal.current_branch_id}[/green]")


@goal_group.command("abandon-branch")
@click.argument("goal_id")
@click.argument("branch_id")
@click.argument("reason")
@click.pass_context
@handle_errors
def abandon_branch_cmd(ctx: click.Context, goal_id: str, branch_id: str, reason: str):
    """Abandon an exploration branch"""
    branch = _goals(ctx).abandon_goal_branch(goal_id, branch_id, reason)
    console.print(f"[yellow]Branch abandoned: {branch.id}[/yellow]")


@goal_group.command("merge-branch")
@click.argument("goal_id")
@click.argument("branch_id")
@click.option("--into", "target", default="branch_main", help="Target branch")
@click.option("--summary", default="", help="Merge summary")
@click.pass_context
@handle_errors
def merge_branch_cmd(ctx: click.Context, goal_id: str, branch_id: str, target: str, summary: str):
    """Merge an exploration branch"""
    branch = _goals(ctx).merge_goal_branch(goal_id, branch_id, target=target, summary=summary)
    console.print(f"[green]✓ Branch merged: {branch.id} -> {branch.merged_to}[/green]")


@goal_group.command("search")
@click.argument("text")
@click.pass_context
@handle_errors
def search_goal_cmd(ctx: click.Context, text: str):
    """Search goal titles"""
    service = _goals(ctx)
    goal_ids = service.query.search(text)
    if not goal_ids:
        console.print("[yellow]No results found[/yellow]")
        return

    index = service.get_index()
    console.print(f"[cyan]Found {len(goal_ids)} results:[/cyan]")
    for goal_id in goal_ids:
        entry = index.goals[goal_id]
        console.print(f"  • {goal_id} - {escape(entry.title)} ({entry.status}, {_percent(entry.progress)})")


@goal_group.command("archive")
@click.argument("goal_id")
@click.pass_context
@handle_errors
def archive_goal_cmd(ctx: click.Context, goal_id: str):
    """Move a goal to the archive"""
    if _goals(ctx).archive(goal_id):
        console.print(f"[green]✓ Goal archived: {goal_id}[/green]")
    else:
        console.print(f"[yellow]Goal already archived: {goal_id}[/yellow]")


@goal_group.command("purge")
@click.argument("goal_id")
@click.confirmation_option(prompt="Permanently delete this goal and its history?")
@click.pass_context
@handle_errors
def purge_goal_cmd(ctx: click.Context, goal_id: str):
    """Permanently delete a goal"""
    if _goals(ctx).purge(goal_id):
        console.print(f"[green]✓ Goal purged: {goal_id}[/green]")
    else:
        console.print(f"[red]Goal not found: {goal_id}[/red]")
        ctx.exit(1)


@goal_group.command("learn")
@click.argument("goal_id")
@click.argument("learning")
@click.pass_context
@handle_errors
def learn_goal_cmd(ctx: click.Context, goal_id: str, learning: str):
    """Record a learning on a goal"""
    _goals(ctx).add_learning(goal_id, learning)
    console.print(f"[green]✓ Learning recorded on {goal_id}[/green]")


@goal_group.command("decide")
@click.argument("goal_id")
@click.argument("decision")
@click.option("--rationale", required=True, help="Why")
@click.option("--irreversible", is_flag=True, help="Mark the decision irreversible")
@click.pass_context
@handle_errors
def decide_goal_cmd(ctx: click.Context, goal_id: str, decision: str, rationale: str, irreversible: bool):
    """Record a decision on a goal"""
    _goals(ctx).add_decision(goal_id, decision, rationale, reversible=not irreversible)
    console.print(f"[green]✓ Decision recorded on {goal_id}[/green]")


@goal_group.command("link")
@click.argument("goal_id")
@click.argument("target_id")
@click.option(
    "--type",
    "relation",
    type=click.Choice([t.value for t in LINK_TYPES]),
    default=EdgeType.DEPENDS_ON.value,
    help="Relation from GOAL_ID to TARGET_ID",
)
@click.pass_context
@handle_errors
def link_goal_cmd(ctx: click.Context, goal_id: str, target_id: str, relation: str):
    """Link two goals"""
    _goals(ctx).link_goals(goal_id, target_id, relation)
    console.print(f"[green]✓ Linked {goal_id} -{relation}-> {target_id}[/green]")


@goal_group.command("tree")
@click.argument("goal_id")
@click.pass_context
@handle_errors
def tree_goal_cmd(ctx: click.Context, goal_id: str):
    """Show ancestors and descendants"""
    query = _goals(ctx).query
    ancestors = query.ancestors_of(goal_id)
    descendants = query.descendants_of(goal_id)

    console.print(f"[cyan]Ancestors:[/cyan] {' <- '.join(ancestors) if ancestors else '-'}")
    console.print(f"[cyan]Descendants:[/cyan] {', '.join(descendants) if descendants else '-'}")


# ============================================
# project
# ============================================

@cli.group(name="project")
def project_group():
    """Project commands"""
    pass


@project_group.command("list")
@click.pass_context
@handle_errors
def list_projects_cmd(ctx: click.Context):
    """List projects"""
    projects = _goals(ctx).get_projects()
    if not projects:
        console.print("[yellow]No projects found[/yellow]")
        return

    table = Table(title="Projects")
    table.add_column("Project ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Path", style="dim")
    table.add_column("Active", justify="right")
    table.add_column("Completed", justify="right")

    for project in projects:
        table.add_row(
            project.id,
            escape(project.name),
            escape(project.path),
            str(len(project.active_goals)),
            str(len(project.completed_goals)),
        )
    console.print(table)


@project_group.command("create")
@click.argument("name")
@click.argument("path", required=False)
@click.option("--description", default="", help="Project description")
@click.pass_context
@handle_errors
def create_project_cmd(ctx: click.Context, name: str, path: Optional[str], description: str):
    """Create a project (or show the one already covering PATH)"""
    project = _goals(ctx).get_or_create_project(name, path or os.getcwd(), description)
    console.print(f"[green]✓ Project: {project.id}[/green] ({escape(project.path)})")


# ============================================
# session
# ============================================

@cli.group(name="session")
def session_group():
    """Session continuity commands"""
    pass


@session_group.command("status")
@click.pass_context
@handle_errors
def session_status_cmd(ctx: click.Context):
    """Show the resume prompt"""
    state = _sessions(ctx).get_state()
    console.print(f"[dim]Last session {escape(state.last_session or '-')} on {escape(state.last_device)} at {state.last_updated}[/dim]")
    console.print(escape(state.resume_prompt))


@session_group.command("context")
@click.option("--detailed", is_flag=True, help="Full session state dump")
@click.pass_context
@handle_errors
def session_context_cmd(ctx: click.Context, detailed: bool):
    """Show the session-start context"""
    sessions = _sessions(ctx)
    state = sessions.get_state()
    if detailed:
        click.echo(generate_detailed_context(state))
    else:
        click.echo(generate_start_context(sessions.goals, state, os.getcwd()))


@session_group.command("focus")
@click.argument("goal_id")
@click.option("--branch", help="Branch to focus (default: goal's current branch)")
@click.option("--text", help="Focus description (default: goal title)")
@click.pass_context
@handle_errors
def session_focus_cmd(ctx: click.Context, goal_id: str, branch: Optional[str], text: Optional[str]):
    """Make GOAL_ID the active goal"""
    sessions = _sessions(ctx)
    state = sessions.set_active_goal(goal_id, branch=branch)
    if text:
        state = sessions.set_focus(text)
    console.print(f"[green]✓ Active goal: {goal_id}[/green] ({escape(state.active_context.focus)})")


# ============================================
# index / stats
# ============================================

@cli.group(name="index")
def index_group():
    """Index maintenance"""
    pass


@index_group.command("rebuild")
@click.pass_context
@handle_errors
def rebuild_index_cmd(ctx: click.Context):
    """Rebuild the index from goal records"""
    index = _goals(ctx).rebuild_index()
    console.print(f"[green]✓ Index rebuilt: {len(index.goals)} goals, {len(index.graph.edges)} edges[/green]")


@cli.command("stats")
@click.pass_context
@handle_errors
def stats_cmd(ctx: click.Context):
    """Show goal statistics"""
    stats = _goals(ctx).query.stats()
    console.print(f"[cyan]Total goals:[/cyan] {stats.total}")

    table = Table(title="By status")
    table.add_column("Status")
    table.add_column("Goals", justify="right")
    for status, count in stats.by_status.items():
        table.add_row(_styled(status), str(count))
    console.print(table)

    table = Table(title="By project")
    table.add_column("Project", style="dim")
    table.add_column("Goals", justify="right")
    for project, count in stats.by_project.items():
        table.add_row(escape(project), str(count))
    console.print(table)


if __name__ == "__main__":
    cli()
