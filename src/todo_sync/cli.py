"""Command-line interface for todo-sync."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import ConfigModel, get_config, load_config, save_config
from .errors import TodoSyncError
from .storage import LocalStore
from .sync import (
    AppMode,
    AuthClient,
    AuthSession,
    ConflictStrategy,
    LocalTodoService,
    SyncReport,
    SyncResult,
    TodoApiClient,
    TodoCoordinator,
)
from .todo import Priority, TodoItem
from .utils.datetime import parse_date_with_tz


console = Console()
logger = logging.getLogger(__name__)

T = TypeVar("T")

PRIORITY_STYLES = {
    Priority.HIGH: "bold red",
    Priority.MEDIUM: "yellow",
    Priority.LOW: "green",
}


def build_coordinator(config: ConfigModel) -> TodoCoordinator:
    """Wire the local store, API client and coordinator from config."""
    session = AuthSession.load(config.get_session_path())
    api = TodoApiClient(config.api_base_url, session, timeout=config.request_timeout)
    local = LocalTodoService(LocalStore(config.get_store_path()))
    return TodoCoordinator(
        local,
        api,
        mode=AppMode(config.mode),
        strategy=ConflictStrategy.parse(config.conflict_strategy),
    )


def run_with_coordinator(action: Callable[[TodoCoordinator], Awaitable[T]]) -> T:
    """Run an async action against a fresh coordinator, exiting 1 on known errors."""
    async def runner():
        coordinator = build_coordinator(get_config())
        try:
            return await action(coordinator)
        finally:
            await coordinator.api.close()

    try:
        return asyncio.run(runner())
    except TodoSyncError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def run_with_auth(action: Callable[[AuthClient], Awaitable[T]]) -> T:
    async def runner():
        config = get_config()
        session = AuthSession.load(config.get_session_path())
        client = AuthClient(config.api_base_url, session, timeout=config.request_timeout)
        try:
            return await action(client)
        finally:
            await client.close()

    try:
        return asyncio.run(runner())
    except TodoSyncError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def parse_due(value: Optional[str]):
    if not value:
        return None
    try:
        return parse_date_with_tz(value)
    except ValueError:
        raise click.BadParameter(f"Invalid date '{value}', expected YYYY-MM-DD")


async def resolve_todo(coordinator: TodoCoordinator, prefix: str) -> TodoItem:
    """Find a visible todo by full id or unique id prefix."""
    matches = [item for item in await coordinator.local.get_todos() if item.id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise TodoSyncError(f"No todo matches '{prefix}'")
    raise TodoSyncError(f"'{prefix}' is ambiguous ({len(matches)} matches)")


def sync_label(item: TodoItem) -> str:
    if item.is_local:
        return "[magenta]local[/magenta]"
    if item.needs_sync:
        return "[yellow]pending[/yellow]"
    return "[green]synced[/green]"


def render_todos(todos: List[TodoItem], title: str = "Todos") -> None:
    if not todos:
        console.print("[dim]No todos[/dim]")
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("", width=2)
    table.add_column("Title")
    table.add_column("Priority")
    table.add_column("Due")
    table.add_column("Sync")

    for item in todos:
        due = ""
        if item.due_date:
            due = item.due_date.strftime("%Y-%m-%d")
            if item.is_overdue():
                due = f"[red]{due} (overdue)[/red]"
        style = PRIORITY_STYLES[item.priority]
        table.add_row(
            item.id[:8],
            "✓" if item.is_completed else "",
            f"[strike]{item.title}[/strike]" if item.is_completed else item.title,
            f"[{style}]{item.priority.value}[/{style}]",
            due,
            sync_label(item),
        )
    console.print(table)


def render_report(report: SyncReport) -> None:
    color = {
        SyncResult.SUCCESS: "green",
        SyncResult.NO_CHANGES: "cyan",
        SyncResult.CONFLICT: "yellow",
        SyncResult.ERROR: "red",
    }[report.result]
    console.print(f"[{color}]{report.summary()}[/{color}]")
    for error in report.errors:
        console.print(f"  [dim]{error}[/dim]")
    for conflict in report.unresolved_conflicts:
        console.print(f"  [yellow]Unresolved: {conflict.local.title} ({conflict.reason})[/yellow]")


@click.group()
@click.option("--config", type=click.Path(), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx, config, verbose):
    """todo-sync - a local-first todo list that syncs with a REST backend."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = Path(config) if config else None

    try:
        loaded = load_config(Path(config)) if config else get_config()
    except (OSError, ValueError) as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    level = logging.DEBUG if verbose else getattr(logging, loaded.log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


# Todos

@cli.command()
@click.argument("title")
@click.option("--priority", "-p", type=click.Choice([p.value for p in Priority]),
              default=Priority.MEDIUM.value, help="Priority level")
@click.option("--due", help="Due date (YYYY-MM-DD)")
def add(title, priority, due):
    """Add a todo."""
    due_date = parse_due(due)
    item = run_with_coordinator(
        lambda c: c.create_todo(title, Priority(priority), due_date)
    )
    console.print(f"[green]Added[/green] {item.title} [dim]({item.id[:8]})[/dim]")


@cli.command(name="list")
@click.option("--filter", "status_filter", type=click.Choice(["all", "active", "completed"]),
              default="all", help="Which todos to show")
def list_todos(status_filter):
    """List todos."""
    todos = run_with_coordinator(lambda c: c.list_todos())
    if status_filter == "active":
        todos = [t for t in todos if not t.is_completed]
    elif status_filter == "completed":
        todos = [t for t in todos if t.is_completed]
    render_todos(todos)


@cli.command()
@click.argument("todo_id")
def toggle(todo_id):
    """Mark a todo done or not done."""
    async def action(c: TodoCoordinator):
        item = await resolve_todo(c, todo_id)
        return await c.toggle_todo(item.id)

    item = run_with_coordinator(action)
    state = "completed" if item.is_completed else "reopened"
    console.print(f"[green]{state.capitalize()}[/green] {item.title}")


@cli.command()
@click.argument("todo_id")
@click.option("--title", "-t", help="New title")
@click.option("--priority", "-p", type=click.Choice([p.value for p in Priority]), help="New priority")
@click.option("--due", help="New due date (YYYY-MM-DD)")
@click.option("--clear-due", is_flag=True, help="Remove the due date")
def edit(todo_id, title, priority, due, clear_due):
    """Edit a todo."""
    due_date = parse_due(due)

    async def action(c: TodoCoordinator):
        item = await resolve_todo(c, todo_id)
        changes = {}
        if title is not None:
            changes["title"] = title
        if priority is not None:
            changes["priority"] = Priority(priority)
        if due_date is not None:
            changes["due_date"] = due_date
        if clear_due:
            changes["due_date"] = None
        if not changes:
            return item
        return await c.update_todo(item.with_changes(**changes))

    item = run_with_coordinator(action)
    console.print(f"[green]Updated[/green] {item.title}")


@cli.command()
@click.argument("todo_id")
def delete(todo_id):
    """Delete a todo."""
    async def action(c: TodoCoordinator):
        item = await resolve_todo(c, todo_id)
        await c.delete_todo(item.id)
        return item

    item = run_with_coordinator(action)
    console.print(f"[green]Deleted[/green] {item.title}")


@cli.command(name="clear-completed")
def clear_completed():
    """Delete every completed todo."""
    count = run_with_coordinator(lambda c: c.clear_completed())
    console.print(f"[green]Cleared {count} completed todos[/green]")


# Mode and sync

@cli.command()
def status():
    """Show mode and pending changes."""
    async def action(c: TodoCoordinator):
        return await c.state(), c.api.session.user

    state, user = run_with_coordinator(action)
    console.print(f"[bold]Mode:[/bold] {state.mode.display_name} [dim]- {state.mode.description}[/dim]")
    console.print(f"[bold]Unsynced changes:[/bold] {state.unsynced_count}")
    if state.has_unsynced_changes and not state.unsynced_count:
        console.print("[dim]Deletions are waiting to be synced[/dim]")
    console.print(f"[bold]Signed in as:[/bold] {user.get('email', 'nobody') if user else 'nobody'}")


@cli.command()
@click.argument("target", type=click.Choice([m.value for m in AppMode]))
@click.pass_context
def mode(ctx, target):
    """Switch between offline and online mode."""
    async def action(c: TodoCoordinator):
        if target == AppMode.ONLINE.value:
            return await c.switch_to_online()
        c.switch_to_offline()
        return None

    report = run_with_coordinator(action)
    config = get_config()
    config.mode = target
    save_config(config, ctx.obj.get("config_path"))
    console.print(f"[green]Now {AppMode(target).display_name.lower()}[/green]")
    if report is not None:
        render_report(report)


@cli.command()
@click.option("--strategy", "-s", type=click.Choice([s.value for s in ConflictStrategy]),
              help="Conflict resolution strategy")
def sync(strategy):
    """Run a sync pass (online mode only)."""
    chosen = ConflictStrategy(strategy) if strategy else None
    report = run_with_coordinator(lambda c: c.sync(chosen))
    render_report(report)
    if report.result == SyncResult.ERROR:
        sys.exit(1)


@cli.command()
def pull():
    """Replace local todos with the server's."""
    report = run_with_coordinator(lambda c: c.full_download())
    render_report(report)


@cli.command()
def push():
    """Upload every local todo to the server."""
    report = run_with_coordinator(lambda c: c.full_upload())
    render_report(report)


# Account

@cli.command()
@click.option("--email", prompt=True, help="Account email")
@click.option("--password", prompt=True, hide_input=True, help="Account password")
def login(email, password):
    """Sign in with email and password."""
    user = run_with_auth(lambda a: a.login(email, password))
    console.print(f"[green]Signed in as {user.get('email', email)}[/green]")


@cli.command()
@click.option("--email", prompt=True, help="Account email")
@click.option("--name", prompt=True, help="Display name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True,
              help="Account password")
def register(email, name, password):
    """Create an email account and sign in."""
    user = run_with_auth(lambda a: a.register(email, password, name))
    console.print(f"[green]Registered and signed in as {user.get('email', email)}[/green]")


@cli.command(name="login-apple")
def login_apple():
    """Sign in with Apple."""
    start = run_with_auth(lambda a: a.apple_login_url())
    console.print("Open this URL and authorize the app:")
    console.print(f"[cyan]{start.get('login_url')}[/cyan]")
    code = click.prompt("Authorization code")
    user = run_with_auth(lambda a: a.login_with_apple(code, start.get("state", "")))
    console.print(f"[green]Signed in as {user.get('email', 'Apple user')}[/green]")


@cli.command()
def logout():
    """Forget stored credentials."""
    AuthSession.load(get_config().get_session_path()).clear()
    console.print("[green]Signed out[/green]")


@cli.command()
def whoami():
    """Show the signed-in user's profile from the server."""
    profile = run_with_auth(lambda a: a.profile())
    console.print(f"{profile.get('name', '')} <{profile.get('email', '')}> via {profile.get('auth_provider', '?')}")


# Server

@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Port")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host, port, reload):
    """Run the REST backend."""
    from .server.app import run
    from .server.settings import get_settings

    settings = get_settings()
    run(host or settings.host, port or settings.port, reload=reload)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
