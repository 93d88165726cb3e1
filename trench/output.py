"""Rendering of command results: rich tables, JSON and porcelain lines."""

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table

from .commands.create import DryRunPlan
from .commands.list_cmd import ListEntry
from .state import Event

# Command results go to stdout; diagnostics use the stderr console in trench.logging.
console = Console()


def format_json(data: Any) -> str:
    """Pretty-printed JSON for ``--json`` output."""
    return json.dumps(data, indent=2)


def format_porcelain(rows: Iterable[list[str]]) -> str:
    """Colon-separated fields, one record per line.

    Fields are not escaped; parse left to right with the known field count.
    """
    return "".join(":".join(fields) + "\n" for fields in rows)


def list_table(entries: list[ListEntry], with_status: bool = False) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Branch", style="green")
    table.add_column("Path")
    if with_status:
        table.add_column("Status", style="yellow")
        table.add_column("Ahead/Behind")
    table.add_column("Tags", style="magenta")

    for entry in entries:
        name = entry.name if entry.managed else f"{entry.name} [unmanaged]"
        row = [name, entry.branch or "-", entry.path]
        if with_status:
            row.extend([entry.status, entry.ahead_behind])
        row.append(", ".join(entry.tags))
        table.add_row(*row, style=None if entry.managed else "dim")
    return table


def _timestamp(epoch: int) -> str:
    return datetime.fromtimestamp(epoch).strftime("%Y-%m-%d %H:%M:%S")


def events_table(events: list[Event]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Time", style="dim")
    table.add_column("Event", style="cyan")
    table.add_column("Worktree")
    table.add_column("Details")

    for event in events:
        details = ""
        if event.payload:
            details = ", ".join(f"{key}={value}" for key, value in event.payload.items())
        worktree = str(event.worktree_id) if event.worktree_id is not None else "-"
        table.add_row(_timestamp(event.created_at), event.event_type, worktree, details)
    return table


def event_to_dict(event: Event) -> dict[str, Any]:
    return {
        "id": event.id,
        "worktree_id": event.worktree_id,
        "event_type": event.event_type,
        "payload": event.payload,
        "created_at": event.created_at,
    }


def format_plan(plan: DryRunPlan) -> str:
    """Human-readable ``create --dry-run`` preview."""
    lines = [
        "Dry run: no changes will be made",
        "",
        f"  Branch:    {plan.branch}",
        f"  Base:      {plan.base_branch}",
        f"  Worktree:  {plan.worktree_path}",
    ]
    hooks = [
        (event, plan.hooks.get(event))
        for event in ("pre_create", "post_create")
        if plan.hooks is not None and plan.hooks.get(event) is not None
    ]
    if not hooks:
        lines.append("  Hooks:     (none)")
    else:
        lines.append("  Hooks:")
        for event, hook in hooks:
            lines.append(f"    {event}:")
            if hook.copy_patterns:
                lines.append(f"      copy:  {', '.join(hook.copy_patterns)}")
            if hook.run:
                lines.append(f"      run:   {', '.join(hook.run)}")
            if hook.shell:
                lines.append(f"      shell: {hook.shell}")
    return "\n".join(lines) + "\n"
