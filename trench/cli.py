"""CLI definition with typer."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from . import __version__
from .errors import TrenchError
from .logging import logger

app = typer.Typer(
    help="trench - manage Git worktrees, their hooks and history",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"trench {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("-v", "--verbose", help="Show debug output")] = False,
    quiet: Annotated[
        bool, typer.Option("-q", "--quiet", help="Only show warnings and errors")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
):
    """Configure logging for every command."""
    from .config import get_settings

    logger.configure(get_settings().log_level, verbose=verbose, quiet=quiet)


def _fail(error: TrenchError) -> NoReturn:
    logger.error(str(error))
    raise typer.Exit(int(error.exit_code))


def _resolve() -> tuple:
    """Return ``(cwd, settings, config)`` for the repository containing the cwd."""
    from . import git
    from .config import get_settings, resolve_config

    cwd = Path.cwd()
    settings = get_settings()
    try:
        config = resolve_config(settings, git.discover(cwd).path)
    except TrenchError as e:
        _fail(e)
    return cwd, settings, config


@contextmanager
def _workspace() -> Iterator[tuple]:
    """Yield ``(cwd, db, config)`` for the repository containing the cwd."""
    from .state import Database

    cwd, settings, config = _resolve()
    try:
        db = Database.open(settings.db_path)
    except TrenchError as e:
        _fail(e)
    with db:
        yield cwd, db, config


def _report_post_hook(error) -> None:
    if error is not None:
        logger.warning(f"{error} (the operation itself completed)")
        raise typer.Exit(error.exit_code)


@app.command()
def create(
    branch: Annotated[str, typer.Argument(help="Name of the new branch")],
    from_: Annotated[
        str | None,
        typer.Option("--from", help="Base branch (default: configured or current branch)"),
    ] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show what would happen")] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
):
    """Create a branch and a worktree for it."""
    from .commands import create as create_cmd
    from .output import format_json, format_plan

    if dry_run:
        cwd, _settings, config = _resolve()
        try:
            plan = create_cmd.plan(branch, from_, cwd, config)
        except TrenchError as e:
            _fail(e)
        if json_output:
            typer.echo(format_json(plan.to_dict()))
        else:
            typer.echo(format_plan(plan), nl=False)
        return

    with _workspace() as (cwd, db, config):
        try:
            result = create_cmd.execute(branch, from_, cwd, db, config)
        except TrenchError as e:
            _fail(e)

    if json_output:
        typer.echo(
            format_json(
                {
                    "name": result.worktree.name,
                    "branch": result.worktree.branch,
                    "base_branch": result.worktree.base_branch,
                    "path": str(result.path),
                }
            )
        )
    else:
        logger.success(f"Created worktree [cyan]{result.worktree.name}[/cyan]")
        typer.echo(str(result.path))
    _report_post_hook(result.post_hook_error)


@app.command()
def remove(
    identifier: Annotated[str, typer.Argument(help="Worktree name or branch")],
    prune: Annotated[
        bool,
        typer.Option("--prune", help="Also delete the branch, locally and on origin"),
    ] = False,
):
    """Remove a managed worktree."""
    from .commands import remove as remove_cmd

    with _workspace() as (cwd, db, config):
        try:
            result = remove_cmd.execute(identifier, cwd, db, config, prune=prune)
        except TrenchError as e:
            _fail(e)

    logger.success(f"Removed worktree [cyan]{result.worktree.name}[/cyan]")
    if result.branch_deleted:
        logger.info(f"Deleted branch {result.worktree.branch}")
    _report_post_hook(result.post_hook_error)


@app.command()
def switch(
    identifier: Annotated[str, typer.Argument(help="Worktree name or branch")],
):
    """Print a worktree's path and mark it as current."""
    from .commands import switch as switch_cmd

    with _workspace() as (cwd, db, _config):
        try:
            result = switch_cmd.execute(identifier, cwd, db)
        except TrenchError as e:
            _fail(e)

    typer.echo(str(result.path))


@app.command("list")
def list_worktrees(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    porcelain: Annotated[
        bool,
        typer.Option("--porcelain", help="Colon-separated output for scripts"),
    ] = False,
    tag: Annotated[str | None, typer.Option("--tag", help="Only worktrees with this tag")] = None,
    status: Annotated[bool, typer.Option("--status", help="Show dirty and ahead/behind")] = False,
):
    """List worktrees of the current repository."""
    from . import output
    from .commands import list_cmd
    from .output import format_json, format_porcelain, list_table

    if json_output and porcelain:
        raise typer.BadParameter("--json and --porcelain are mutually exclusive")

    machine = json_output or porcelain
    with _workspace() as (cwd, db, _config):
        try:
            entries = list_cmd.execute(cwd, db, tag=tag, with_status=status or machine)
        except TrenchError as e:
            _fail(e)

    if json_output:
        typer.echo(format_json([entry.to_dict() for entry in entries]))
    elif porcelain:
        typer.echo(format_porcelain(entry.porcelain_fields() for entry in entries), nl=False)
    elif not entries:
        logger.info("No worktrees. Use [bold]trench create[/bold] to get started.")
    else:
        output.console.print(list_table(entries, with_status=status))


@app.command(context_settings={"ignore_unknown_options": True})
def tag(
    identifier: Annotated[str, typer.Argument(help="Worktree name or branch")],
    ops: Annotated[
        list[str] | None,
        typer.Argument(help="+name to add, -name to remove; none to list"),
    ] = None,
):
    """Show or change a worktree's tags."""
    from .commands import tag as tag_cmd

    with _workspace() as (cwd, db, _config):
        try:
            result = tag_cmd.execute(identifier, ops or [], cwd, db)
        except TrenchError as e:
            _fail(e)

    if result.tags:
        typer.echo(", ".join(result.tags))
    elif result.changed:
        logger.info(f"All tags removed from worktree '{result.worktree_name}'.")
    else:
        logger.info(f"No tags on worktree '{result.worktree_name}'.")


@app.command()
def log(
    identifier: Annotated[
        str | None,
        typer.Argument(help="Worktree name or branch (default: whole repository)"),
    ] = None,
    limit: Annotated[int, typer.Option("-n", "--limit", help="Maximum number of events")] = 20,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
):
    """Show recent events, newest first."""
    from . import output
    from .commands import log as log_cmd
    from .output import event_to_dict, events_table, format_json

    with _workspace() as (cwd, db, _config):
        try:
            events = log_cmd.execute(cwd, db, identifier, limit=limit)
        except TrenchError as e:
            _fail(e)

    if json_output:
        typer.echo(format_json([event_to_dict(event) for event in events]))
    elif not events:
        logger.info("No events recorded.")
    else:
        output.console.print(events_table(events))


@app.command()
def init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite an existing file")
    ] = False,
):
    """Write a commented .trench.yaml at the repository root."""
    from .commands import init as init_cmd

    try:
        path = init_cmd.execute(Path.cwd(), force=force)
    except TrenchError as e:
        _fail(e)

    logger.success(f"Created {path}")


def main():
    """Entry point."""
    app()
