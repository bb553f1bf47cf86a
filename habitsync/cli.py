"""habitsync CLI — inspect and drive the sync engine against a local store."""

import json

import click
from rich.console import Console
from rich.table import Table

from habitsync import __version__
from habitsync.config import Settings, configure_logging

console = Console()


def _service(ctx: click.Context):
    from habitsync.sync.service import SyncService

    return SyncService(ctx.obj["settings"].build_storage())


def _print_response(response, title: str) -> None:
    if response.is_empty:
        console.print("[green]In agreement[/] — no changes to reconcile.")
    else:
        if response.goals:
            table = Table(title=f"{title}: goals ({len(response.goals)})")
            table.add_column("ID", style="cyan")
            table.add_column("Name")
            table.add_column("Color")
            table.add_column("Pos", justify="right")
            table.add_column("Updated", style="dim")
            table.add_column("Deleted", justify="center")
            for g in response.goals:
                table.add_row(
                    g.id,
                    g.name,
                    g.color,
                    str(g.position),
                    g.updated_at.isoformat(),
                    "[red]yes[/]" if g.deleted else "",
                )
            console.print(table)

        if response.completions:
            table = Table(title=f"{title}: completions ({len(response.completions)})")
            table.add_column("Goal", style="cyan")
            table.add_column("Date")
            table.add_column("Completed", justify="center")
            table.add_column("Updated", style="dim")
            for c in response.completions:
                table.add_row(
                    c.goal_id,
                    c.date,
                    "[green]v[/]" if c.completed else "[red]x[/]",
                    c.updated_at.isoformat(),
                )
            console.print(table)

    console.print(f"\nServer time: [bold]{response.server_time.isoformat()}[/]")


@click.group()
@click.version_option(version=__version__)
@click.option("--data-dir", "-d", default=None, help="Data directory (default: $HABITSYNC_DATA_DIR or ~/.habitsync)")
@click.option("--verbose", "-v", is_flag=True, help="Log per-record sync decisions")
@click.pass_context
def main(ctx: click.Context, data_dir: str | None, verbose: bool):
    """habitsync — offline-first habit tracking.

    Apply sync batches and inspect the change feed of a local store.
    """
    settings = Settings.from_env()
    if data_dir:
        settings = Settings(data_dir=data_dir, storage="json", log_level=settings.log_level)
    configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = {"settings": settings}


# ── Apply ────────────────────────────────────────────────────────────


@main.command()
@click.argument("batch_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--user", "-u", required=True, help="Identity applying the batch")
@click.option("--json", "as_json", is_flag=True, help="Print the raw response JSON")
@click.pass_context
def apply(ctx: click.Context, batch_file: str, user: str, as_json: bool):
    """Apply a sync request read from BATCH_FILE (JSON or YAML).

    The file holds ``last_synced_at``, ``goals`` and ``completions`` exactly
    as a device would send them.
    """
    import yaml

    from habitsync.sync.service import SyncError
    from habitsync.sync.types import SyncRequest

    try:
        with open(batch_file) as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError("expected a mapping at the top level")
        request = SyncRequest.from_dict(data)
    except (yaml.YAMLError, ValueError, TypeError) as e:
        console.print(f"[red]Invalid batch file:[/] {e}")
        raise SystemExit(2)

    try:
        response = _service(ctx).apply_changes(user, request)
    except SyncError as e:
        console.print(f"[red]Sync failed:[/] {e.__cause__ or e}")
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(response.to_dict(), indent=2))
        return

    stats = response.stats
    console.print(
        f"\n[bold blue]habitsync[/] — applied {stats.goals_applied} goal(s), "
        f"{stats.completions_applied} completion(s); skipped {stats.skipped}\n"
    )
    _print_response(response, "Overrides")


# ── Changes ──────────────────────────────────────────────────────────


@main.command()
@click.option("--user", "-u", required=True, help="Identity whose changes to list")
@click.option("--since", "-s", default=None, help="ISO 8601 checkpoint (default: everything)")
@click.pass_context
def changes(ctx: click.Context, user: str, since: str | None):
    """Show goals and completions changed after a checkpoint."""
    from habitsync.sync.service import SyncError
    from habitsync.tracking.models import parse_timestamp

    try:
        checkpoint = parse_timestamp(since) if since else None
    except ValueError:
        raise click.BadParameter(f"not an ISO 8601 timestamp: {since}", param_hint="--since")

    try:
        response = _service(ctx).get_changes_since(user, checkpoint)
    except SyncError as e:
        console.print(f"[red]Change feed failed:[/] {e.__cause__ or e}")
        raise SystemExit(1)

    _print_response(response, "Changes")


# ── Goals ────────────────────────────────────────────────────────────


@main.command()
@click.option("--user", "-u", required=True, help="Goal owner")
@click.option("--all", "show_all", is_flag=True, help="Include archived and deleted goals")
@click.pass_context
def goals(ctx: click.Context, user: str, show_all: bool):
    """List a user's goals in display order."""
    from habitsync.storage.base import StorageError

    storage = ctx.obj["settings"].build_storage()
    try:
        items = storage.list_goals(user, include_archived=show_all, include_deleted=show_all)
    except StorageError as e:
        console.print(f"[red]Cannot read goals:[/] {e}")
        raise SystemExit(1)

    if not items:
        console.print("[yellow]No goals found.[/]")
        return

    table = Table(title=f"Goals for {user} ({len(items)})")
    table.add_column("Pos", style="dim", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Color")
    table.add_column("State")

    for g in items:
        state = "deleted" if g.is_deleted else "archived" if g.is_archived else "active"
        table.add_row(str(g.position), g.id, g.name, g.color, state)

    console.print(table)


if __name__ == "__main__":
    main()
