"""
CLI: ``sitemesh migrate``: move a group to another partition and manage
unfinished runs.
"""

from __future__ import annotations

import typer

from sitemesh.cli.utils import err_console, exit_on_error, open_mesh, output

app = typer.Typer(no_args_is_help=True)


@app.command("run")
def run(
    group_id: str = typer.Argument(..., help="Group to move"),
    partition_key: str = typer.Argument(..., help="Target partition key"),
    name: str | None = typer.Option(None, "--name", "-n", help="New group name (default: keep)"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Copy the group with its members, projects and participations to the new partition."""
    with exit_on_error(), open_mesh() as mesh:
        record = mesh.migrations.migrate(group_id, partition_key, name)
    output(record.summary(), as_json=json_out, title="Migration")


@app.command("status")
def status(
    group_id: str | None = typer.Argument(None, help="Group (default: every unfinished run)"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show the journal of a group, or every run that still blocks its group."""
    with exit_on_error(), open_mesh(probe=False) as mesh:
        if group_id is None:
            output([r.summary() for r in mesh.migrations.journal.unfinished()], as_json=json_out, title="Unfinished")
            return
        record = mesh.migrations.status(group_id)
    if record is None:
        err_console.print(f"No migration journal for {group_id}")
        raise typer.Exit(code=1)
    output(record.summary(), as_json=json_out, title=f"Migration: {group_id}")


@app.command("resume")
def resume(
    group_id: str = typer.Argument(..., help="Group whose deletions should be finished"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Finish the source deletions of a run that failed after copying."""
    with exit_on_error(), open_mesh() as mesh:
        record = mesh.migrations.resume(group_id)
    output(record.summary(), as_json=json_out, title="Migration")


@app.command("compensate")
def compensate(
    group_id: str = typer.Argument(..., help="Group whose copied rows should be removed"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Undo the inserts of an unfinished run whose source rows are still intact."""
    with exit_on_error(), open_mesh() as mesh:
        record = mesh.migrations.compensate(group_id)
    output(record.summary(), as_json=json_out, title="Migration")
