"""
CLI: ``sitemesh health``: probe every site and report availability.
"""

from __future__ import annotations

import typer

from sitemesh.cli.utils import console, exit_on_error, open_mesh, output
from sitemesh.core.health import SystemState


def health(
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Probe all sites once and show their status. Exits 1 when no site is up."""
    with exit_on_error(), open_mesh() as mesh:
        report = mesh.health.report()
    if json_out:
        output(report, as_json=True)
    else:
        output(report.sites, title=f"Sites: {report.status.value}")
        console.print(f"[dim]{report.available}/{report.total} available[/dim]")
    if report.status is SystemState.CRITICAL:
        raise typer.Exit(code=1)
