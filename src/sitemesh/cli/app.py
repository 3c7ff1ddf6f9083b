"""
Root Typer application for the sitemesh CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="sitemesh",
    help="sitemesh: partitioned records across several database sites.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from sitemesh import __version__

        typer.echo(f"sitemesh {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """sitemesh CLI: site health, routing, schema and group migrations."""


# ── Sub-command registration ─────────────────────────────────────────────

from sitemesh.cli.db import app as db_app  # noqa: E402
from sitemesh.cli.health import health  # noqa: E402
from sitemesh.cli.migrate import app as migrate_app  # noqa: E402
from sitemesh.cli.routing import partitions, resolve  # noqa: E402

app.command("health")(health)
app.command("resolve")(resolve)
app.command("partitions")(partitions)
app.add_typer(db_app, name="db", help="Schema management.")
app.add_typer(migrate_app, name="migrate", help="Group migrations between partitions.")
