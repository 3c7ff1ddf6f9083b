"""
CLI: ``sitemesh db``: schema management commands.
"""

from __future__ import annotations

import typer

from sitemesh.cli.utils import exit_on_error, open_mesh, output
from sitemesh.core.registry import RegistryEntry
from sitemesh.core.schema import create_schema, seed_registry
from sitemesh.core.sites import ALL_SITES, SiteId

app = typer.Typer(no_args_is_help=True)


def _parse_route(value: str) -> tuple[str, SiteId]:
    key, sep, site = value.partition("=")
    if not sep or not key.strip():
        raise typer.BadParameter(f"expected KEY=SITE, got {value!r}")
    try:
        parsed = SiteId.parse(site)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    if not parsed.is_data_site:
        raise typer.BadParameter(f"{site} is not a data site")
    return key.strip(), parsed


@app.command()
def init(
    route: list[str] = typer.Option(
        [], "--route", "-r", help="Register a partition as KEY=SITE (repeatable), e.g. -r P1=siteA"
    ),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create the tables on every site and optionally seed the routing table."""
    routes = [_parse_route(value) for value in route]
    with exit_on_error(), open_mesh(probe=False) as mesh:
        created = {site.value: create_schema(mesh.executor, site) for site in ALL_SITES}
        entries = [
            RegistryEntry(partition_key=key, site=site, dialect=mesh.executor.dialect_for(site).name)
            for key, site in routes
        ]
        seeded = seed_registry(mesh.executor, entries) if entries else 0
    if json_out:
        output({"tables": created, "routes_seeded": seeded}, as_json=True)
        return
    output([{"site": site, "tables": ", ".join(tables)} for site, tables in created.items()], title="Schema")
