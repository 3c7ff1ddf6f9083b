"""
CLI: ``sitemesh resolve`` and ``sitemesh partitions``: inspect routing.
"""

from __future__ import annotations

import typer

from sitemesh.cli.utils import exit_on_error, open_mesh, output
from sitemesh.core.errors import NoAvailableSiteError
from sitemesh.core.partition import partition_key_of


def resolve(
    identifier: str = typer.Argument(..., help="Group, member or project identifier"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show which site owns an identifier and which site a read would use."""
    with exit_on_error(), open_mesh() as mesh:
        key = partition_key_of(identifier)
        owner = mesh.partitions.resolve_site(identifier)
        available = mesh.health.is_available(owner)
        try:
            read_from = mesh.failover.resolve(owner)
        except NoAvailableSiteError:
            read_from = None
    output(
        {
            "identifier": identifier,
            "partition_key": key,
            "site": owner.value,
            "available": available,
            "read_from": read_from.value if read_from else None,
        },
        as_json=json_out,
        title=identifier,
    )


def partitions(
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List the routing table held on the Global site."""
    with exit_on_error(), open_mesh() as mesh:
        entries = mesh.registry.entries()
    output(entries, as_json=json_out, title="Partitions")
