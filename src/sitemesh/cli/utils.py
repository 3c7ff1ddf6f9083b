"""
CLI utility helpers: output formatting and component wiring.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from sitemesh.app import SiteMesh
from sitemesh.core.errors import SiteMeshError
from sitemesh.core.logging import configure_logging
from sitemesh.core.settings import get_settings

console = Console()
err_console = Console(stderr=True)


# ── Component helper ─────────────────────────────────────────────────────


@contextmanager
def open_mesh(*, probe: bool = True) -> Iterator[SiteMesh]:
    """Build a ``SiteMesh`` from settings for one command.

    With ``probe`` the sites are checked once so failover decisions reflect
    reality; the background health loop is not started.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    mesh = SiteMesh.build(settings)
    try:
        if probe:
            mesh.health.probe_all()
        yield mesh
    finally:
        mesh.pool.close_all()


@contextmanager
def exit_on_error() -> Iterator[None]:
    """Render a ``SiteMeshError`` as a red one-liner and exit 1."""
    try:
        yield
    except SiteMeshError as e:
        err_console.print(f"[bold red]Error[/bold red] ({type(e).__name__}): {e.message}")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a list as a table or a single object as key/value pairs."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list | tuple):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(list(data), title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
