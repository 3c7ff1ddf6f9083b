"""
CLI layer for sitemesh.

Provides a Typer application whose commands delegate to the components
built by ``SiteMesh``. This package handles only terminal transport:
argument parsing, coloured output and table formatting.

Entry point::

    sitemesh --help
"""

from sitemesh.cli.app import app

__all__ = ["app"]
