"""
sitemesh - a partitioned record store spread across several database sites.

Records are routed to a site by the partition key embedded in their
identifier; a Global site holds the routing table. Reads fail over to a
healthy site, writes require the owning one, and moving a group to a new
partition runs as a journaled migration.

Packages:
    core      - sites, settings, errors, adapters, health, routing, execution
    migration - the group migration saga and its journal
    domain    - entity services
    cli       - the ``sitemesh`` command
"""

from sitemesh.app import SiteMesh

__version__ = "0.1.0"

__all__ = ["SiteMesh", "__version__"]
