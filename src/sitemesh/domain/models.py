"""Entity models returned by the domain services."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class _Entity(BaseModel):
    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_row(cls, row: dict[str, Any]):
        return cls.model_validate({k: (v.strip() if isinstance(v, str) else v) for k, v in row.items()})


class Group(_Entity):
    """Research group (``<partition_key>N<k>``)."""

    group_id: str
    group_name: str
    partition_key: str


class Member(_Entity):
    """Group member (``<group_id>NV<k>``)."""

    member_id: str
    full_name: str
    group_id: str


class Project(_Entity):
    """Group project (``<group_id>DA<k>``)."""

    project_id: str
    project_name: str
    group_id: str


class Participation(_Entity):
    """Member ↔ project link; the two sides may belong to different partitions."""

    member_id: str
    project_id: str


__all__ = [
    "Group",
    "Member",
    "Project",
    "Participation",
]
