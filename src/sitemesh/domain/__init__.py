"""Entity services for groups, members, projects and participations."""

from .base import ServiceContext, SiteService
from .groups import GroupService
from .members import MemberService
from .models import Group, Member, Participation, Project
from .participations import ParticipationService
from .projects import ProjectService

__all__ = [
    "ServiceContext",
    "SiteService",
    "Group",
    "Member",
    "Project",
    "Participation",
    "GroupService",
    "MemberService",
    "ProjectService",
    "ParticipationService",
]
