from typing import List, Optional, Set
from sqlalchemy import false, select
from sqlalchemy.orm import Query, aliased
from resource_backend.model.app import Team, TeamMember
from resource_backend.model.resource import Resource
from resource_backend.permissions.roles import TeamRole


class TeamPermissionQueryBuilder:
    """Utility class for building team-related permission queries"""

    @classmethod
    def get_allowed_roles(cls, minimum_role: TeamRole) -> List[str]:
        """Get all team roles that meet or exceed the minimum required role"""
        return [role.value for role in TeamRole if role.satisfies(minimum_role)]

    @classmethod
    def user_teams_subquery(cls, app_id: int, user_id: str, minimum_role: TeamRole = TeamRole.member):
        """Create a subquery for teams of an app where user has at least the minimum role"""
        tm_alias = aliased(TeamMember)

        return (
            select(tm_alias.team_id)
            .join(Team, Team.id == tm_alias.team_id)
            .where(
                Team.app_id == app_id,
                tm_alias.user_id == user_id,
                tm_alias.role.in_(cls.get_allowed_roles(minimum_role))
            )
        )


class ResourcePermissionQueryBuilder:
    """Utility class for restricting resource queries to visible authors"""

    @classmethod
    def filter_by_authors(cls, query: Query, author_ids: Optional[Set[str]]) -> Query:
        if author_ids is None:
            return query
        if not author_ids:
            return query.filter(false())
        return query.filter(Resource.author_id.in_(sorted(author_ids)))
