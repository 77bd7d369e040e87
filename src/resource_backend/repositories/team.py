from collections import defaultdict
from typing import Dict, List, Optional, Set
from sqlalchemy.orm import Session
from resource_backend.model.app import Team, TeamMember
from resource_backend.permissions.principal import TeamMembership
from resource_backend.permissions.query_builders import TeamPermissionQueryBuilder
from resource_backend.permissions.roles import TeamRole
from resource_backend.repositories.base import BaseRepository


class TeamRepository(BaseRepository[Team]):

    def __init__(self, db: Session):
        super().__init__(db, Team)

    def memberships(self, app_id: int, user_id: Optional[str]) -> List[TeamMembership]:
        """Teams of the app the user belongs to, with all their members"""
        if user_id is None:
            return []

        team_ids = TeamPermissionQueryBuilder.user_teams_subquery(app_id, user_id)

        rows = self.db.query(TeamMember.team_id, TeamMember.user_id, TeamMember.role).filter(
            TeamMember.team_id.in_(team_ids)
        ).all()

        members: Dict[int, Set[str]] = defaultdict(set)
        roles: Dict[int, TeamRole] = {}

        for team_id, member_id, role in rows:
            members[team_id].add(member_id)
            if member_id == user_id:
                roles[team_id] = TeamRole(role)

        return [
            TeamMembership(team_id=team_id, role=role, member_ids=members[team_id])
            for team_id, role in sorted(roles.items())
        ]
