"""
Permission system for app resources.

Main components:
- roles: role requirements of a roles list, including pseudo-roles
- principal: the caller, app role inheritance and organization claims
- core: authorization of resource actions
- query_builders: SQLAlchemy filters for teams and author scopes
- auth: resolution of the caller from the database
"""

from .roles import RoleKind, RoleRequirement, TeamRole, parse_roles
from .principal import (
    AppRoleHierarchy,
    AuthSurface,
    Claims,
    Principal,
    TeamMembership,
    build_claims,
)

__all__ = [
    "RoleKind",
    "RoleRequirement",
    "TeamRole",
    "parse_roles",
    "AppRoleHierarchy",
    "AuthSurface",
    "Claims",
    "Principal",
    "TeamMembership",
    "build_claims",
]
