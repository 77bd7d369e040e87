from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from resource_backend.interface.resources import SecurityDefinition
from resource_backend.permissions.roles import TeamRole


RESOURCES_READ = "resources:read"
RESOURCES_WRITE = "resources:write"

# Organization role -> organization permissions
ORGANIZATION_ROLE_PERMISSIONS: Dict[str, Set[str]] = {
    "Owner": {RESOURCES_READ, RESOURCES_WRITE},
    "Maintainer": {RESOURCES_READ, RESOURCES_WRITE},
    "AppEditor": {RESOURCES_READ, RESOURCES_WRITE},
    "Member": set(),
}


class AppRoleHierarchy:
    """Resolves app role inheritance from the security definition"""

    def __init__(self, security: Optional[SecurityDefinition] = None):
        roles = security.roles if security is not None else {}
        self.inherits: Dict[str, List[str]] = {
            name: list(role.inherits) for name, role in roles.items()
        }
        self._satisfied: Dict[str, Set[str]] = {}

    def satisfied_roles(self, role: str) -> Set[str]:
        """All roles a holder of ``role`` satisfies: itself and everything it inherits transitively"""
        if role not in self._satisfied:
            satisfied = set()
            pending = [role]
            while pending:
                current = pending.pop()
                if current in satisfied:
                    continue
                satisfied.add(current)
                pending.extend(self.inherits.get(current, []))
            self._satisfied[role] = satisfied
        return self._satisfied[role]

    def has_role_permission(self, user_role: str, required_role: str) -> bool:
        """Check if user_role has permission for required_role"""
        return required_role in self.satisfied_roles(user_role)


class Claims(BaseModel):
    """Structured claims for permission management"""
    general: Dict[str, Set[str]] = Field(default_factory=dict)
    dependent: Dict[str, Dict[str, Set[str]]] = Field(default_factory=dict)

    def has_dependent_permission(self, resource: str, resource_id: str, action: str) -> bool:
        """Check if claims include dependent permission for specific resource instance"""
        return (
            resource in self.dependent and
            resource_id in self.dependent[resource] and
            action in self.dependent[resource][resource_id]
        )


def build_claims(claim_values: Iterable[Tuple[str, str]]) -> Claims:
    """Build structured claims from ("permissions", "resource:action[:resource_id]") tuples.

    Actions may contain colons themselves (``organization:resources:read:acme``),
    the resource is always the first and the resource id the last segment.
    """

    general: Dict[str, Set[str]] = defaultdict(set)
    dependent: Dict[str, Dict[str, Set[str]]] = defaultdict(lambda: defaultdict(set))

    for claim_type, resource_string in claim_values:
        if claim_type != "permissions":
            continue

        parts = resource_string.split(":")

        if len(parts) == 2:
            resource, action = parts
            general[resource].add(action)

        elif len(parts) >= 3:
            resource, resource_id = parts[0], parts[-1]
            dependent[resource][resource_id].add(":".join(parts[1:-1]))

    return Claims(
        general=dict(general),
        dependent={resource: dict(ids) for resource, ids in dependent.items()}
    )


def organization_claim_values(organization_id: str, role: Optional[str]) -> List[Tuple[str, str]]:
    return [
        ("permissions", f"organization:{permission}:{organization_id}")
        for permission in sorted(ORGANIZATION_ROLE_PERMISSIONS.get(role, set()))
    ]


class AuthSurface(str, Enum):
    app = "app"
    studio = "studio"
    client_credentials = "client_credentials"


class TeamMembership(BaseModel):
    """A team of the app the caller belongs to, with the ids of all its members"""

    team_id: int
    role: TeamRole
    member_ids: Set[str] = Field(default_factory=set)


class Principal(BaseModel):
    """The caller of a resource request"""

    user_id: Optional[str] = None
    name: Optional[str] = None
    surface: AuthSurface = AuthSurface.app

    # Role of the caller's app membership, None when not a member
    app_role: Optional[str] = None

    scopes: Set[str] = Field(default_factory=set)
    claims: Claims = Field(default_factory=Claims)

    _permission_cache: Dict[str, bool] = PrivateAttr(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    @property
    def is_member(self) -> bool:
        return self.app_role is not None

    @property
    def is_operator(self) -> bool:
        return self.surface in (AuthSurface.studio, AuthSurface.client_credentials)

    def display(self) -> Optional[Dict[str, Optional[str]]]:
        if self.user_id is None:
            return None
        return {"id": self.user_id, "name": self.name}

    def has_organization_permission(self, organization_id: str, permission: str) -> bool:
        """Operator permission on an organization, client credentials must also carry the scope"""
        cache_key = f"organization:{permission}:{organization_id}"
        if cache_key in self._permission_cache:
            return self._permission_cache[cache_key]

        result = self.claims.has_dependent_permission("organization", organization_id, permission)
        if result and self.surface == AuthSurface.client_credentials:
            result = permission in self.scopes

        self._permission_cache[cache_key] = result
        return result
