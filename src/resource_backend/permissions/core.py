"""
Authorization of resource actions.

``authorize`` decides whether a caller may perform an action on a resource
type or on one instance of it. For list actions and unselected instances the
decision may carry a row filter: the set of author ids whose instances are
visible. That filter is combined with the query's own predicate by the store.
"""

import logging
from enum import Enum
from typing import Any, Iterable, List, Optional, Set
from pydantic import BaseModel

from resource_backend.api.exceptions import ForbiddenException, UnauthorizedException
from resource_backend.interface.resources import ResourceAction
from resource_backend.permissions.principal import (
    RESOURCES_READ,
    RESOURCES_WRITE,
    Principal,
    TeamMembership,
)
from resource_backend.permissions.roles import RoleKind, RoleRequirement, TeamRole

logger = logging.getLogger(__name__)


class DenialReason(str, Enum):
    private_action = "This action is private."
    unauthenticated = "User is not logged in."
    not_a_member = "User is not a member of the app."
    insufficient_permissions = "User does not have sufficient permissions."


class AccessDecision(BaseModel):
    allowed: bool
    reason: Optional[DenialReason] = None
    # None: unrestricted. A set: only instances authored by these users
    author_ids: Optional[Set[str]] = None

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(allowed=True)

    @classmethod
    def scoped(cls, author_ids: Set[str]) -> "AccessDecision":
        return cls(allowed=True, author_ids=set(author_ids))

    @classmethod
    def deny(cls, reason: DenialReason) -> "AccessDecision":
        return cls(allowed=False, reason=reason)

    @property
    def is_scoped(self) -> bool:
        return self.allowed and self.author_ids is not None

    def raise_for_denial(self):
        if self.allowed:
            return
        if self.reason == DenialReason.unauthenticated:
            raise UnauthorizedException(self.reason.value)
        raise ForbiddenException(self.reason.value)


def teammate_ids(teams: Iterable[TeamMembership], required: TeamRole) -> Set[str]:
    """Members of every team in which the caller holds at least the required role"""
    ids: Set[str] = set()
    for team in teams:
        if team.role.satisfies(required):
            ids |= team.member_ids
    return ids


def _required_team_role(roles: List[RoleRequirement]) -> Optional[TeamRole]:
    levels = [role.team_role for role in roles if role.team_role is not None]
    if not levels:
        return None
    # the most permissive rule wins
    if TeamRole.member in levels:
        return TeamRole.member
    return TeamRole.manager


def _operator_bypass(principal: Principal, organization_id: str, action: ResourceAction) -> bool:
    if not principal.is_operator or principal.is_anonymous:
        return False
    permission = RESOURCES_READ if action.is_read else RESOURCES_WRITE
    return principal.has_organization_permission(organization_id, permission)


def authorize(
    principal: Principal,
    teams: Iterable[TeamMembership],
    resource,
    action: ResourceAction,
    instance: Optional[Any] = None,
    roles: Optional[List[RoleRequirement]] = None,
) -> AccessDecision:
    """
    Decide whether ``principal`` may perform ``action``.

    Args:
        principal: The caller
        teams: Team memberships of the caller within the resource's app
        resource: The effective resource definition
        action: The action to perform
        instance: The instance acted upon, when already loaded
        roles: Roles to evaluate instead of the action's roles (views)

    Returns:
        The decision. Allowed decisions without an instance may be scoped
        to a set of author ids.
    """
    teams = list(teams)
    effective_roles = resource.roles_for(action) if roles is None else roles

    if _operator_bypass(principal, resource.organization_id, action):
        return AccessDecision.allow()

    kinds = {role.kind for role in effective_roles}

    if RoleKind.public in kinds:
        return AccessDecision.allow()

    if not kinds or kinds == {RoleKind.none}:
        return _denied(resource, action, DenialReason.private_action)

    if principal.is_anonymous:
        return _denied(resource, action, DenialReason.unauthenticated)

    # operators act only through their organization permissions
    if principal.is_operator:
        return _denied(resource, action, DenialReason.insufficient_permissions)

    named = [role.name for role in effective_roles if role.kind == RoleKind.named]

    if principal.app_role is not None and any(
        resource.role_hierarchy.has_role_permission(principal.app_role, name) for name in named
    ):
        return AccessDecision.allow()

    scoped = False
    author_ids: Set[str] = set()

    if RoleKind.author in kinds:
        scoped = True
        # the creator becomes the author
        if action == ResourceAction.create:
            return AccessDecision.allow()
        author_ids.add(principal.user_id)

    required_team_role = _required_team_role(effective_roles)
    if required_team_role is not None:
        if action == ResourceAction.create:
            if any(team.role.satisfies(required_team_role) for team in teams):
                return AccessDecision.allow()
        else:
            scoped = True
            author_ids |= teammate_ids(teams, required_team_role)

    if scoped and action != ResourceAction.create:
        if instance is None:
            return AccessDecision.scoped(author_ids)
        if instance.author_id is not None and instance.author_id in author_ids:
            return AccessDecision.allow()
        return _denied(resource, action, DenialReason.insufficient_permissions)

    if named and not principal.is_member:
        return _denied(resource, action, DenialReason.not_a_member)

    return _denied(resource, action, DenialReason.insufficient_permissions)


def _denied(resource, action: ResourceAction, reason: DenialReason) -> AccessDecision:
    logger.debug(f"Denied {action.value} on {resource.type}: {reason.value}")
    return AccessDecision.deny(reason)


def check_resource_permissions(
    principal: Principal,
    teams: Iterable[TeamMembership],
    resource,
    action: ResourceAction,
    instance: Optional[Any] = None,
    roles: Optional[List[RoleRequirement]] = None,
) -> AccessDecision:
    """Same as ``authorize`` but raises the matching HTTP exception when denied"""
    decision = authorize(principal, teams, resource, action, instance=instance, roles=roles)
    decision.raise_for_denial()
    return decision
