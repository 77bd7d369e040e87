"""
Resolution of resource definitions.

Turns the raw resource configuration of an app into an effective definition
per type: parsed role requirements per action, query defaults, expiration
duration, history policy, views and references. One resolver is created per
request and memoizes what it resolved.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional
from resource_backend.api.exceptions import ResourceTypeNotFoundException, ViewNotFoundException
from resource_backend.interface.resources import (
    AppContext,
    ResourceAction,
    ResourceDefinition,
    ResourceView,
)
from resource_backend.permissions.principal import AppRoleHierarchy
from resource_backend.permissions.roles import RoleRequirement, parse_roles
from resource_backend.services.resource_expiration import parse_duration
from resource_backend.services.resource_versioning import HistoryPolicy


class EffectiveResourceDefinition:

    def __init__(self, app: AppContext, resource_type: str, definition: ResourceDefinition, role_hierarchy: AppRoleHierarchy):
        self.app = app
        self.type = resource_type
        self.definition = definition
        self.role_hierarchy = role_hierarchy

        self.id_field = definition.id
        self.schema: Dict[str, Any] = definition.schema_
        self.expires: Optional[timedelta] = parse_duration(definition.expires) if definition.expires else None
        self.history = HistoryPolicy.from_definition(definition.history)
        self.views: Dict[str, ResourceView] = definition.views

        self._roles: Dict[ResourceAction, List[RoleRequirement]] = {}
        for action in ResourceAction:
            call = definition.action_call(action)
            if call is not None and call.roles is not None:
                roles = call.roles
            else:
                roles = definition.roles or []
            self._roles[action] = parse_roles(roles)

    @property
    def app_id(self) -> int:
        return self.app.id

    @property
    def organization_id(self) -> str:
        return self.app.organization_id

    @property
    def properties(self) -> Dict[str, Any]:
        properties = self.schema.get("properties")
        return properties if isinstance(properties, dict) else {}

    def roles_for(self, action: ResourceAction) -> List[RoleRequirement]:
        return self._roles[action]

    def query_defaults(self, action: ResourceAction) -> Dict[str, Any]:
        call = self.definition.action_call(action)
        if call is None or not call.query:
            return {}
        return dict(call.query)

    def view(self, name: str) -> ResourceView:
        view = self.views.get(name)
        if view is None:
            raise ViewNotFoundException(name, self.type)
        return view

    def view_roles(self, name: str) -> List[RoleRequirement]:
        return parse_roles(self.view(name).roles)

    def reference_triggers(self, event: str) -> Dict[str, List[str]]:
        """Triggers per referencing field for one of create, update or delete"""
        triggers = {}
        for field, reference in self.definition.references.items():
            action = getattr(reference, event, None)
            if action is not None:
                triggers[field] = list(action.trigger)
        return triggers


class ResourceDefinitionResolver:

    def __init__(self, app: AppContext):
        self.app = app
        self.role_hierarchy = AppRoleHierarchy(app.definition.security)
        self._resolved: Dict[str, EffectiveResourceDefinition] = {}

    def resolve(self, resource_type: str) -> EffectiveResourceDefinition:

        if resource_type in self._resolved:
            return self._resolved[resource_type]

        resources = self.app.definition.resources

        if not resources:
            raise ResourceTypeNotFoundException(resource_type, ResourceTypeNotFoundException.NO_RESOURCES)

        definition = resources.get(resource_type)

        if definition is None:
            raise ResourceTypeNotFoundException(resource_type, ResourceTypeNotFoundException.UNKNOWN_TYPE)

        resolved = EffectiveResourceDefinition(self.app, resource_type, definition, self.role_hierarchy)
        self._resolved[resource_type] = resolved

        return resolved
