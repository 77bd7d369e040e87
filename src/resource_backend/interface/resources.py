from enum import Enum
from typing import Any, Dict, List, Optional, Union
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from resource_backend.services.resource_expiration import parse_duration


class ResourceAction(str, Enum):
    create = "create"
    get = "get"
    query = "query"
    count = "count"
    update = "update"
    patch = "patch"
    delete = "delete"

    @property
    def is_read(self) -> bool:
        return self in (ResourceAction.get, ResourceAction.query, ResourceAction.count)


class ResourceCall(BaseModel):
    roles: Optional[List[str]] = Field(None, description="Roles overriding the resource level roles")
    query: Optional[Dict[str, Any]] = Field(None, description="Default query parameters")
    hooks: Optional[Dict[str, Any]] = Field(None, description="Hooks, passed through untouched")

    model_config = ConfigDict(
        extra='allow',
    )


class ResourceView(BaseModel):
    roles: List[str] = Field(default_factory=list, description="Roles allowed to use this view")
    remap: Any = Field(None, description="Remapper expression applied to each instance")


class ResourceReferenceAction(BaseModel):
    trigger: List[str] = Field(default_factory=list)


class ResourceReference(BaseModel):
    resource: str = Field(description="Referenced resource type")
    create: Optional[ResourceReferenceAction] = None
    update: Optional[ResourceReferenceAction] = None
    delete: Optional[ResourceReferenceAction] = None


class ResourceHistoryDefinition(BaseModel):
    data: bool = True


class ResourceDefinition(BaseModel):
    schema_: Dict[str, Any] = Field(alias="schema", description="JSON schema of the resource data")
    roles: Optional[List[str]] = None
    history: Union[bool, ResourceHistoryDefinition] = False
    expires: Optional[str] = Field(None, description="Duration after which instances expire, e.g. 1d 8h 30m")
    id: str = "id"
    url: Optional[str] = None
    views: Dict[str, ResourceView] = Field(default_factory=dict)
    references: Dict[str, ResourceReference] = Field(default_factory=dict)

    create: Optional[ResourceCall] = None
    get: Optional[ResourceCall] = None
    query: Optional[ResourceCall] = None
    count: Optional[ResourceCall] = None
    update: Optional[ResourceCall] = None
    patch: Optional[ResourceCall] = None
    delete: Optional[ResourceCall] = None

    model_config = ConfigDict(
        extra='allow',
        populate_by_name=True,
    )

    @field_validator('schema_')
    @classmethod
    def validate_schema(cls, v):
        if not isinstance(v, dict):
            raise ValueError('Resource schema must be an object')
        return v

    @field_validator('expires')
    @classmethod
    def validate_expires(cls, v):
        if v is not None:
            parse_duration(v)
        return v

    def action_call(self, action: ResourceAction) -> Optional[ResourceCall]:
        return getattr(self, action.value)


class RoleDefinition(BaseModel):
    description: Optional[str] = None
    inherits: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        extra='allow',
    )


class SecurityDefaultDefinition(BaseModel):
    role: str
    policy: Optional[str] = None


class SecurityDefinition(BaseModel):
    default: Optional[SecurityDefaultDefinition] = None
    roles: Dict[str, RoleDefinition] = Field(default_factory=dict)
    teams: Optional[Dict[str, Any]] = None


class AppDefinition(BaseModel):
    name: Optional[str] = None
    resources: Optional[Dict[str, ResourceDefinition]] = None
    security: Optional[SecurityDefinition] = None

    model_config = ConfigDict(
        extra='allow',
    )

    @classmethod
    def from_yaml(cls, text: str) -> "AppDefinition":
        return cls.model_validate(yaml.safe_load(text) or {})


class AppContext(BaseModel):
    """An app as seen by a single request."""

    id: int
    organization_id: str
    definition: AppDefinition
