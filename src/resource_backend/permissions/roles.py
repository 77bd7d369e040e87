from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class TeamRole(str, Enum):
    member = "member"
    manager = "manager"

    def satisfies(self, required: "TeamRole") -> bool:
        """manager satisfies both levels, member only member"""
        if required == TeamRole.member:
            return True
        return self == TeamRole.manager


class RoleKind(str, Enum):
    public = "$public"
    none = "$none"
    author = "$author"
    team_member = "$team:member"
    team_manager = "$team:manager"
    named = "named"


class RoleRequirement(BaseModel):
    """A single entry of a roles list, either a pseudo-role or an app role name."""

    kind: RoleKind
    name: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, value: str) -> "RoleRequirement":
        if value.startswith("$"):
            try:
                kind = RoleKind(value)
            except ValueError:
                raise ValueError(f"Unknown pseudo-role {value}")
            if kind != RoleKind.named:
                return cls(kind=kind)
        return cls(kind=RoleKind.named, name=value)

    @property
    def team_role(self) -> Optional[TeamRole]:
        if self.kind == RoleKind.team_member:
            return TeamRole.member
        if self.kind == RoleKind.team_manager:
            return TeamRole.manager
        return None

    def __str__(self) -> str:
        if self.kind == RoleKind.named:
            return self.name
        return self.kind.value


def parse_roles(values: Optional[List[str]]) -> List[RoleRequirement]:
    return [RoleRequirement.parse(value) for value in values or []]
