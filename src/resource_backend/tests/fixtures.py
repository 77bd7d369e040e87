"""
Test data shared by the test suite.

Provides the test app definition, seed data and principal factories.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import yaml
from sqlalchemy.orm import Session

from resource_backend.interface.resources import AppContext, AppDefinition
from resource_backend.model.app import App, AppMember, Organization, OrganizationMember, Team, TeamMember
from resource_backend.model.auth import User
from resource_backend.permissions.principal import (
    AuthSurface,
    Principal,
    TeamMembership,
    build_claims,
    organization_claim_values,
)
from resource_backend.permissions.roles import TeamRole

TEST_APP_ID = 1
TEST_ORGANIZATION_ID = "testorg"

USER_ID = "user-1"
MEMBER_B_ID = "user-b"
MEMBER_C_ID = "user-c"
OUTSIDER_ID = "user-outsider"
OPERATOR_ID = "user-operator"
ORG_MEMBER_ID = "user-org-member"

TEAM_A_ID = 1
TEAM_B_ID = 2

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

APP_DEFINITION_YAML = """
name: Test App
security:
  default:
    role: Reader
    policy: everyone
  roles:
    Visitor: {}
    Reader: {}
    Admin:
      inherits: [Reader]
resources:
  testResource:
    roles: [$public]
    schema:
      type: object
      required: [foo]
      properties:
        foo: {type: string}
        bar: {type: string}
        fooz: {type: string}
        baz: {type: string}
        integer: {type: integer}
        number: {type: number}
        boolean: {type: boolean}
        object: {type: object}
        array: {type: array}
    views:
      testView:
        roles: [Reader]
        remap: {prop: foo}
      publicView:
        roles: [$public]
        remap: {prop: foo}
      authorView:
        roles: [$author]
        remap: {prop: foo}
    references:
      parent:
        resource: testResourceB
        update:
          trigger: [update]
        delete:
          trigger: [delete, update]
  testResourceB:
    roles: [$public]
    schema:
      type: object
      properties:
        foo: {type: string}
  testResourceAuthorOnly:
    roles: [$author]
    schema:
      type: object
      properties:
        foo: {type: string}
  testResourceReader:
    roles: [Reader]
    create:
      roles: [Admin]
    schema:
      type: object
      properties:
        foo: {type: string}
  testResourceTeam:
    roles: [$team:member]
    schema:
      type: object
      properties:
        foo: {type: string}
  testResourceTeamManager:
    roles: [$team:manager]
    schema:
      type: object
      properties:
        foo: {type: string}
  testAssets:
    roles: [$public]
    schema:
      type: object
      properties:
        file: {type: string, format: binary}
        other: {type: string, format: binary}
        string: {type: string}
  testHistoryTrue:
    roles: [$public]
    history: true
    schema:
      type: object
      properties:
        string: {type: string}
  testHistoryDataTrue:
    roles: [$public]
    history:
      data: true
    schema:
      type: object
      properties:
        string: {type: string}
  testHistoryDataFalse:
    roles: [$public]
    history:
      data: false
    schema:
      type: object
      properties:
        string: {type: string}
  testExpirableResource:
    roles: [$public]
    expires: 10m
    schema:
      type: object
      properties:
        foo: {type: string}
  testPrivateResource:
    roles: []
    count:
      roles: [$public]
    schema:
      type: object
      properties:
        foo: {type: string}
  testNoneResource:
    roles: [$none]
    schema:
      type: object
      properties:
        foo: {type: string}
  testSortedResource:
    roles: [$public]
    query:
      query:
        $orderby: foo desc
    schema:
      type: object
      properties:
        foo: {type: string}
"""


def app_definition_dict() -> Dict[str, Any]:
    return yaml.safe_load(APP_DEFINITION_YAML)


def app_definition() -> AppDefinition:
    return AppDefinition.from_yaml(APP_DEFINITION_YAML)


def app_context() -> AppContext:
    return AppContext(id=TEST_APP_ID, organization_id=TEST_ORGANIZATION_ID, definition=app_definition())


def make_principal(
    user_id: Optional[str] = None,
    app_role: Optional[str] = None,
    name: Optional[str] = None,
    surface: AuthSurface = AuthSurface.app,
    scopes: Iterable[str] = (),
    organization_role: Optional[str] = None,
) -> Principal:
    """Create a Principal for testing"""
    claims = build_claims(organization_claim_values(TEST_ORGANIZATION_ID, organization_role))
    return Principal(
        user_id=user_id,
        name=name,
        surface=surface,
        app_role=app_role,
        scopes=set(scopes),
        claims=claims,
    )


def make_team(team_id: int, role: str, *member_ids: str) -> TeamMembership:
    return TeamMembership(team_id=team_id, role=TeamRole(role), member_ids=set(member_ids))


USERS = {
    USER_ID: ("Test User", "Admin"),
    MEMBER_B_ID: ("User B", "Reader"),
    MEMBER_C_ID: ("User C", "Reader"),
    OUTSIDER_ID: ("Outsider", "Visitor"),
    OPERATOR_ID: ("Operator", None),
    ORG_MEMBER_ID: ("Org Member", None),
}


def user_principal(user_id: str = USER_ID) -> Principal:
    name, role = USERS[user_id]
    return make_principal(user_id=user_id, app_role=role, name=name)


def seed_database(db: Session) -> None:
    """Organization, app, users, app members and teams of the test app.

    Team A: Test User (manager), User B (member)
    Team B: User C (manager)
    """
    db.add(Organization(id=TEST_ORGANIZATION_ID, name="Test Organization"))

    for user_id, (name, _) in USERS.items():
        db.add(User(id=user_id, name=name, email=f"{user_id}@example.com"))
    db.flush()

    db.add(App(id=TEST_APP_ID, organization_id=TEST_ORGANIZATION_ID, path="test-app",
               definition=app_definition_dict()))
    db.flush()

    for user_id, (_, role) in USERS.items():
        if role is not None:
            db.add(AppMember(app_id=TEST_APP_ID, user_id=user_id, role=role))

    db.add(OrganizationMember(organization_id=TEST_ORGANIZATION_ID, user_id=OPERATOR_ID, role="Maintainer"))
    db.add(OrganizationMember(organization_id=TEST_ORGANIZATION_ID, user_id=ORG_MEMBER_ID, role="Member"))

    db.add(Team(id=TEAM_A_ID, app_id=TEST_APP_ID, name="Team A"))
    db.add(Team(id=TEAM_B_ID, app_id=TEST_APP_ID, name="Team B"))
    db.flush()

    db.add(TeamMember(team_id=TEAM_A_ID, user_id=USER_ID, role="manager"))
    db.add(TeamMember(team_id=TEAM_A_ID, user_id=MEMBER_B_ID, role="member"))
    db.add(TeamMember(team_id=TEAM_B_ID, user_id=MEMBER_C_ID, role="manager"))

    db.commit()


class FakeRemapper:
    """Records remap calls and answers with the expression and the instance id"""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    def evaluate(self, expression: Any, data: Any, context: Dict[str, Any]) -> Any:
        self.calls.append({"expression": expression, "data": data, "context": context})
        return {"remapped": expression, "id": data.get("id")}
