"""
Resolution of the caller of a request into a Principal.

Authentication happens upstream. This module only turns an authenticated
user id into the current app membership and organization permissions, read
fresh from the database for every request.
"""

import logging
from typing import Iterable, Optional
from sqlalchemy.orm import Session
from resource_backend.interface.resources import AppContext
from resource_backend.permissions.principal import (
    AuthSurface,
    Principal,
    build_claims,
    organization_claim_values,
)
from resource_backend.repositories.app import AppRepository

logger = logging.getLogger(__name__)


def build_principal(
    db: Session,
    app: AppContext,
    user_id: Optional[str],
    surface: AuthSurface = AuthSurface.app,
    scopes: Iterable[str] = (),
) -> Principal:

    if user_id is None:
        return Principal(surface=surface)

    apps = AppRepository(db)

    claim_values = []
    if surface in (AuthSurface.studio, AuthSurface.client_credentials):
        organization_role = apps.organization_role(app.organization_id, user_id)
        claim_values.extend(organization_claim_values(app.organization_id, organization_role))

    principal = Principal(
        user_id=user_id,
        name=apps.user_name(user_id),
        surface=surface,
        app_role=apps.member_role(app.id, user_id),
        scopes=set(scopes),
        claims=build_claims(claim_values),
    )

    logger.debug(f"Resolved principal {user_id} ({surface.value}) for app {app.id}")

    return principal
