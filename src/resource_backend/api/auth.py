"""
Request scoped dependencies of the resource API.

Authentication is performed by middleware in front of this API, which stores
the authenticated identity on ``request.state`` (``user_id``,
``auth_surface`` and ``scopes``). A request without identity is anonymous.
"""

import logging
from datetime import datetime
from typing import List, Optional, Set
from fastapi import Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from resource_backend.database import get_db
from resource_backend.interface.resources import AppContext
from resource_backend.permissions.auth import build_principal
from resource_backend.permissions.principal import AuthSurface, Principal, TeamMembership
from resource_backend.repositories.app import AppRepository
from resource_backend.repositories.team import TeamRepository
from resource_backend.services.resource_expiration import utc_now
from resource_backend.services.resource_views import Remapper

logger = logging.getLogger(__name__)


class CallerIdentity(BaseModel):
    user_id: Optional[str] = None
    surface: AuthSurface = AuthSurface.app
    scopes: Set[str] = Field(default_factory=set)


def get_caller_identity(request: Request) -> CallerIdentity:
    state = request.state
    return CallerIdentity(
        user_id=getattr(state, "user_id", None),
        surface=AuthSurface(getattr(state, "auth_surface", AuthSurface.app)),
        scopes=set(getattr(state, "scopes", None) or ()),
    )


def get_app_context(app_id: int, db: Session = Depends(get_db)) -> AppContext:
    return AppRepository(db).get_context(app_id)


def get_current_principal(
    app: AppContext = Depends(get_app_context),
    identity: CallerIdentity = Depends(get_caller_identity),
    db: Session = Depends(get_db),
) -> Principal:
    return build_principal(db, app, identity.user_id, identity.surface, identity.scopes)


def get_current_teams(
    app: AppContext = Depends(get_app_context),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> List[TeamMembership]:
    return TeamRepository(db).memberships(app.id, principal.user_id)


def get_request_time() -> datetime:
    """The single "now" of a request"""
    return utc_now()


_remapper: Optional[Remapper] = None


def register_remapper(remapper: Optional[Remapper]) -> None:
    global _remapper
    _remapper = remapper
    logger.info(f"Registered remapper {type(remapper).__name__}")


def get_remapper() -> Optional[Remapper]:
    return _remapper
