from typing import Optional
from sqlalchemy.orm import Session
from resource_backend.api.exceptions import NotFoundException
from resource_backend.interface.resources import AppContext, AppDefinition
from resource_backend.model.app import App, AppMember, OrganizationMember
from resource_backend.model.auth import User
from resource_backend.repositories.base import BaseRepository, NotFoundError


class AppRepository(BaseRepository[App]):

    def __init__(self, db: Session):
        super().__init__(db, App)

    def get_context(self, app_id: int) -> AppContext:
        try:
            app = self.get_by_id(app_id)
        except NotFoundError:
            raise NotFoundException("App not found")

        return AppContext(
            id=app.id,
            organization_id=app.organization_id,
            definition=AppDefinition.model_validate(app.definition or {}),
        )

    def member_role(self, app_id: int, user_id: str) -> Optional[str]:
        member = self.db.query(AppMember).filter(
            AppMember.app_id == app_id,
            AppMember.user_id == user_id
        ).first()
        return member.role if member is not None else None

    def organization_role(self, organization_id: str, user_id: str) -> Optional[str]:
        member = self.db.query(OrganizationMember).filter(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id
        ).first()
        return member.role if member is not None else None

    def user_name(self, user_id: str) -> Optional[str]:
        user = self.db.query(User).filter(User.id == user_id).first()
        return user.name if user is not None else None
