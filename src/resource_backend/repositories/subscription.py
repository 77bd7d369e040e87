from typing import Dict
from sqlalchemy.orm import Session
from resource_backend.model.resource import AppSubscription, ResourceSubscription
from resource_backend.repositories.base import BaseRepository


class SubscriptionRepository(BaseRepository[AppSubscription]):

    def __init__(self, db: Session):
        super().__init__(db, AppSubscription)

    def resource_status(self, app_id: int, resource_id: int, endpoint: str) -> Dict[str, bool]:
        actions = {
            action for (action,) in self.db.query(ResourceSubscription.action)
            .join(AppSubscription, AppSubscription.id == ResourceSubscription.app_subscription_id)
            .filter(
                AppSubscription.app_id == app_id,
                AppSubscription.endpoint == endpoint,
                ResourceSubscription.resource_id == resource_id,
            ).all()
        }

        return {
            "update": "update" in actions,
            "delete": "delete" in actions,
        }
