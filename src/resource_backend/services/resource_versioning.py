import copy
import logging
from datetime import datetime
from typing import Optional, Union
from uuid import uuid4
from pydantic import BaseModel
from resource_backend.interface.resources import ResourceHistoryDefinition
from resource_backend.model.resource import Resource, ResourceVersion

logger = logging.getLogger(__name__)


class HistoryPolicy(BaseModel):
    enabled: bool = False
    keep_data: bool = False

    @classmethod
    def from_definition(cls, history: Union[bool, ResourceHistoryDefinition, None]) -> "HistoryPolicy":
        if isinstance(history, ResourceHistoryDefinition):
            return cls(enabled=True, keep_data=history.data)
        if history:
            return cls(enabled=True, keep_data=True)
        return cls()


def snapshot_resource(resource: Resource, policy: HistoryPolicy, editor_id: Optional[str], now: datetime) -> Optional[ResourceVersion]:
    """Version row holding the state of ``resource`` before it is mutated.

    Must be called before the new data is applied and added to the same
    session as the mutation, so both commit together.
    """
    if not policy.enabled:
        return None

    version = ResourceVersion(
        id=str(uuid4()),
        resource_id=resource.id,
        user_id=editor_id,
        created_at=now,
        data=copy.deepcopy(resource.data) if policy.keep_data else None,
    )

    logger.debug(f"Snapshot of resource {resource.id} (data kept: {policy.keep_data})")

    return version
