"""
Repositories giving the services direct, intention revealing database access.
"""

from .base import (
    BaseRepository,
    RepositoryError,
    NotFoundError,
)
from .app import AppRepository
from .resource import ResourceRepository
from .subscription import SubscriptionRepository
from .team import TeamRepository

__all__ = [
    "BaseRepository",
    "RepositoryError",
    "NotFoundError",
    "AppRepository",
    "ResourceRepository",
    "SubscriptionRepository",
    "TeamRepository",
]
