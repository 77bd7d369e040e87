"""
Resource store backed by SQLAlchemy.

Every read excludes instances of other apps and types and instances whose
expiration lies at or before ``now``. Author scopes computed by the
authorization layer are applied as row filters.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Set
from sqlalchemy import or_
from sqlalchemy.orm import Query, Session
from resource_backend.model.resource import Asset, Resource, ResourceVersion
from resource_backend.permissions.query_builders import ResourcePermissionQueryBuilder
from resource_backend.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ResourceRepository(BaseRepository[Resource]):

    def __init__(self, db: Session):
        super().__init__(db, Resource)

    def _visible(self, app_id: int, resource_type: str, now: datetime,
                 author_ids: Optional[Set[str]] = None) -> Query:
        query = self.db.query(Resource).filter(
            Resource.app_id == app_id,
            Resource.type == resource_type,
            or_(Resource.expires.is_(None), Resource.expires > now),
        )
        return ResourcePermissionQueryBuilder.filter_by_authors(query, author_ids)

    def find_by_id(self, app_id: int, resource_type: str, resource_id: int, now: datetime,
                   author_ids: Optional[Set[str]] = None) -> Optional[Resource]:
        return self._visible(app_id, resource_type, now, author_ids).filter(
            Resource.id == resource_id
        ).first()

    def find_by_ids(self, app_id: int, resource_type: str, resource_ids: Iterable[int], now: datetime,
                    author_ids: Optional[Set[str]] = None) -> List[Resource]:
        resource_ids = list(resource_ids)
        if not resource_ids:
            return []
        return self._visible(app_id, resource_type, now, author_ids).filter(
            Resource.id.in_(resource_ids)
        ).all()

    def find_many(
        self,
        app_id: int,
        resource_type: str,
        now: datetime,
        predicate=None,
        order_by: Optional[list] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        author_ids: Optional[Set[str]] = None,
    ) -> List[Resource]:
        """
        List visible instances.

        Args:
            predicate: Compiled filter clause, combined with the visibility filters
            order_by: Compiled ordering clauses
            limit: Maximum number of results
            offset: Number of results to skip
            author_ids: Only instances of these authors, None for all
        """
        query = self._visible(app_id, resource_type, now, author_ids)

        if predicate is not None:
            query = query.filter(predicate)
        if order_by:
            query = query.order_by(*order_by)
        else:
            query = query.order_by(Resource.id.asc())

        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        return query.all()

    def count_where(self, app_id: int, resource_type: str, now: datetime, predicate=None,
                    author_ids: Optional[Set[str]] = None) -> int:
        query = self._visible(app_id, resource_type, now, author_ids)
        if predicate is not None:
            query = query.filter(predicate)
        return query.count()

    def insert(self, resource: Resource) -> Resource:
        self.add(resource)
        logger.info(f"Created {resource.type} resource {resource.id} in app {resource.app_id}")
        return resource

    def update_instance(self, resource: Resource, **changes) -> Resource:
        for key, value in changes.items():
            setattr(resource, key, value)
        self.flush()
        logger.info(f"Updated {resource.type} resource {resource.id} in app {resource.app_id}")
        return resource

    def delete_where(self, app_id: int, resource_type: str, resource_ids: Iterable[int], now: datetime,
                     author_ids: Optional[Set[str]] = None) -> List[int]:
        """Delete the visible instances among ``resource_ids``, unknown ids are ignored"""
        deleted = []
        for resource in self.find_by_ids(app_id, resource_type, resource_ids, now, author_ids):
            deleted.append(resource.id)
            self.remove(resource)
        self.flush()
        if deleted:
            logger.info(f"Deleted {resource_type} resources {deleted} in app {app_id}")
        return deleted

    def add_version(self, version: ResourceVersion) -> ResourceVersion:
        return self.add(version)

    def versions(self, resource_id: int) -> List[ResourceVersion]:
        return self.db.query(ResourceVersion).filter(
            ResourceVersion.resource_id == resource_id
        ).order_by(ResourceVersion.created_at.asc()).all()

    def add_asset(self, asset: Asset) -> Asset:
        return self.add(asset)

    def assets(self, resource_id: int) -> List[Asset]:
        return self.db.query(Asset).filter(Asset.resource_id == resource_id).all()

    def delete_assets(self, assets: Iterable[Asset]) -> None:
        for asset in assets:
            logger.debug(f"Deleting dereferenced asset {asset.id} of resource {asset.resource_id}")
            self.remove(asset)
        self.flush()
