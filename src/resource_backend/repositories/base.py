"""
Base repository for the resource store.

Repositories keep SQLAlchemy sessions out of the services. Writes are
flushed as they are staged so generated ids are available immediately;
``transaction`` commits everything staged inside it as one unit.
"""

import logging
from abc import ABC
from contextlib import contextmanager
from typing import Any, Generic, Iterator, Optional, Type, TypeVar
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Raised when the store rejects a write."""
    pass


class NotFoundError(RepositoryError):

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(f"{entity_type} {entity_id} does not exist")
        self.entity_type = entity_type
        self.entity_id = entity_id


class BaseRepository(ABC, Generic[T]):

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    def get_by_id(self, entity_id: Any) -> T:
        """
        Load a row by primary key.

        Raises:
            NotFoundError: If no row has that key
        """
        entity = self.db.get(self.model, entity_id)
        if entity is None:
            raise NotFoundError(self.model.__name__, entity_id)
        return entity

    def add(self, entity: Any) -> Any:
        """
        Stage a row of any mapped type and flush it.

        Raises:
            RepositoryError: If the flush fails
        """
        self.db.add(entity)
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Could not store {type(entity).__name__}: {e}")
        return entity

    def remove(self, entity: Any) -> None:
        self.db.delete(entity)

    def flush(self) -> None:
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    @contextmanager
    def transaction(self) -> Iterator["BaseRepository[T]"]:
        """Commit when the block completes, roll back and re-raise otherwise."""
        try:
            yield self
            self.db.commit()
        except Exception:
            logger.error(f"Rolling back {self.model.__name__} transaction")
            self.db.rollback()
            raise
