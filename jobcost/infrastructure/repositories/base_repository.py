"""
Base Repository - Common data access for job cost entities.
"""
from typing import Generic, TypeVar, Optional, Type
from sqlalchemy.orm import Session

from jobcost.models import Base

T = TypeVar('T', bound=Base)


class BaseRepository(Generic[T]):
    """
    Base repository.

    Type Parameters:
        T: The SQLAlchemy model type this repository manages
    """

    def __init__(self, session: Session, model_class: Type[T]):
        self.session = session
        self.model_class = model_class

    def get_by_id(self, entity_id: int) -> Optional[T]:
        """Retrieve an entity by its primary key, or None."""
        return self.session.get(self.model_class, entity_id)

    def add(self, entity: T) -> T:
        self.session.add(entity)
        return entity

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def exists(self, **criteria) -> bool:
        """
        Check if an entity matching the criteria exists.

        Args:
            **criteria: Field-value pairs to match
        """
        query = self.session.query(self.model_class)
        for field, value in criteria.items():
            query = query.filter(getattr(self.model_class, field) == value)
        return query.first() is not None
