"""
Base repository for configuration definitions.

Provides the shared find/save/delete operations for webhook and REST route
definitions, including the filter criteria both stores accept.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from hookrelay.models import RestRoute, Webhook

logger = logging.getLogger(__name__)

T = TypeVar("T", Webhook, RestRoute)


class BaseConfigRepository(Generic[T]):
    """
    Base repository providing CRUD operations for configuration models.

    Subclasses must define:
        - model_class: The SQLAlchemy model class
        - search_columns: Column names matched by the ``search`` criterion

    Example:
        class WebhookRepository(BaseConfigRepository[Webhook]):
            model_class = Webhook
    """

    model_class: Type[T] = None
    search_columns: List[str] = ["name"]

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db
        if self.model_class is None:
            raise NotImplementedError(
                f"{self.__class__.__name__} must define model_class attribute"
            )

    def find(self, definition_id: int) -> Optional[T]:
        return self.db.query(self.model_class).filter(
            self.model_class.id == definition_id
        ).first()

    def find_all(
        self,
        criteria: Optional[Dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[T]:
        """
        List definitions matching the criteria, newest first.

        Args:
            criteria: Optional keys ``trigger_key``, ``is_active``, ``search``,
                ``date_from``, ``date_to``
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            List of definitions
        """
        query = self._apply_criteria(self.db.query(self.model_class), criteria or {})
        return query.order_by(
            self.model_class.created_at.desc(), self.model_class.id.desc()
        ).offset(offset).limit(limit).all()

    def count(self, criteria: Optional[Dict[str, Any]] = None) -> int:
        return self._apply_criteria(self.db.query(self.model_class), criteria or {}).count()

    def create(self, data: BaseModel) -> Optional[T]:
        """
        Create a definition from a validated create schema.

        Args:
            data: Create schema

        Returns:
            Created definition or None if failed
        """
        try:
            definition = self.model_class(**data.model_dump())
            self.db.add(definition)
            self.db.commit()
            self.db.refresh(definition)
            logger.info(f"Created {self.model_class.__name__} {definition.id}")
            return definition
        except Exception as e:
            logger.error(f"Error creating {self.model_class.__name__}: {e}")
            self.db.rollback()
            return None

    def update(self, definition_id: int, data: BaseModel) -> Optional[T]:
        """
        Apply the fields set on an update schema.

        Args:
            definition_id: Definition ID
            data: Update schema; unset fields are left untouched

        Returns:
            Updated definition or None if not found
        """
        try:
            definition = self.find(definition_id)
            if not definition:
                return None

            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(definition, key, value)

            self.db.commit()
            self.db.refresh(definition)
            logger.info(f"Updated {self.model_class.__name__} {definition_id}")
            return definition
        except Exception as e:
            logger.error(f"Error updating {self.model_class.__name__} {definition_id}: {e}")
            self.db.rollback()
            return None

    def save(self, data: BaseModel, definition_id: Optional[int] = None) -> Optional[int]:
        """Create when ``definition_id`` is None, otherwise update. Returns the id."""
        if definition_id is None:
            definition = self.create(data)
        else:
            definition = self.update(definition_id, data)
        return definition.id if definition else None

    def delete(self, definition_id: int) -> bool:
        """
        Delete a definition.

        Args:
            definition_id: Definition ID

        Returns:
            True if deleted, False if not found
        """
        try:
            definition = self.find(definition_id)
            if not definition:
                return False

            self.db.delete(definition)
            self.db.commit()
            logger.info(f"Deleted {self.model_class.__name__} {definition_id}")
            return True
        except Exception as e:
            logger.error(f"Error deleting {self.model_class.__name__} {definition_id}: {e}")
            self.db.rollback()
            return False

    def toggle_active(self, definition_id: int) -> Optional[T]:
        definition = self.find(definition_id)
        if not definition:
            return None
        definition.is_active = not definition.is_active
        self.db.commit()
        self.db.refresh(definition)
        return definition

    def _apply_criteria(self, query: Query, criteria: Dict[str, Any]) -> Query:
        model = self.model_class

        if criteria.get("trigger_key") and hasattr(model, "trigger_key"):
            query = query.filter(model.trigger_key == criteria["trigger_key"])
        if criteria.get("is_active") is not None:
            query = query.filter(model.is_active == bool(criteria["is_active"]))
        if criteria.get("search"):
            pattern = f"%{criteria['search']}%"
            query = query.filter(or_(*[
                getattr(model, column).ilike(pattern) for column in self.search_columns
            ]))
        if criteria.get("date_from"):
            query = query.filter(model.created_at >= as_datetime(criteria["date_from"]))
        if criteria.get("date_to"):
            query = query.filter(model.created_at <= as_datetime(criteria["date_to"]))

        return query


def as_datetime(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
