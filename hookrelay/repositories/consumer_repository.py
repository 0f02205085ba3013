"""Consumer repository."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from hookrelay.models import Consumer, utcnow
from hookrelay.repositories.base_config_repository import BaseConfigRepository
from hookrelay.schemas.consumer_schemas import SCHEDULE_INTERVALS

logger = logging.getLogger(__name__)


class ConsumerRepository(BaseConfigRepository[Consumer]):
    """Repository for polling consumer definitions."""

    model_class = Consumer
    search_columns = ["name", "description", "source_url"]

    def find_due(self, now: Optional[datetime] = None) -> List[Consumer]:
        """
        Active consumers whose schedule interval has elapsed since their last run.

        Args:
            now: Reference time (naive UTC); defaults to the current time

        Returns:
            Consumers that never ran or are due, oldest id first
        """
        now = now or utcnow()
        candidates = self.db.query(Consumer).filter(
            Consumer.is_active.is_(True)
        ).order_by(Consumer.id).all()

        due = []
        for consumer in candidates:
            if consumer.last_run is None:
                due.append(consumer)
                continue
            interval = SCHEDULE_INTERVALS.get(consumer.schedule, SCHEDULE_INTERVALS["hourly"])
            if consumer.last_run + timedelta(seconds=interval) <= now:
                due.append(consumer)
        return due

    def update_last_run(self, consumer_id: int, when: Optional[datetime] = None) -> bool:
        consumer = self.find(consumer_id)
        if not consumer:
            return False
        try:
            consumer.last_run = when or utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.debug(f"Consumer {consumer_id} last run set to {consumer.last_run}")
        return True
