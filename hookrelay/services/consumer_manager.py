"""
Polling consumers.

A consumer fetches its source URL on a schedule and feeds the decoded
response through the same action chain inbound routes use. The response is
wrapped like an inbound request (``body``, ``headers``, ``query``,
``params``) so route actions and merge tags work unchanged.
"""
import json
import logging
import time
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from hookrelay.core.config import settings
from hookrelay.repositories import ConsumerRepository
from hookrelay.schemas.rest_route_schemas import ExecutionResult
from hookrelay.services.action_processor import ActionProcessor
from hookrelay.services.http_executor import HttpExecutor
from hookrelay.services.scheduler import CeleryScheduler

logger = logging.getLogger(__name__)


def decode_body(raw: str) -> Any:
    """Decoded JSON, or ``{"body": raw}`` when the response is not a non-empty JSON value."""
    try:
        decoded = json.loads(raw) if raw else None
    except ValueError:
        decoded = None
    return decoded if decoded else {"body": raw}


class ConsumerManager:
    """Schedules due consumers and runs them."""

    def __init__(
        self,
        db: Session,
        executor: Optional[HttpExecutor] = None,
        scheduler=None
    ):
        """
        Args:
            db: SQLAlchemy database session
            executor: Transport for the source request and http_request actions
            scheduler: Anything with ``run_at(timestamp, handler_key, args)``
        """
        self.db = db
        self.repository = ConsumerRepository(db)
        self.executor = executor or HttpExecutor(timeout=settings.consumer_timeout)
        self.scheduler = scheduler or CeleryScheduler()

    def schedule_due(self) -> int:
        """
        Enqueue ``run_consumer`` for every active consumer that is due.

        Returns:
            Number of consumers enqueued
        """
        due = self.repository.find_due()
        for consumer in due:
            self.scheduler.run_at(time.time(), "run_consumer", [consumer.id])
        if due:
            logger.info(f"Scheduled {len(due)} due consumers")
        return len(due)

    def run(self, consumer_id: int) -> Optional[List[ExecutionResult]]:
        """
        Poll a consumer's source and run its actions on the response.

        Args:
            consumer_id: Consumer ID

        Returns:
            Execution results, or None when the consumer is missing, inactive
            or its source could not be reached. ``last_run`` is only updated
            when the actions ran.
        """
        consumer = self.repository.find(consumer_id)
        if not consumer or not consumer.is_active:
            logger.info(f"Consumer {consumer_id} missing or inactive, skipped")
            return None

        response = self.executor.send(
            consumer.source_url,
            consumer.http_method or "GET",
            dict(consumer.headers or {})
        )
        if response.code == 0:
            logger.warning(f"Consumer {consumer_id} could not fetch {consumer.source_url}: {response.error}")
            return None

        data = {
            "body": decode_body(response.body),
            "headers": response.headers,
            "query": {},
            "params": {},
        }
        results = ActionProcessor(self.db, executor=self.executor).process(consumer.actions or [], data)
        self.repository.update_last_run(consumer_id)

        logger.info(
            f"Consumer {consumer_id} ({consumer.name}) processed {len(results)} runs, "
            f"HTTP {response.code}"
        )
        return results
