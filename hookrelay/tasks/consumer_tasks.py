"""
Celery tasks for polling consumers.
"""
import logging
from typing import Any, Dict

from hookrelay.celery_app import celery_app
from hookrelay.services.consumer_manager import ConsumerManager
from hookrelay.tasks.webhook_tasks import DatabaseTask

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="hookrelay.tasks.consumer_tasks.schedule_consumers"
)
def schedule_consumers(self) -> Dict[str, Any]:
    """Enqueue every active consumer whose schedule interval has elapsed."""
    try:
        scheduled = ConsumerManager(self.db).schedule_due()
        return {"success": True, "scheduled": scheduled}
    except Exception as exc:
        logger.error(f"Error scheduling consumers: {exc}", exc_info=True)
        return {"success": False, "error": str(exc)}


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="hookrelay.tasks.consumer_tasks.run_consumer"
)
def run_consumer(self, consumer_id: int) -> Dict[str, Any]:
    """
    Poll one consumer and run its action chain.

    Args:
        consumer_id: Consumer ID

    Returns:
        Dict with per-run execution results
    """
    try:
        results = ConsumerManager(self.db).run(consumer_id)
        if results is None:
            return {"success": False, "consumer_id": consumer_id, "action": "skipped"}

        return {
            "success": all(result.success for result in results),
            "consumer_id": consumer_id,
            "results": [result.model_dump(mode="json") for result in results],
            "batch": len(results) > 1,
        }
    except Exception as exc:
        logger.error(f"Error running consumer {consumer_id}: {exc}", exc_info=True)
        return {"success": False, "consumer_id": consumer_id, "error": str(exc)}
