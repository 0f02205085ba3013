"""
Celery tasks for deferred webhook delivery, retries and log retention.
"""
import logging
from typing import Any, Dict, Optional

from celery import Task

from hookrelay.celery_app import celery_app
from hookrelay.core.config import settings
from hookrelay.db.session import SessionLocal
from hookrelay.repositories import DeliveryLogRepository
from hookrelay.services.trigger_handler import WebhookTriggerHandler
from hookrelay.services.triggers import build_default_registry
from hookrelay.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

registry = build_default_registry()


class DatabaseTask(Task):
    """Base task with database session management."""
    _db = None

    @property
    def db(self):
        if self._db is None:
            self._db = SessionLocal()
        return self._db

    def after_return(self, *args, **kwargs):
        if self._db is not None:
            self._db.close()
            self._db = None


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="hookrelay.tasks.webhook_tasks.dispatch_webhook"
)
def dispatch_webhook(self, webhook_id: int, event_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deliver a webhook handed over by ``WebhookDispatcher.dispatch_async``.

    Args:
        webhook_id: Webhook ID
        event_data: Event data produced by the trigger

    Returns:
        Dict with the delivery outcome
    """
    try:
        handler = WebhookTriggerHandler(self.db, registry)
        result = handler.handle_async_dispatch(webhook_id, event_data)
        if result is None:
            return {"success": False, "webhook_id": webhook_id, "action": "skipped"}
        return {"success": result.success, "webhook_id": webhook_id, **result.model_dump()}
    except Exception as exc:
        logger.error(f"Error dispatching webhook {webhook_id}: {exc}", exc_info=True)
        return {"success": False, "webhook_id": webhook_id, "error": str(exc)}


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="hookrelay.tasks.webhook_tasks.retry_webhook"
)
def retry_webhook(self, log_id: int) -> Dict[str, Any]:
    """
    Retry the delivery recorded in a log row.

    Args:
        log_id: Delivery log row ID

    Returns:
        Dict with the retry outcome
    """
    try:
        success = WebhookDispatcher(self.db).retry(log_id)
        return {"success": success, "log_id": log_id}
    except Exception as exc:
        logger.error(f"Error retrying delivery {log_id}: {exc}", exc_info=True)
        return {"success": False, "log_id": log_id, "error": str(exc)}


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="hookrelay.tasks.webhook_tasks.cleanup_logs",
    max_retries=1
)
def cleanup_logs(
    self,
    days: Optional[int] = None,
    max_entries: Optional[int] = None
) -> Dict[str, Any]:
    """
    Prune delivery logs by age, then by count.

    Args:
        days: Number of days to keep logs (default: log_retention_days)
        max_entries: Maximum rows to keep (default: max_log_entries)

    Returns:
        Dict with cleanup statistics
    """
    days = days if days is not None else settings.log_retention_days
    max_entries = max_entries if max_entries is not None else settings.max_log_entries
    try:
        log_repo = DeliveryLogRepository(self.db)
        expired = log_repo.delete_older_than(days)
        overflow = log_repo.enforce_max_entries(max_entries)

        logger.info(f"Cleaned up {expired + overflow} delivery logs")

        return {
            "success": True,
            "expired": expired,
            "overflow": overflow,
            "deleted_count": expired + overflow,
        }

    except Exception as exc:
        logger.error(f"Error cleaning up delivery logs: {exc}", exc_info=True)
        return {
            "success": False,
            "error": str(exc)
        }
