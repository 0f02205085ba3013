"""
Celery-backed scheduler.

Deferred work is addressed by handler key rather than by task object so
callers never import the task modules.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from celery import Celery

from hookrelay.celery_app import celery_app
from hookrelay.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

HANDLERS: Dict[str, str] = {
    "dispatch_webhook": "hookrelay.tasks.webhook_tasks.dispatch_webhook",
    "retry_webhook": "hookrelay.tasks.webhook_tasks.retry_webhook",
    "cleanup_logs": "hookrelay.tasks.webhook_tasks.cleanup_logs",
    "process_rest_route": "hookrelay.tasks.route_tasks.process_rest_route",
    "run_consumer": "hookrelay.tasks.consumer_tasks.run_consumer",
    "schedule_consumers": "hookrelay.tasks.consumer_tasks.schedule_consumers",
}


class CeleryScheduler:
    """At-least-once, not-before execution of named handlers."""

    def __init__(self, app: Optional[Celery] = None):
        self.app = app or celery_app

    def run_at(self, timestamp: float, handler_key: str, args: List[Any]) -> str:
        """
        Schedule a handler to run at or after ``timestamp``.

        Args:
            timestamp: Unix time of the earliest execution
            handler_key: One of ``HANDLERS``
            args: Positional task arguments; must be JSON serializable

        Returns:
            Celery task id
        """
        task_name = self._task_name(handler_key)
        eta = datetime.fromtimestamp(timestamp, tz=timezone.utc)
        result = self.app.send_task(task_name, args=list(args), eta=eta)
        logger.info(f"Scheduled {handler_key}{list(args)!r} at {eta.isoformat()} (task {result.id})")
        return result.id

    def run_recurring(self, interval_seconds: int, handler_key: str) -> str:
        """Register a beat entry running ``handler_key`` every ``interval_seconds``."""
        task_name = self._task_name(handler_key)
        entry = f"{handler_key}-every-{int(interval_seconds)}-seconds"
        self.app.conf.beat_schedule[entry] = {
            "task": task_name,
            "schedule": float(interval_seconds),
        }
        return entry

    def cancel(self, handler_key: str, args: List[Any]) -> int:
        """
        Revoke pending executions of ``handler_key`` with exactly ``args``.

        Returns:
            Number of revoked tasks
        """
        task_name = self._task_name(handler_key)
        scheduled = self.app.control.inspect().scheduled() or {}

        revoked = 0
        for entries in scheduled.values():
            for entry in entries:
                request = entry.get("request", {})
                if request.get("name") == task_name and list(request.get("args") or []) == list(args):
                    self.app.control.revoke(request["id"])
                    revoked += 1

        logger.info(f"Revoked {revoked} scheduled {handler_key} tasks")
        return revoked

    @staticmethod
    def _task_name(handler_key: str) -> str:
        try:
            return HANDLERS[handler_key]
        except KeyError:
            raise ConfigurationError(f"Unknown scheduler handler: {handler_key}")
