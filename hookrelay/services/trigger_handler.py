"""Routes trigger firings to the webhooks listening for them."""
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from hookrelay.core.config import settings
from hookrelay.core.exceptions import ConfigurationError
from hookrelay.repositories import WebhookRepository
from hookrelay.services.triggers import TriggerRegistry
from hookrelay.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)


class WebhookTriggerHandler:
    """
    Looks up active webhooks for a trigger key and dispatches the matching ones.

    Args:
        db: SQLAlchemy database session
        registry: Trigger registry providing the match predicates
        dispatcher: Dispatcher to deliver with; built on ``db`` if omitted
        enable_async: Dispatch through the scheduler instead of inline
    """

    def __init__(
        self,
        db: Session,
        registry: TriggerRegistry,
        dispatcher: Optional[WebhookDispatcher] = None,
        enable_async: Optional[bool] = None
    ):
        self.db = db
        self.registry = registry
        self.webhook_repo = WebhookRepository(db)
        self.dispatcher = dispatcher or WebhookDispatcher(db)
        self.enable_async = settings.enable_async if enable_async is None else enable_async

    def handle_trigger(self, trigger_key: str, event_data: Dict[str, Any]) -> int:
        """
        Dispatch every active webhook on ``trigger_key`` whose config matches.

        Returns:
            Number of webhooks dispatched
        """
        dispatched = 0
        for webhook in self.webhook_repo.find_active_by_trigger(trigger_key):
            if not self.registry.matches(trigger_key, event_data, webhook.trigger_config):
                logger.debug(f"Webhook {webhook.id} filtered out for {trigger_key}")
                continue
            try:
                if self.enable_async:
                    self.dispatcher.dispatch_async(webhook, event_data)
                else:
                    self.dispatcher.dispatch(webhook, event_data)
            except ConfigurationError as e:
                logger.warning(f"Webhook {webhook.id} not dispatched: {e}")
                continue
            except Exception as e:
                logger.error(f"Webhook {webhook.id} dispatch for {trigger_key} failed: {e}", exc_info=True)
                continue
            dispatched += 1

        if dispatched:
            logger.info(f"Trigger {trigger_key} dispatched {dispatched} webhooks")
        return dispatched

    def handle_async_dispatch(self, webhook_id: int, event_data: Dict[str, Any]):
        """Deferred entry point: deliver if the webhook still exists and is active."""
        webhook = self.webhook_repo.find(webhook_id)
        if not webhook or not webhook.is_active:
            logger.info(f"Deferred dispatch skipped: webhook {webhook_id} missing or inactive")
            return None
        return self.dispatcher.dispatch(webhook, event_data)


def session_trigger_handler(
    registry: TriggerRegistry,
    session_factory: Callable[[], Session]
) -> Callable[[str, Dict[str, Any]], int]:
    """
    Handler for ``TriggerRegistry.bind`` that opens a session per firing.

    Args:
        registry: Registry used for matching
        session_factory: Returns a new session, e.g. ``SessionLocal``
    """
    def handle(trigger_key: str, event_data: Dict[str, Any]) -> int:
        db = session_factory()
        try:
            return WebhookTriggerHandler(db, registry).handle_trigger(trigger_key, event_data)
        finally:
            db.close()
    return handle
