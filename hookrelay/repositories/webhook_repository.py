"""
Webhook repository.

Handles webhook definition database operations.
"""
import logging
from typing import List, Optional

from hookrelay.models import DeliveryLog, Webhook
from hookrelay.repositories.base_config_repository import BaseConfigRepository

logger = logging.getLogger(__name__)


class WebhookRepository(BaseConfigRepository[Webhook]):
    """Repository for webhook definitions."""

    model_class = Webhook
    search_columns = ["name", "description", "endpoint_url"]

    def find_active_by_trigger(self, trigger_key: str) -> List[Webhook]:
        """Active webhooks listening to a trigger key, oldest first."""
        return self.db.query(Webhook).filter(
            Webhook.trigger_key == trigger_key,
            Webhook.is_active.is_(True)
        ).order_by(Webhook.id).all()

    def delete(self, definition_id: int) -> bool:
        """Delete a webhook together with its delivery log rows."""
        deleted = super().delete(definition_id)
        if deleted:
            removed = self.db.query(DeliveryLog).filter(
                DeliveryLog.webhook_id == definition_id
            ).delete(synchronize_session=False)
            self.db.commit()
            logger.info(f"Deleted {removed} delivery logs of webhook {definition_id}")
        return deleted

    def duplicate(self, webhook_id: int) -> Optional[Webhook]:
        """
        Copy a webhook as an inactive draft.

        Args:
            webhook_id: Webhook to copy

        Returns:
            The new webhook or None if the source was not found
        """
        source = self.find(webhook_id)
        if not source:
            return None

        copy = Webhook(
            name=f"{source.name} (Copy)",
            description=source.description,
            trigger_key=source.trigger_key,
            trigger_config=dict(source.trigger_config or {}),
            endpoint_url=source.endpoint_url,
            http_method=source.http_method,
            custom_headers=dict(source.custom_headers or {}),
            payload_format=source.payload_format,
            payload_template=dict(source.payload_template or {}),
            secret_key=source.secret_key,
            is_active=False,
            retry_count=source.retry_count,
            retry_delay_seconds=source.retry_delay_seconds,
            created_by=source.created_by,
        )
        self.db.add(copy)
        self.db.commit()
        self.db.refresh(copy)
        logger.info(f"Duplicated webhook {webhook_id} as {copy.id}")
        return copy
