"""
Repository layer for database operations.

- WebhookRepository: Webhook definition operations
- RestRouteRepository: Inbound REST route definition operations
- DeliveryLogRepository: Delivery log (audit) operations
- RecordRepository: Records written by route actions
- ConsumerRepository: Polling consumer definitions

Configuration repositories inherit from BaseConfigRepository for common CRUD operations.
"""
from hookrelay.repositories.base_config_repository import BaseConfigRepository
from hookrelay.repositories.webhook_repository import WebhookRepository
from hookrelay.repositories.rest_route_repository import RestRouteRepository
from hookrelay.repositories.delivery_log_repository import DeliveryLogRepository
from hookrelay.repositories.record_repository import RecordRepository
from hookrelay.repositories.consumer_repository import ConsumerRepository

__all__ = [
    'BaseConfigRepository',
    'WebhookRepository',
    'RestRouteRepository',
    'DeliveryLogRepository',
    'RecordRepository',
    'ConsumerRepository',
]
