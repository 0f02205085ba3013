from hookrelay.models.webhook_models import Webhook, DeliveryLog, utcnow
from hookrelay.models.rest_route_models import RestRoute
from hookrelay.models.record_models import Record
from hookrelay.models.consumer_models import Consumer

__all__ = ["Webhook", "DeliveryLog", "RestRoute", "Record", "Consumer", "utcnow"]
