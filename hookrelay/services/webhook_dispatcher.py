"""
Webhook delivery.

One delivery is: build the payload, sign it, write a pending log row, send,
classify, update the row in place and, on failure, schedule a retry that
carries only the log row id. Retries resend the stored payload bytes with
a fresh signature.
"""
import logging
import time
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from hookrelay.core.config import settings
from hookrelay.core.exceptions import ConfigurationError
from hookrelay.models import Webhook
from hookrelay.repositories import DeliveryLogRepository, WebhookRepository
from hookrelay.schemas.delivery_schemas import DeliveryResult, HttpResponse, WebhookTestResult
from hookrelay.services import events, template_engine
from hookrelay.services.http_executor import HttpExecutor
from hookrelay.services.sample_data import sample_data
from hookrelay.services.scheduler import CeleryScheduler
from hookrelay.services.signature import SIGNATURE_HEADER, SignatureGenerator

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "json": "application/json",
    "form": "application/x-www-form-urlencoded",
}
HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}
TRUNCATION_MARKER = "... [truncated]"


def truncate_body(body: Optional[str], limit: int) -> Optional[str]:
    """Cut ``body`` so that, marker included, it is exactly ``limit`` characters."""
    if body is None or len(body) <= limit:
        return body
    return body[:max(limit - len(TRUNCATION_MARKER), 0)] + TRUNCATION_MARKER


def remove_header(headers: Dict[str, str], name: str) -> None:
    for key in [key for key in headers if key.lower() == name.lower()]:
        del headers[key]


def set_header(headers: Dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any existing key that differs only by case."""
    remove_header(headers, name)
    headers[name] = value


class WebhookDispatcher:
    """Delivers webhooks and records every attempt."""

    def __init__(
        self,
        db: Session,
        executor: Optional[HttpExecutor] = None,
        scheduler=None,
        signer: Optional[SignatureGenerator] = None
    ):
        """
        Args:
            db: SQLAlchemy database session
            executor: Transport; defaults to HttpExecutor
            scheduler: Anything with ``run_at(timestamp, handler_key, args)``;
                defaults to CeleryScheduler
            signer: Signature generator
        """
        self.db = db
        self.webhook_repo = WebhookRepository(db)
        self.log_repo = DeliveryLogRepository(db)
        self.executor = executor or HttpExecutor()
        self.scheduler = scheduler or CeleryScheduler()
        self.signer = signer or SignatureGenerator()

    # ==================== Entry points ====================

    def dispatch(self, webhook: Webhook, event_data: Dict[str, Any]) -> DeliveryResult:
        """
        Deliver a webhook synchronously.

        Args:
            webhook: Webhook definition
            event_data: Event data produced by the trigger

        Returns:
            DeliveryResult for the first attempt

        Raises:
            ConfigurationError: The webhook cannot be delivered as configured;
                nothing is sent or logged
        """
        self._validate(webhook)

        context = {
            **template_engine.global_data(),
            "webhook": {"id": webhook.id, "name": webhook.name},
            **event_data,
        }
        payload, headers = self._build_request(webhook, context)

        log_id = self.log_repo.insert({
            "webhook_id": webhook.id,
            "trigger_key": webhook.trigger_key,
            "trigger_event_data": template_engine.json_safe(event_data),
            "endpoint_url": webhook.endpoint_url,
            "request_headers": headers,
            "request_payload": payload,
            "status": "pending",
            "attempt_number": 1,
        })

        response, duration_ms = self._send(webhook, headers, payload)
        status = "success" if response.is_success else "failed"
        self.log_repo.update_by_id(log_id, self._response_fields(response, duration_ms, status))

        retry_scheduled = False
        if status == "failed" and webhook.retry_count > 0:
            self._schedule_retry(log_id, webhook)
            retry_scheduled = True

        logger.info(
            f"Webhook {webhook.id} ({webhook.trigger_key}) -> {webhook.endpoint_url}: "
            f"{status} code={response.code} in {duration_ms}ms"
        )
        events.webhook_dispatched.send(
            sender=self.__class__, webhook=webhook, response=response, status=status
        )

        return DeliveryResult(
            log_id=log_id,
            status=status,
            response_code=response.code or None,
            duration_ms=duration_ms,
            error=response.error,
            attempt_number=1,
            retry_scheduled=retry_scheduled,
        )

    def dispatch_async(self, webhook: Webhook, event_data: Dict[str, Any]) -> None:
        """Hand the delivery to the scheduler for immediate out-of-band execution."""
        self._validate(webhook)
        self.scheduler.run_at(
            time.time(), "dispatch_webhook", [webhook.id, template_engine.json_safe(event_data)]
        )

    def retry(self, log_id: int) -> bool:
        """
        Resend the stored payload of a delivery log row.

        Args:
            log_id: Delivery log row ID

        Returns:
            True if this attempt succeeded
        """
        log = self.log_repo.get(log_id)
        if not log:
            logger.warning(f"Retry skipped: delivery log {log_id} not found")
            return False

        webhook = self.webhook_repo.find(log.webhook_id)
        if not webhook:
            logger.warning(f"Retry skipped: webhook {log.webhook_id} of log {log_id} no longer exists")
            return False

        attempt_number = (log.attempt_number or 1) + 1
        payload = log.request_payload or ""
        headers = dict(log.request_headers or {})
        if webhook.secret_key:
            set_header(headers, SIGNATURE_HEADER, self.signer.header(payload, webhook.secret_key))
        else:
            remove_header(headers, SIGNATURE_HEADER)

        response, duration_ms = self._send(webhook, headers, payload)
        status = "success" if response.is_success else "failed"

        fields = self._response_fields(response, duration_ms, status)
        fields["attempt_number"] = attempt_number
        fields["endpoint_url"] = webhook.endpoint_url
        fields["request_headers"] = headers
        self.log_repo.update_by_id(log_id, fields)

        # attempt_number counts the first delivery, so retries performed = attempt_number - 1
        if status == "failed" and attempt_number <= webhook.retry_count:
            self._schedule_retry(log_id, webhook)
        elif status == "failed":
            logger.warning(
                f"Webhook {webhook.id} delivery {log_id} failed after {attempt_number} attempts, giving up"
            )

        logger.info(f"Retry {attempt_number} of delivery {log_id}: {status} code={response.code}")
        events.webhook_dispatched.send(
            sender=self.__class__, webhook=webhook, response=response, status=status
        )
        return status == "success"

    def test(self, webhook: Webhook, test_data: Optional[Dict[str, Any]] = None) -> WebhookTestResult:
        """
        Send a test delivery synchronously; never schedules a retry.

        Args:
            webhook: Webhook definition
            test_data: Event data to send; sample data for the trigger category if empty

        Returns:
            WebhookTestResult with a body cut to the test response limit
        """
        try:
            self._validate(webhook)
        except ConfigurationError as e:
            return WebhookTestResult(success=False, error=str(e))

        data = test_data or sample_data(webhook.trigger_key)
        context = {
            **template_engine.global_data(),
            "webhook": {"id": webhook.id, "name": webhook.name},
            "test": True,
            **data,
        }
        payload, headers = self._build_request(webhook, context)

        log_id = self.log_repo.insert({
            "webhook_id": webhook.id,
            "trigger_key": webhook.trigger_key,
            "trigger_event_data": template_engine.json_safe({**data, "_test": True}),
            "endpoint_url": webhook.endpoint_url,
            "request_headers": headers,
            "request_payload": payload,
            "status": "pending",
            "attempt_number": 1,
        })

        response, duration_ms = self._send(webhook, headers, payload)
        status = "success" if response.is_success else "failed"
        self.log_repo.update_by_id(log_id, self._response_fields(response, duration_ms, status))
        logger.info(f"Test delivery of webhook {webhook.id}: {status} code={response.code}")

        return WebhookTestResult(
            success=status == "success",
            response_code=response.code,
            response_body=truncate_body(response.body, settings.test_response_body_limit),
            duration_ms=duration_ms,
            error=response.error,
            log_id=log_id,
        )

    # ==================== Helpers ====================

    def _validate(self, webhook: Webhook) -> None:
        if not webhook.endpoint_url:
            raise ConfigurationError(f"Webhook {webhook.id} has no endpoint URL")
        if webhook.payload_format not in CONTENT_TYPES:
            raise ConfigurationError(
                f"Webhook {webhook.id} has unknown payload format {webhook.payload_format!r}"
            )
        if (webhook.http_method or "").upper() not in HTTP_METHODS:
            raise ConfigurationError(
                f"Webhook {webhook.id} has unknown HTTP method {webhook.http_method!r}"
            )

    def _build_request(self, webhook: Webhook, context: Dict[str, Any]) -> Tuple[str, Dict[str, str]]:
        """Render the payload and build headers: defaults, then custom, then signature."""
        if webhook.payload_format == "form":
            payload = template_engine.render_form(webhook.payload_template, context)
        else:
            payload = template_engine.render_json(webhook.payload_template, context)

        headers = {
            "Content-Type": CONTENT_TYPES[webhook.payload_format],
            "User-Agent": settings.user_agent,
        }
        for name, value in (webhook.custom_headers or {}).items():
            set_header(headers, name, str(value))

        if webhook.secret_key:
            set_header(headers, SIGNATURE_HEADER, self.signer.header(payload, webhook.secret_key))

        return payload, headers

    def _send(self, webhook: Webhook, headers: Dict[str, str], payload: str) -> Tuple[HttpResponse, int]:
        start_time = time.time()
        response = self.executor.send(webhook.endpoint_url, webhook.http_method, headers, payload)
        duration_ms = int((time.time() - start_time) * 1000)
        return response, duration_ms

    @staticmethod
    def _response_fields(response: HttpResponse, duration_ms: int, status: str) -> Dict[str, Any]:
        return {
            "response_code": response.code or None,
            "response_headers": response.headers,
            "response_body": truncate_body(response.body, settings.response_body_limit),
            "duration_ms": duration_ms,
            "status": status,
            "error_message": response.error,
        }

    def _schedule_retry(self, log_id: int, webhook: Webhook) -> None:
        run_at = time.time() + webhook.retry_delay_seconds
        self.scheduler.run_at(run_at, "retry_webhook", [log_id])
        logger.info(f"Retry of delivery {log_id} scheduled in {webhook.retry_delay_seconds}s")
