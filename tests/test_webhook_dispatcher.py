"""
Tests for webhook delivery, logging and retries.
"""
import json
from types import SimpleNamespace
from urllib.parse import parse_qs

import pytest

import hookrelay.services.webhook_dispatcher as webhook_dispatcher_module
from hookrelay.core.exceptions import ConfigurationError
from hookrelay.repositories import DeliveryLogRepository
from hookrelay.schemas.delivery_schemas import HttpResponse
from hookrelay.services import events
from hookrelay.services.signature import SIGNATURE_HEADER, SignatureGenerator
from hookrelay.services.webhook_dispatcher import (
    TRUNCATION_MARKER,
    WebhookDispatcher,
    set_header,
    truncate_body,
)

EVENT = {"post": {"id": 7, "title": "Hello world", "author": {"name": "Ann"}}}


class Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock(monkeypatch):
    clock = Clock()
    monkeypatch.setattr(webhook_dispatcher_module, "time", SimpleNamespace(time=clock))
    return clock


@pytest.fixture
def dispatcher(db, executor, scheduler):
    return WebhookDispatcher(db, executor=executor, scheduler=scheduler)


def test_successful_delivery_is_logged(db, dispatcher, executor, scheduler, make_webhook):
    webhook = make_webhook(payload_template={"title": "{{post.title}}", "by": "{{post.author.name}}"})

    result = dispatcher.dispatch(webhook, EVENT)

    assert result.success
    assert result.status == "success"
    assert result.response_code == 200
    assert result.attempt_number == 1
    assert result.retry_scheduled is False

    request = executor.requests[0]
    assert request["url"] == "https://example.com/hook"
    assert request["method"] == "POST"
    assert json.loads(request["body"]) == {"title": "Hello world", "by": "Ann"}
    assert request["headers"]["Content-Type"] == "application/json"
    assert request["headers"]["User-Agent"].startswith("hookrelay/")
    assert SIGNATURE_HEADER not in request["headers"]

    log = DeliveryLogRepository(db).get(result.log_id)
    assert log.status == "success"
    assert log.response_code == 200
    assert log.response_body == "ok"
    assert log.attempt_number == 1
    assert log.trigger_key == "post_published"
    assert log.trigger_event_data == EVENT
    assert log.request_payload == request["body"]
    assert log.request_headers == request["headers"]
    assert scheduler.calls == []


def test_default_payload_wraps_context(dispatcher, executor, make_webhook):
    webhook = make_webhook()

    dispatcher.dispatch(webhook, EVENT)

    payload = json.loads(executor.requests[0]["body"])
    assert {"site", "timestamp", "timestamp_iso", "event"} <= set(payload)
    assert payload["event"]["post"] == EVENT["post"]
    assert payload["event"]["webhook"] == {"id": webhook.id, "name": "Order hook"}


def test_webhook_tags_are_available(dispatcher, executor, make_webhook):
    webhook = make_webhook(payload_template={"hook": "{{webhook.name}}", "site": "{{site.name}}"})

    dispatcher.dispatch(webhook, EVENT)

    payload = json.loads(executor.requests[0]["body"])
    assert payload["hook"] == "Order hook"
    assert "{{" not in payload["site"]


def test_custom_headers_override_defaults(dispatcher, executor, make_webhook):
    webhook = make_webhook(custom_headers={"content-type": "application/vnd.api+json", "X-Token": "abc"})

    dispatcher.dispatch(webhook, EVENT)

    headers = executor.requests[0]["headers"]
    assert headers["content-type"] == "application/vnd.api+json"
    assert "Content-Type" not in headers
    assert headers["X-Token"] == "abc"


def test_signature_verifies_against_sent_body(db, executor, scheduler, make_webhook):
    signer = SignatureGenerator()
    webhook = make_webhook(secret_key="s3cret")

    WebhookDispatcher(db, executor=executor, scheduler=scheduler, signer=signer).dispatch(webhook, EVENT)

    request = executor.requests[0]
    assert signer.verify(request["body"], "s3cret", request["headers"][SIGNATURE_HEADER])


def test_form_payload(dispatcher, executor, make_webhook):
    webhook = make_webhook(
        payload_format="form",
        payload_template={"post": {"title": "{{post.title}}"}, "published": True},
    )

    dispatcher.dispatch(webhook, EVENT)

    request = executor.requests[0]
    assert request["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
    assert parse_qs(request["body"]) == {"post[title]": ["Hello world"], "published": ["1"]}


def test_failure_schedules_retry_with_log_id(db, clock, executor, scheduler, make_webhook):
    executor.script(HttpResponse(code=503, body="unavailable"))
    webhook = make_webhook(retry_count=3, retry_delay_seconds=60)

    result = WebhookDispatcher(db, executor=executor, scheduler=scheduler).dispatch(webhook, EVENT)

    assert result.status == "failed"
    assert result.response_code == 503
    assert result.retry_scheduled is True
    assert scheduler.calls == [(clock.now + 60, "retry_webhook", [result.log_id])]
    assert DeliveryLogRepository(db).get(result.log_id).status == "failed"


def test_failure_without_retries_is_final(dispatcher, executor, scheduler, make_webhook):
    executor.script(HttpResponse(code=500))
    webhook = make_webhook(retry_count=0)

    result = dispatcher.dispatch(webhook, EVENT)

    assert result.status == "failed"
    assert result.retry_scheduled is False
    assert scheduler.calls == []


def test_retries_until_exhausted(db, clock, executor, scheduler, make_webhook):
    """Test: retry_count=2 against an always-500 endpoint makes three attempts then stops"""
    executor.script(HttpResponse(code=500, body="boom"))
    webhook = make_webhook(retry_count=2, retry_delay_seconds=10, secret_key="s3cret")
    signer = SignatureGenerator(clock=clock)
    dispatcher = WebhookDispatcher(db, executor=executor, scheduler=scheduler, signer=signer)
    t0 = clock.now

    result = dispatcher.dispatch(webhook, EVENT)
    assert scheduler.calls == [(t0 + 10, "retry_webhook", [result.log_id])]

    clock.now = t0 + 10
    assert dispatcher.retry(result.log_id) is False
    assert scheduler.calls[-1] == (t0 + 20, "retry_webhook", [result.log_id])

    clock.now = t0 + 20
    assert dispatcher.retry(result.log_id) is False
    assert len(scheduler.calls) == 2

    log = DeliveryLogRepository(db).get(result.log_id)
    assert log.attempt_number == 3
    assert log.status == "failed"
    assert log.response_code == 500
    assert len(executor.requests) == 3

    bodies = {request["body"] for request in executor.requests}
    assert len(bodies) == 1
    signatures = [request["headers"][SIGNATURE_HEADER] for request in executor.requests]
    assert signatures[0].startswith(f"t={int(t0)},")
    assert signatures[2].startswith(f"t={int(t0 + 20)},")
    assert signer.verify(executor.requests[2]["body"], "s3cret", signatures[2])


def test_retry_success_stops_rescheduling(db, clock, executor, scheduler, make_webhook):
    executor.script(HttpResponse(code=500), HttpResponse(code=200, body="fine"))
    webhook = make_webhook(retry_count=5)
    dispatcher = WebhookDispatcher(db, executor=executor, scheduler=scheduler)

    result = dispatcher.dispatch(webhook, EVENT)

    assert dispatcher.retry(result.log_id) is True
    assert len(scheduler.calls) == 1

    log = DeliveryLogRepository(db).get(result.log_id)
    assert log.status == "success"
    assert log.attempt_number == 2
    assert log.response_body == "fine"


def test_retry_of_missing_rows(db, dispatcher, executor, make_webhook):
    assert dispatcher.retry(999) is False

    webhook = make_webhook()
    log_id = DeliveryLogRepository(db).insert({
        "webhook_id": webhook.id + 100,
        "trigger_key": "post_published",
        "endpoint_url": "https://example.com/hook",
        "request_payload": "{}",
        "status": "failed",
        "attempt_number": 1,
    })

    assert dispatcher.retry(log_id) is False
    assert executor.requests == []


def test_transport_error_stores_null_code(db, dispatcher, executor, make_webhook):
    executor.script(HttpResponse(code=0, error="Connection error: refused"))
    webhook = make_webhook()

    result = dispatcher.dispatch(webhook, EVENT)

    assert result.status == "failed"
    assert result.response_code is None
    assert result.error == "Connection error: refused"
    log = DeliveryLogRepository(db).get(result.log_id)
    assert log.response_code is None
    assert log.error_message == "Connection error: refused"


def test_long_response_body_is_truncated(db, dispatcher, executor, make_webhook):
    executor.script(HttpResponse(code=200, body="x" * 70000))
    webhook = make_webhook()

    result = dispatcher.dispatch(webhook, EVENT)

    body = DeliveryLogRepository(db).get(result.log_id).response_body
    assert len(body) == 65535
    assert body.endswith(TRUNCATION_MARKER)


@pytest.mark.parametrize("overrides", [
    {"endpoint_url": ""},
    {"payload_format": "xml"},
    {"http_method": "TRACE"},
])
def test_misconfigured_webhook_is_not_sent_or_logged(db, dispatcher, executor, make_webhook, overrides):
    webhook = make_webhook()
    for key, value in overrides.items():
        setattr(webhook, key, value)

    with pytest.raises(ConfigurationError):
        dispatcher.dispatch(webhook, EVENT)

    assert executor.requests == []
    assert DeliveryLogRepository(db).count() == 0


def test_dispatch_async_enqueues(clock, dispatcher, executor, scheduler, make_webhook):
    webhook = make_webhook()

    dispatcher.dispatch_async(webhook, EVENT)

    assert scheduler.calls == [(clock.now, "dispatch_webhook", [webhook.id, EVENT])]
    assert executor.requests == []


def test_test_delivery_uses_sample_data_and_never_retries(db, dispatcher, executor, scheduler, make_webhook):
    executor.script(HttpResponse(code=500, body="e" * 5000))
    webhook = make_webhook(retry_count=3, payload_template={"title": "{{post.title}}", "test": "{{test}}"})

    result = dispatcher.test(webhook)

    assert result.success is False
    assert result.response_code == 500
    assert len(result.response_body) == 1000
    assert scheduler.calls == []
    assert json.loads(executor.requests[0]["body"]) == {"title": "Test Post Title", "test": "true"}

    log = DeliveryLogRepository(db).get(result.log_id)
    assert log.trigger_event_data["_test"] is True
    assert log.status == "failed"


def test_test_delivery_with_explicit_data(dispatcher, executor, make_webhook):
    webhook = make_webhook(payload_template={"msg": "{{message}}"})

    result = dispatcher.test(webhook, {"message": "hi"})

    assert result.success is True
    assert json.loads(executor.requests[0]["body"]) == {"msg": "hi"}


def test_test_delivery_reports_configuration_errors(dispatcher, executor, make_webhook):
    webhook = make_webhook()
    webhook.payload_format = "xml"

    result = dispatcher.test(webhook)

    assert result.success is False
    assert "payload format" in result.error
    assert executor.requests == []


def test_dispatched_signal(dispatcher, executor, make_webhook):
    received = []

    def receiver(sender=None, webhook=None, response=None, status=None, **kwargs):
        received.append((webhook.id, response.code, status))

    events.webhook_dispatched.connect(receiver, weak=False, dispatch_uid="test-dispatched")
    try:
        webhook = make_webhook()
        dispatcher.dispatch(webhook, EVENT)
    finally:
        events.webhook_dispatched.disconnect(dispatch_uid="test-dispatched")

    assert received == [(webhook.id, 200, "success")]


def test_truncate_body():
    assert truncate_body(None, 10) is None
    assert truncate_body("short", 10) == "short"
    assert truncate_body("x" * 10, 10) == "x" * 10
    assert truncate_body("x" * 100, 20) == "xxxxx" + TRUNCATION_MARKER


def test_set_header_is_case_insensitive():
    headers = {"Content-Type": "application/json", "X-A": "1"}

    set_header(headers, "CONTENT-TYPE", "text/plain")

    assert headers == {"X-A": "1", "CONTENT-TYPE": "text/plain"}


def test_retry_records_current_url_and_drops_stale_signature(db, executor, scheduler, make_webhook):
    executor.script(HttpResponse(code=500))
    webhook = make_webhook(retry_count=2, secret_key="s3cret")
    dispatcher = WebhookDispatcher(db, executor=executor, scheduler=scheduler)
    result = dispatcher.dispatch(webhook, EVENT)
    assert SIGNATURE_HEADER in executor.requests[0]["headers"]

    webhook.endpoint_url = "https://example.org/moved"
    webhook.secret_key = None
    db.commit()
    dispatcher.retry(result.log_id)

    request = executor.requests[1]
    assert request["url"] == "https://example.org/moved"
    assert SIGNATURE_HEADER not in request["headers"]

    log = DeliveryLogRepository(db).get(result.log_id)
    assert log.endpoint_url == "https://example.org/moved"
    assert SIGNATURE_HEADER not in log.request_headers
