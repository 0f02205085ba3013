"""
Tests for webhook, route and delivery log repositories.
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import StatementError

from hookrelay.models import DeliveryLog, utcnow
from hookrelay.repositories import DeliveryLogRepository, RestRouteRepository, WebhookRepository
from hookrelay.schemas.rest_route_schemas import RestRouteResponse
from hookrelay.schemas.webhook_schemas import (
    DeliveryLogResponse,
    WebhookCreate,
    WebhookResponse,
    WebhookUpdate,
)


def add_log(db, webhook_id=1, status="success", created_at=None, **fields):
    log = DeliveryLog(
        webhook_id=webhook_id,
        trigger_key=fields.pop("trigger_key", "post_published"),
        endpoint_url=fields.pop("endpoint_url", "https://example.com/hook"),
        status=status,
        attempt_number=1,
        created_at=created_at or utcnow(),
        **fields,
    )
    db.add(log)
    db.commit()
    return log


def test_stats_with_no_rows(db):
    stats = DeliveryLogRepository(db).stats()

    assert stats == {
        "total": 0,
        "today": 0,
        "success_today": 0,
        "failed_today": 0,
        "pending_today": 0,
        "success_rate": 100.0,
    }


def test_stats_counts_today_only(db):
    for status in ("success", "success", "success", "failed", "pending"):
        add_log(db, status=status)
    add_log(db, status="failed", created_at=utcnow() - timedelta(days=2))

    stats = DeliveryLogRepository(db).stats()

    assert stats["total"] == 6
    assert stats["today"] == 5
    assert stats["success_today"] == 3
    assert stats["failed_today"] == 1
    assert stats["pending_today"] == 1
    assert stats["success_rate"] == 75.0


def test_delete_older_than(db):
    repo = DeliveryLogRepository(db)
    add_log(db, created_at=utcnow() - timedelta(days=45))
    add_log(db, created_at=utcnow() - timedelta(days=31))
    recent = add_log(db, created_at=utcnow() - timedelta(days=2))

    assert repo.delete_older_than(30) == 2
    assert [log.id for log in repo.query()] == [recent.id]


def test_enforce_max_entries_keeps_newest(db):
    repo = DeliveryLogRepository(db)
    ids = [add_log(db).id for _ in range(5)]

    assert repo.enforce_max_entries(3) == 2
    assert sorted(log.id for log in repo.query()) == ids[2:]
    assert repo.enforce_max_entries(3) == 0
    assert repo.enforce_max_entries(0) == 0


def test_query_filters_and_search(db, make_webhook):
    webhook = make_webhook(name="CRM sync")
    add_log(db, webhook_id=webhook.id, status="failed", error_message="Connection error: refused")
    add_log(db, webhook_id=webhook.id, status="success")
    add_log(db, webhook_id=webhook.id + 1, status="success", endpoint_url="https://other.example/x",
            trigger_key="user_login")
    repo = DeliveryLogRepository(db)

    assert repo.count({"status": "failed"}) == 1
    assert repo.count({"webhook_id": webhook.id}) == 2
    assert repo.count({"trigger_key": "user_login"}) == 1
    assert repo.count({"search": "refused"}) == 1
    assert repo.count({"search": "other.example"}) == 1
    assert repo.count({"search": "CRM"}) == 2
    assert repo.count({"date_from": (utcnow() + timedelta(days=1)).isoformat()}) == 0
    assert len(repo.query(limit=2)) == 2
    assert len(repo.recent(1)) == 1


def test_stats_by_webhook(db):
    add_log(db, webhook_id=3, status="success", duration_ms=100)
    add_log(db, webhook_id=3, status="failed", duration_ms=200)
    add_log(db, webhook_id=4, status="success", duration_ms=999)

    stats = DeliveryLogRepository(db).stats_by_webhook(3)

    assert stats["total"] == 2
    assert stats["success"] == 1
    assert stats["failed"] == 1
    assert stats["avg_duration"] == 150.0
    assert stats["last_run"] is not None
    assert DeliveryLogRepository(db).stats_by_webhook(99)["avg_duration"] is None


def test_delete_helpers(db):
    repo = DeliveryLogRepository(db)
    first = add_log(db, webhook_id=1)
    add_log(db, webhook_id=2)
    add_log(db, webhook_id=2)

    assert repo.delete(first.id) is True
    assert repo.delete(first.id) is False
    assert repo.delete_by_webhook_id(2) == 2
    add_log(db)
    assert repo.delete_all() == 1


def test_deleting_webhook_removes_its_logs(db, make_webhook):
    webhook = make_webhook()
    other = make_webhook(name="Other")
    add_log(db, webhook_id=webhook.id)
    add_log(db, webhook_id=other.id)

    assert WebhookRepository(db).delete(webhook.id) is True

    remaining = DeliveryLogRepository(db).query()
    assert [log.webhook_id for log in remaining] == [other.id]
    assert WebhookRepository(db).delete(webhook.id) is False


def test_webhook_crud(db, make_webhook):
    repo = WebhookRepository(db)
    webhook = make_webhook(secret_key="s")

    updated = repo.update(webhook.id, WebhookUpdate(endpoint_url="https://example.org/new"))
    assert updated.endpoint_url == "https://example.org/new"
    assert updated.secret_key == "s"
    assert repo.update(9999, WebhookUpdate(name="x")) is None

    new_id = repo.save(WebhookCreate(
        name="Saved", trigger_key="user_login", endpoint_url="https://example.com/login",
    ))
    assert repo.find(new_id).retry_count == 3
    assert repo.save(WebhookUpdate(name="Renamed"), new_id) == new_id
    assert repo.find(new_id).name == "Renamed"


def test_find_all_criteria(db, make_webhook):
    make_webhook(name="Orders")
    make_webhook(name="Logins", trigger_key="user_login", is_active=False)
    repo = WebhookRepository(db)

    assert [w.name for w in repo.find_all({"trigger_key": "user_login"})] == ["Logins"]
    assert [w.name for w in repo.find_all({"is_active": True})] == ["Orders"]
    assert [w.name for w in repo.find_all({"search": "logi"})] == ["Logins"]
    assert repo.count() == 2
    assert [w.name for w in repo.find_active_by_trigger("user_login")] == []


def test_duplicate_and_toggle(db, make_webhook):
    repo = WebhookRepository(db)
    webhook = make_webhook(custom_headers={"X-Token": "abc"})

    copy = repo.duplicate(webhook.id)
    assert copy.name == "Order hook (Copy)"
    assert copy.is_active is False
    assert copy.custom_headers == {"X-Token": "abc"}
    assert repo.duplicate(9999) is None

    assert repo.toggle_active(copy.id).is_active is True
    assert repo.toggle_active(9999) is None


def test_route_lookup_by_path(db, make_route):
    route = make_route(route_path="/crm/leads/")

    repo = RestRouteRepository(db)
    assert route.route_path == "crm/leads"
    assert repo.find_by_path("crm/leads/").id == route.id
    assert repo.find_by_path("/crm/leads").id == route.id
    assert repo.find_by_path("crm") is None


def test_failed_log_insert_rolls_back(db):
    repo = DeliveryLogRepository(db)

    with pytest.raises(StatementError):
        repo.insert({
            "webhook_id": 1,
            "trigger_key": "post_published",
            "endpoint_url": "https://example.com/hook",
            "trigger_event_data": {"when": object()},
        })

    assert repo.insert({
        "webhook_id": 1,
        "trigger_key": "post_published",
        "endpoint_url": "https://example.com/hook",
    }) > 0
    assert repo.count() == 1


def test_response_schemas_read_orm_rows(db, make_webhook, make_route):
    webhook = make_webhook(custom_headers={"X-Token": "abc"})
    route = make_route()
    log = add_log(db, webhook_id=webhook.id, status="failed")

    assert WebhookResponse.model_validate(webhook).custom_headers == {"X-Token": "abc"}
    assert DeliveryLogResponse.model_validate(log).status == "failed"
    assert RestRouteResponse.model_validate(route).route_path == "leads"
