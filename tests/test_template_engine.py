"""
Tests for payload templating: merge tags, default payload, JSON and form rendering.
"""
import json
import time
from urllib.parse import parse_qs

from hookrelay.services import template_engine
from hookrelay.services.template_engine import (
    GLOBAL_TAGS,
    available_tags,
    parse_template,
    render,
    render_form,
    render_json,
    replace_merge_tags,
)


def test_scalar_merge_tag_renders_to_json():
    """Test: {"name":"{{user.name}}"} with user.name=Ann renders {"name":"Ann"}"""
    payload = render_json({"name": "{{user.name}}"}, {"user": {"name": "Ann"}})

    assert json.loads(payload) == {"name": "Ann"}


def test_unresolved_placeholder_is_left_verbatim():
    text = "Hello {{ user.missing }} from {{site}}"

    assert replace_merge_tags(text, {"user": {"name": "Ann"}}) == text


def test_whitespace_around_path_is_trimmed():
    assert replace_merge_tags("{{  user.name  }}", {"user": {"name": "Ann"}}) == "Ann"


def test_null_value_counts_as_miss():
    assert replace_merge_tags("{{user.email}}", {"user": {"email": None}}) == "{{user.email}}"


def test_composite_hit_becomes_compact_json():
    data = {"order": {"items": [{"sku": "A1", "qty": 2}]}}

    assert replace_merge_tags("{{order.items}}", data) == '[{"sku":"A1","qty":2}]'


def test_scalar_string_forms():
    data = {"flag": True, "off": False, "count": 3, "price": 9.5}

    assert replace_merge_tags("{{flag}}/{{off}}/{{count}}/{{price}}", data) == "true/false/3/9.5"


def test_numeric_segment_indexes_into_lists():
    data = {"order": {"items": [{"sku": "A1"}, {"sku": "B2"}]}}

    assert replace_merge_tags("{{order.items.1.sku}}", data) == "B2"
    assert replace_merge_tags("{{order.items.5.sku}}", data) == "{{order.items.5.sku}}"


def test_multiple_tags_in_one_string():
    data = {"user": {"first": "Ann", "last": "Lee"}}

    assert replace_merge_tags("{{user.first}} {{user.last}}!", data) == "Ann Lee!"


def test_non_string_leaves_pass_through():
    template = {"count": 5, "active": True, "nothing": None, "nested": [1, "{{x}}"]}

    assert render(template, {"x": "y"}) == {
        "count": 5,
        "active": True,
        "nothing": None,
        "nested": [1, "y"],
    }


def test_empty_template_yields_default_payload():
    event = {"post": {"id": 7, "title": "Hello"}}

    for template in ({}, None, [], ""):
        payload = render(template, event)
        assert {"site", "timestamp", "timestamp_iso", "event"} <= set(payload)
        assert payload["event"] == event


def test_global_data_is_computed_per_call():
    data = template_engine.global_data()

    assert abs(data["timestamp"] - time.time()) < 5
    assert data["timestamp_iso"].endswith("+00:00")
    assert set(data["site"]) == {"name", "url", "admin_email"}


def test_render_json_is_pretty_and_keeps_slashes():
    payload = render_json({"url": "{{link}}"}, {"link": "https://example.com/a/b"})

    assert "https://example.com/a/b" in payload
    assert "\\/" not in payload
    assert "\n    " in payload


def test_form_encoding_flattens_nested_keys():
    """Test: {user:{name:"A B"}} decodes to key user[name] with value "A B\""""
    body = render_form({"user": {"name": "A B"}}, {})

    assert "+" in body
    assert parse_qs(body) == {"user[name]": ["A B"]}


def test_form_encoding_lists_booleans_and_nulls():
    body = render_form({"tags": ["a", "b"], "ok": True, "no": False, "gone": None}, {})

    assert parse_qs(body) == {
        "tags[0]": ["a"],
        "tags[1]": ["b"],
        "ok": ["1"],
        "no": ["0"],
    }


def test_form_encoding_resolves_tags():
    body = render_form({"customer": "{{user.name}}"}, {"user": {"name": "Ann Lee"}})

    assert body == "customer=Ann+Lee"


def test_parse_template():
    assert parse_template('{"name": "{{user.name}}"}') == {"name": "{{user.name}}"}
    assert parse_template("") == {}
    assert parse_template("not json") == {}
    assert parse_template("[1, 2]") == {}


def test_available_tags_by_prefix():
    post_tags = available_tags("post_published")
    assert "post.title" in post_tags
    assert "site.name" in post_tags

    assert "user.email" in available_tags("user_login")
    assert "comment.post.title" in available_tags("comment_reply")
    assert "order.total" in available_tags("wc_order_created")
    assert "route.path" in available_tags("rest_route_received")
    assert available_tags("custom_event") == GLOBAL_TAGS
