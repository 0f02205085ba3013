"""
Payload templating.

Resolves ``{{ dotted.path }}`` merge tags against nested event data and
renders the result as JSON or as an ``application/x-www-form-urlencoded``
body.
"""
import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from hookrelay.core.config import settings

MERGE_TAG_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

_MISS = object()

GLOBAL_TAGS = {
    "site.name": "Site name",
    "site.url": "Site URL",
    "site.admin_email": "Admin email",
    "timestamp": "Unix timestamp",
    "timestamp_iso": "ISO 8601 timestamp",
    "webhook.name": "Webhook name",
    "webhook.id": "Webhook ID",
}

POST_TAGS = {
    "post.id": "Post ID",
    "post.title": "Post title",
    "post.content": "Post content",
    "post.excerpt": "Post excerpt",
    "post.status": "Post status",
    "post.type": "Post type",
    "post.slug": "Post slug",
    "post.url": "Post URL",
    "post.author.id": "Author ID",
    "post.author.name": "Author name",
    "post.author.email": "Author email",
    "post.date": "Publish date",
    "post.modified": "Modified date",
    "post.categories": "Categories (comma-separated)",
    "post.tags": "Tags (comma-separated)",
    "post.featured_image": "Featured image URL",
}

USER_TAGS = {
    "user.id": "User ID",
    "user.login": "Username",
    "user.email": "Email",
    "user.first_name": "First name",
    "user.last_name": "Last name",
    "user.display_name": "Display name",
    "user.role": "User role",
    "user.registered": "Registration date",
    "user.url": "User URL",
}

COMMENT_TAGS = {
    "comment.id": "Comment ID",
    "comment.content": "Comment content",
    "comment.author_name": "Author name",
    "comment.author_email": "Author email",
    "comment.author_url": "Author URL",
    "comment.date": "Comment date",
    "comment.status": "Comment status",
    "comment.post.id": "Related post ID",
    "comment.post.title": "Related post title",
}

ORDER_TAGS = {
    "order.id": "Order ID",
    "order.number": "Order number",
    "order.status": "Order status",
    "order.total": "Order total",
    "order.subtotal": "Subtotal",
    "order.tax": "Tax amount",
    "order.shipping": "Shipping cost",
    "order.discount": "Discount amount",
    "order.currency": "Currency",
    "order.payment_method": "Payment method",
    "order.billing.first_name": "Billing first name",
    "order.billing.last_name": "Billing last name",
    "order.billing.email": "Billing email",
    "order.billing.phone": "Billing phone",
    "order.items": "Order items (JSON)",
    "order.date_created": "Order date",
}

PRODUCT_TAGS = {
    "product.id": "Product ID",
    "product.name": "Product name",
    "product.sku": "SKU",
    "product.price": "Price",
    "product.stock_quantity": "Stock quantity",
    "product.stock_status": "Stock status",
    "product.url": "Product URL",
    "product.type": "Product type",
}

FORM_TAGS = {
    "form.id": "Form ID",
    "form.name": "Form name",
    "form.fields": "All fields (JSON)",
    "form.submitted_at": "Submission time",
}

REST_ROUTE_TAGS = {
    "route.id": "Route ID",
    "route.name": "Route name",
    "route.path": "Route path",
    "request.body": "Request body (JSON)",
    "request.query": "Query parameters (JSON)",
    "request.headers": "Request headers (JSON)",
}

TAGS_BY_PREFIX: List[Tuple[str, Dict[str, str]]] = [
    ("post_", POST_TAGS),
    ("user_", USER_TAGS),
    ("comment_", COMMENT_TAGS),
    ("wc_order_", ORDER_TAGS),
    ("wc_product_", PRODUCT_TAGS),
    ("form_", FORM_TAGS),
    ("rest_route_", REST_ROUTE_TAGS),
]


def global_data() -> Dict[str, Any]:
    """Site block plus the current time; computed fresh on every call."""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return {
        "site": {
            "name": settings.site_name,
            "url": settings.site_url,
            "admin_email": settings.admin_email,
        },
        "timestamp": int(now.timestamp()),
        "timestamp_iso": now.isoformat(),
    }


def lookup(path: str, data: Any) -> Any:
    """
    Resolve a dotted path by sequential key descent.

    Numeric segments index into lists. Returns the module-level miss
    sentinel when any segment is absent or the final value is None.
    """
    value = data
    for segment in path.split("."):
        if isinstance(value, dict) and segment in value:
            value = value[segment]
        elif isinstance(value, (list, tuple)) and segment.isdigit() and int(segment) < len(value):
            value = value[int(segment)]
        else:
            return _MISS
    if value is None:
        return _MISS
    return value


def is_miss(value: Any) -> bool:
    return value is _MISS


def to_text(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def replace_merge_tags(text: str, data: Any) -> str:
    """Replace every resolvable merge tag in ``text``; unresolved tags are left verbatim."""

    def _substitute(match: "re.Match[str]") -> str:
        value = lookup(match.group(1).strip(), data)
        if value is _MISS:
            return match.group(0)
        return to_text(value)

    return MERGE_TAG_PATTERN.sub(_substitute, text)


def process(template: Any, data: Any) -> Any:
    """Recursively render a template structure. Non-string leaves pass through."""
    if isinstance(template, dict):
        return {key: process(value, data) for key, value in template.items()}
    if isinstance(template, (list, tuple)):
        return [process(value, data) for value in template]
    if isinstance(template, str):
        return replace_merge_tags(template, data)
    return template


def render(template: Any, data: Dict[str, Any]) -> Any:
    """
    Render a payload template against event data.

    An empty or absent template yields the default payload:
    ``{**global_data(), "event": data}``.
    """
    if not template:
        return {**global_data(), "event": data}
    return process(template, data)


def to_json(payload: Any) -> str:
    return json.dumps(payload, indent=4, default=str)


def json_safe(value: Any) -> Any:
    """Copy of ``value`` with anything JSON cannot encode (dates, decimals) turned into strings."""
    return json.loads(json.dumps(value, default=str))


def render_json(template: Any, data: Dict[str, Any]) -> str:
    return to_json(render(template, data))


def flatten(value: Any, prefix: str = "") -> List[Tuple[str, Any]]:
    """
    Flatten nested structures into ``outer[inner][inner2]`` keyed pairs.

    List items are keyed by index. None leaves are dropped.
    """
    if isinstance(value, dict):
        items = value.items()
    elif isinstance(value, (list, tuple)):
        items = enumerate(value)
    else:
        return [(prefix, value)] if prefix else []

    pairs: List[Tuple[str, Any]] = []
    for key, child in items:
        new_key = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(child, (dict, list, tuple)):
            pairs.extend(flatten(child, new_key))
        elif child is not None:
            pairs.append((new_key, child))
    return pairs


def to_form(payload: Any) -> str:
    pairs = []
    for key, value in flatten(payload):
        if isinstance(value, bool):
            value = 1 if value else 0
        pairs.append((key, value))
    return urlencode(pairs)


def render_form(template: Any, data: Dict[str, Any]) -> str:
    """Render then URL-form-encode (spaces as ``+``)."""
    return to_form(render(template, data))


def parse_template(text: Optional[str]) -> Dict[str, Any]:
    """Decode a stored JSON template; anything but a JSON object yields ``{}``."""
    if not text:
        return {}
    try:
        decoded = json.loads(text)
    except (TypeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def available_tags(trigger_key: str) -> Dict[str, str]:
    """Merge tags documented for a trigger key, global tags first."""
    tags = dict(GLOBAL_TAGS)
    for prefix, prefix_tags in TAGS_BY_PREFIX:
        if trigger_key.startswith(prefix):
            tags.update(prefix_tags)
            break
    return tags
