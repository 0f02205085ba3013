"""Representative event data for test deliveries, by trigger category."""
from datetime import datetime, timezone
from typing import Any, Dict

from hookrelay.core.config import settings


def sample_data(trigger_key: str) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    site_url = settings.site_url.rstrip("/")

    if trigger_key.startswith("post_"):
        return {
            "post": {
                "id": 1,
                "title": "Test Post Title",
                "content": "This is test post content.",
                "excerpt": "Test excerpt.",
                "status": "publish",
                "type": "post",
                "slug": "test-post",
                "url": f"{site_url}/test-post/",
                "author": {
                    "id": 1,
                    "name": "Site Admin",
                    "email": settings.admin_email,
                },
                "date": now,
                "modified": now,
                "categories": "Uncategorized",
                "tags": "test, sample",
                "featured_image": "",
            },
        }

    if trigger_key.startswith("user_"):
        return {
            "user": {
                "id": 1,
                "login": "johndoe",
                "email": "john@example.com",
                "first_name": "John",
                "last_name": "Doe",
                "display_name": "John Doe",
                "role": "subscriber",
                "registered": now,
            },
        }

    if trigger_key.startswith("comment_"):
        return {
            "comment": {
                "id": 1,
                "content": "This is a test comment.",
                "author_name": "Test Commenter",
                "author_email": "test@example.com",
                "author_url": "https://example.com",
                "date": now,
                "status": "approved",
                "post": {
                    "id": 1,
                    "title": "Test Post",
                    "type": "post",
                },
            },
        }

    if trigger_key.startswith("wc_order_"):
        return {
            "order": {
                "id": 1001,
                "number": "1001",
                "status": "processing",
                "total": "99.99",
                "subtotal": "89.99",
                "tax": "5.00",
                "shipping": "5.00",
                "discount": "0.00",
                "currency": "USD",
                "payment_method": "stripe",
                "billing": {
                    "first_name": "John",
                    "last_name": "Doe",
                    "email": "john@example.com",
                    "phone": "555-1234",
                },
                "items": [
                    {"name": "Test Product", "quantity": 1, "total": "89.99"},
                ],
                "date_created": now,
            },
        }

    return {
        "test": True,
        "message": "This is a test webhook payload.",
        "trigger": trigger_key,
    }
