"""
Trigger catalogue and matching.

A trigger is plain data: the source signal it listens to, a ``prepare``
function that shapes the signal's keyword arguments into event data (or
returns None to skip), and a ``matches`` predicate over the event data
and a webhook's ``trigger_config``.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from celery.utils.dispatch import Signal
from pydantic import BaseModel, ConfigDict, Field

from hookrelay.services import events

logger = logging.getLogger(__name__)

EventData = Dict[str, Any]
TriggerHandler = Callable[[str, EventData], Any]


def match_all(event_data: EventData, config: Dict[str, Any]) -> bool:
    return True


class TriggerDescriptor(BaseModel):
    """Everything the pipeline needs to know about one trigger."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: str
    name: str
    description: str = ""
    category: str
    source_event: Optional[Signal] = None
    prepare: Callable[..., Optional[EventData]]
    matches: Callable[[EventData, Dict[str, Any]], bool] = match_all
    config_fields: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    available_data: List[str] = Field(default_factory=list)


# ==================== Matching helpers ====================

def allow_list(config: Optional[Dict[str, Any]], key: str) -> List[str]:
    """Config allow-list as a list; accepts a list or a comma-joined string."""
    value = (config or {}).get(key)
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(item).strip() for item in value if str(item).strip()]


def match_post_types(event_data: EventData, config: Dict[str, Any]) -> bool:
    post_types = allow_list(config, "post_types")
    if not post_types:
        return True
    return (event_data.get("post") or {}).get("type", "") in post_types


def match_roles(event_data: EventData, config: Dict[str, Any]) -> bool:
    roles = allow_list(config, "roles")
    if not roles:
        return True
    user_role = (event_data.get("user") or {}).get("role") or ""
    user_roles = {role.strip() for role in str(user_role).split(",")}
    return bool(user_roles.intersection(roles))


def match_comment(event_data: EventData, config: Dict[str, Any]) -> bool:
    comment = event_data.get("comment") or {}

    post_types = allow_list(config, "post_types")
    if post_types and (comment.get("post") or {}).get("type", "") not in post_types:
        return False

    statuses = allow_list(config, "statuses")
    if statuses and comment.get("status", "") not in statuses:
        return False

    return True


def match_routes(event_data: EventData, config: Dict[str, Any]) -> bool:
    routes = [route.strip("/") for route in allow_list(config, "routes")]
    if not routes:
        return True
    return (event_data.get("route") or {}).get("path", "") in routes


# ==================== Data shaping ====================

def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _user_data(user: Dict[str, Any]) -> Dict[str, Any]:
    user = dict(user)
    if "role" not in user and isinstance(user.get("roles"), list):
        user["role"] = ", ".join(user["roles"])
    return user


def prepare_post_published(new_status=None, old_status=None, post=None, **kwargs):
    # Only the transition into "publish" counts
    if not post or new_status != "publish" or old_status == "publish":
        return None
    if post.get("type") == "revision":
        return None
    return {"post": dict(post)}


def prepare_post_updated(post=None, post_before=None, **kwargs):
    if not post or post.get("status") != "publish":
        return None
    # The first publish is post_published, not an update
    if not post_before or post_before.get("status") != "publish":
        return None
    data = {"post": dict(post)}
    data["post"]["previous"] = {
        "title": post_before.get("title"),
        "content": post_before.get("content"),
        "excerpt": post_before.get("excerpt"),
        "status": post_before.get("status"),
    }
    return data


def prepare_post_trashed(post=None, **kwargs):
    if not post or post.get("type") == "revision":
        return None
    return {"post": dict(post)}


def prepare_post_deleted(post=None, **kwargs):
    if not post or post.get("type") == "revision" or post.get("status") == "auto-draft":
        return None
    return {"post": dict(post)}


def prepare_user_registered(user=None, **kwargs):
    if not user:
        return None
    return {"user": _user_data(user)}


def prepare_user_updated(user=None, previous=None, **kwargs):
    if not user:
        return None
    data = {"user": _user_data(user)}
    if previous:
        data["user"]["previous"] = _user_data(previous)
    return data


def prepare_user_deleted(user=None, reassign_to=None, **kwargs):
    if not user:
        return None
    data = {"user": _user_data(user)}
    data["user"]["reassign_to"] = reassign_to
    return data


def prepare_user_login(user=None, login=None, **kwargs):
    if not user:
        return None
    return {
        "user": _user_data(user),
        "login": {"timestamp": _now(), **(login or {})},
    }


def prepare_user_logout(user=None, **kwargs):
    if not user:
        return None
    return {"user": _user_data(user), "logout": {"timestamp": _now()}}


def prepare_comment_created(comment=None, **kwargs):
    if not comment or comment.get("type") in ("pingback", "trackback"):
        return None
    return {"comment": dict(comment)}


def prepare_comment_reply(comment=None, parent_comment=None, **kwargs):
    if not comment or not comment.get("parent"):
        return None
    if comment.get("type") in ("pingback", "trackback"):
        return None
    data = {"comment": dict(comment)}
    if parent_comment:
        data["comment"]["parent_comment"] = dict(parent_comment)
    return data


def _status_transition(target: str) -> Callable[..., Optional[EventData]]:
    def prepare(new_status=None, old_status=None, comment=None, **kwargs):
        if not comment or new_status != target or old_status == target:
            return None
        data = {"comment": dict(comment)}
        data["comment"]["previous_status"] = old_status
        return data
    return prepare


def prepare_rest_route_received(route=None, request=None, **kwargs):
    if not route:
        return None
    return {
        "route": {
            "id": route.get("id"),
            "name": route.get("name"),
            "path": route.get("path"),
        },
        "request": request or {},
    }


# ==================== Registry ====================

class TriggerRegistry:
    """Trigger descriptors keyed by trigger key."""

    def __init__(self):
        self._triggers: Dict[str, TriggerDescriptor] = {}

    def register(self, trigger: TriggerDescriptor) -> None:
        self._triggers[trigger.key] = trigger

    def unregister(self, key: str) -> None:
        self._triggers.pop(key, None)

    def get(self, key: str) -> Optional[TriggerDescriptor]:
        return self._triggers.get(key)

    def has(self, key: str) -> bool:
        return key in self._triggers

    def all(self) -> Dict[str, TriggerDescriptor]:
        return dict(self._triggers)

    def by_category(self, category: str) -> Dict[str, TriggerDescriptor]:
        return {key: t for key, t in self._triggers.items() if t.category == category}

    def categories(self) -> Dict[str, List[TriggerDescriptor]]:
        """Triggers grouped by category, categories sorted alphabetically."""
        grouped: Dict[str, List[TriggerDescriptor]] = {}
        for trigger in self._triggers.values():
            grouped.setdefault(trigger.category, []).append(trigger)
        return dict(sorted(grouped.items()))

    def for_select(self) -> Dict[str, Dict[str, str]]:
        return {
            category: {trigger.key: trigger.name for trigger in triggers}
            for category, triggers in self.categories().items()
        }

    def trigger_info(self) -> Dict[str, Dict[str, Any]]:
        return {
            key: {
                "key": trigger.key,
                "name": trigger.name,
                "description": trigger.description,
                "category": trigger.category,
                "config": trigger.config_fields,
                "data": trigger.available_data,
            }
            for key, trigger in self._triggers.items()
        }

    def count(self) -> int:
        return len(self._triggers)

    def category_count(self) -> int:
        return len(self.categories())

    def matches(self, key: str, event_data: EventData, config: Optional[Dict[str, Any]]) -> bool:
        """Run the trigger's predicate; unknown keys match everything."""
        trigger = self.get(key)
        if trigger is None:
            return True
        return trigger.matches(event_data, config or {})

    def bind(self, handler: TriggerHandler) -> None:
        """
        Connect every trigger to its source signal.

        Each firing is shaped by the trigger's ``prepare`` and, unless it
        returns None, passed to ``handler(key, event_data)``.
        """
        for trigger in self._triggers.values():
            if trigger.source_event is None:
                continue
            trigger.source_event.connect(
                self._receiver(trigger, handler),
                weak=False,
                dispatch_uid=f"hookrelay.trigger.{trigger.key}",
            )
            logger.debug(f"Bound trigger {trigger.key} to {trigger.source_event.name}")

    def unbind(self) -> None:
        for trigger in self._triggers.values():
            if trigger.source_event is not None:
                trigger.source_event.disconnect(dispatch_uid=f"hookrelay.trigger.{trigger.key}")

    @staticmethod
    def _receiver(trigger: TriggerDescriptor, handler: TriggerHandler):
        def receiver(sender=None, signal=None, **kwargs):
            event_data = trigger.prepare(**kwargs)
            if event_data is None:
                logger.debug(f"Trigger {trigger.key} skipped event from {sender}")
                return None
            return handler(trigger.key, event_data)
        return receiver


# ==================== Built-in catalogue ====================

POST_TYPES_FIELD = {
    "post_types": {
        "type": "multiselect",
        "label": "Post Types",
        "description": "Only fire for these post types. Leave empty for all.",
    },
}

ROLES_FIELD = {
    "roles": {
        "type": "multiselect",
        "label": "User Roles",
        "description": "Only fire for users with these roles. Leave empty for all.",
    },
}

COMMENT_FIELDS = {
    **POST_TYPES_FIELD,
    "statuses": {
        "type": "multiselect",
        "label": "Comment Status",
        "description": "Only fire for comments with these statuses. Leave empty for all.",
        "options": {
            "approved": "Approved",
            "pending": "Pending",
            "spam": "Spam",
            "trash": "Trash",
        },
    },
}

ROUTES_FIELD = {
    "routes": {
        "type": "multiselect",
        "label": "Specific Routes",
        "description": "Only fire for these route paths. Leave empty for all.",
    },
}


def _post_trigger(key, name, description, source_event, prepare) -> TriggerDescriptor:
    return TriggerDescriptor(
        key=key, name=name, description=description, category="Posts",
        source_event=source_event, prepare=prepare, matches=match_post_types,
        config_fields=POST_TYPES_FIELD, available_data=["post"],
    )


def _user_trigger(key, name, description, source_event, prepare, data=None) -> TriggerDescriptor:
    return TriggerDescriptor(
        key=key, name=name, description=description, category="Users",
        source_event=source_event, prepare=prepare, matches=match_roles,
        config_fields=ROLES_FIELD, available_data=data or ["user"],
    )


def _comment_trigger(key, name, description, source_event, prepare) -> TriggerDescriptor:
    return TriggerDescriptor(
        key=key, name=name, description=description, category="Comments",
        source_event=source_event, prepare=prepare, matches=match_comment,
        config_fields=COMMENT_FIELDS, available_data=["comment"],
    )


def default_triggers() -> List[TriggerDescriptor]:
    return [
        _post_trigger("post_published", "Post Published", "Fires when a post is published",
                      events.post_status_changed, prepare_post_published),
        _post_trigger("post_updated", "Post Updated", "Fires when a published post is updated",
                      events.post_updated, prepare_post_updated),
        _post_trigger("post_trashed", "Post Trashed", "Fires when a post is moved to trash",
                      events.post_trashed, prepare_post_trashed),
        _post_trigger("post_deleted", "Post Deleted", "Fires before a post is deleted",
                      events.post_deleted, prepare_post_deleted),
        _user_trigger("user_registered", "User Registered", "Fires when a new user is registered",
                      events.user_registered, prepare_user_registered),
        _user_trigger("user_updated", "User Updated", "Fires when a user profile is updated",
                      events.user_updated, prepare_user_updated),
        _user_trigger("user_deleted", "User Deleted", "Fires when a user is deleted",
                      events.user_deleted, prepare_user_deleted),
        _user_trigger("user_login", "User Login", "Fires when a user logs in",
                      events.user_logged_in, prepare_user_login, data=["user", "login"]),
        _user_trigger("user_logout", "User Logout", "Fires when a user logs out",
                      events.user_logged_out, prepare_user_logout, data=["user", "logout"]),
        _comment_trigger("comment_created", "Comment Created", "Fires when a new comment is created",
                         events.comment_created, prepare_comment_created),
        _comment_trigger("comment_approved", "Comment Approved", "Fires when a comment is approved",
                         events.comment_status_changed, _status_transition("approved")),
        _comment_trigger("comment_spam", "Comment Marked as Spam", "Fires when a comment is marked as spam",
                         events.comment_status_changed, _status_transition("spam")),
        _comment_trigger("comment_reply", "Comment Reply", "Fires when a reply is posted to a comment",
                         events.comment_created, prepare_comment_reply),
        TriggerDescriptor(
            key="rest_route_received",
            name="REST Route Received",
            description="Fires when a custom incoming REST route is hit",
            category="REST Routes",
            source_event=events.rest_route_received,
            prepare=prepare_rest_route_received,
            matches=match_routes,
            config_fields=ROUTES_FIELD,
            available_data=["route", "request"],
        ),
    ]


def build_default_registry() -> TriggerRegistry:
    registry = TriggerRegistry()
    for trigger in default_triggers():
        registry.register(trigger)
    return registry
