"""
Signals exchanged between the application and the delivery pipeline.

Source events are sent by the application when something happens (a post
is published, a user logs in, ...). Triggers bind to them and turn their
keyword arguments into event data. ``webhook_dispatched`` is sent after
every outbound delivery. Receivers that raise are logged by the signal
and never affect the sender.
"""
from typing import Dict

from celery.utils.dispatch import Signal

# ==================== Source events ====================

post_status_changed = Signal(name="post_status_changed")
post_updated = Signal(name="post_updated")
post_trashed = Signal(name="post_trashed")
post_deleted = Signal(name="post_deleted")

user_registered = Signal(name="user_registered")
user_updated = Signal(name="user_updated")
user_deleted = Signal(name="user_deleted")
user_logged_in = Signal(name="user_logged_in")
user_logged_out = Signal(name="user_logged_out")

comment_created = Signal(name="comment_created")
comment_status_changed = Signal(name="comment_status_changed")

rest_route_received = Signal(name="rest_route_received")

# ==================== Pipeline notifications ====================

webhook_dispatched = Signal(name="webhook_dispatched")

# ==================== Internal events ====================

_internal_events: Dict[str, Signal] = {}


def internal_event(name: str) -> Signal:
    """Named signal used by ``event`` actions; created on first use."""
    if name not in _internal_events:
        _internal_events[name] = Signal(name=name)
    return _internal_events[name]
