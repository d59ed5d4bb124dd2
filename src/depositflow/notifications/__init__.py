"""Lifecycle event notifications."""

from depositflow.notifications.dispatcher import (
    LoggingDispatcher,
    NotificationDispatcher,
    WebhookDispatcher,
    dispatch_events,
    get_dispatcher,
    set_dispatcher,
)

__all__ = [
    "LoggingDispatcher",
    "NotificationDispatcher",
    "WebhookDispatcher",
    "dispatch_events",
    "get_dispatcher",
    "set_dispatcher",
]
