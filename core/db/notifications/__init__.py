"""
Notification bookkeeping re-exports.
"""
from core.db.notifications.notifications_store import (
    already_notified_today,
    mark_notified,
    log_delivery_result,
    get_delivery_log,
)

__all__ = [
    "already_notified_today",
    "mark_notified",
    "log_delivery_result",
    "get_delivery_log",
]
