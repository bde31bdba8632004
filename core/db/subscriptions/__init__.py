"""
Subscription query re-exports.
"""
from core.db.subscriptions.subs_store import (
    fetch_by_correos,
    fetch_expiring_rows,
)

__all__ = [
    "fetch_by_correos",
    "fetch_expiring_rows",
]
