"""
Database package: connection helper, schema and stores.
"""
from core.db.base import ConfigError, get_conn, resolve_database_url
from core.db.schema import init_db

__all__ = [
    "ConfigError",
    "get_conn",
    "resolve_database_url",
    "init_db",
]
