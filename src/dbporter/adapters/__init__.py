"""Database adapters package.

Provides the ``DatabaseClient`` and ``SqlImporter`` Protocols plus their
MySQL/MariaDB implementations: ``MySQLAdapter`` (SQLAlchemy async engine,
metadata queries) and ``MySQLCommandClient`` (native client binaries, bulk
import and dump).

Usage:
    from dbporter.adapters import MySQLAdapter, MySQLCommandClient
"""

from dbporter.adapters.base import ClientResult, DatabaseClient, SqlImporter
from dbporter.adapters.command import ClientNotFoundError, MySQLCommandClient
from dbporter.adapters.mysql import MySQLAdapter

__all__ = [
    "DatabaseClient",
    "SqlImporter",
    "ClientResult",
    "MySQLAdapter",
    "MySQLCommandClient",
    "ClientNotFoundError",
]
