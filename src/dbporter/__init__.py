"""dbporter: per-table MySQL/MariaDB export and resilient parallel import.

Exports a database table by table into a compressed archive and imports it
back with concurrent workers, lock-aware retries, a sequential fallback
pass and a temporary, always-reverted buffer pool increase.

Usage:
    from dbporter import load_config, get_active_profile, get_adapter
    from dbporter import MySQLCommandClient, import_database, export_database
"""

__version__ = "0.1.0"

# Adapters
from dbporter.adapters.base import ClientResult, DatabaseClient, SqlImporter
from dbporter.adapters.command import ClientNotFoundError, MySQLCommandClient
from dbporter.adapters.mysql import MySQLAdapter

# Config
from dbporter.config.loader import load_config, resolve_workspace
from dbporter.config.models import ConnectionProfile, PorterConfig, Workspace

# Factory
from dbporter.factory import (
    ProfileNotFoundError,
    check_connection,
    get_active_profile,
    get_adapter,
    resolve_url,
)

# Export / import
from dbporter.backup import ArchiveError, ExportResult, export_database
from dbporter.restore import (
    BufferPoolOptimizer,
    ImportAbortedError,
    ImportSession,
    SessionReport,
    import_database,
)

__all__ = [
    # Adapters
    "ClientResult",
    "DatabaseClient",
    "SqlImporter",
    "ClientNotFoundError",
    "MySQLCommandClient",
    "MySQLAdapter",
    # Config
    "load_config",
    "resolve_workspace",
    "ConnectionProfile",
    "PorterConfig",
    "Workspace",
    # Factory
    "ProfileNotFoundError",
    "check_connection",
    "get_active_profile",
    "get_adapter",
    "resolve_url",
    # Export / import
    "ArchiveError",
    "ExportResult",
    "export_database",
    "BufferPoolOptimizer",
    "ImportAbortedError",
    "ImportSession",
    "SessionReport",
    "import_database",
]
