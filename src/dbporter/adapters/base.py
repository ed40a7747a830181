"""Database client protocol definitions.

Defines the two Protocols the rest of the package is written against:

- ``DatabaseClient``: metadata queries over a pooled connection
  (connectivity check, table listing, buffer pool size).
- ``SqlImporter``: bulk execution of SQL text files and per-table dumps
  through the engine's native client binaries.

All methods are ``async def`` -- callers must ``await`` every operation.

Usage:
    from dbporter.adapters.base import DatabaseClient, SqlImporter

    async def do_work(db: DatabaseClient, importer: SqlImporter) -> None:
        tables = await db.list_tables()
        result = await importer.import_file(Path("users.sql"), Path("users.sql.error"))
        await db.close()
"""

from pathlib import Path
from typing import Protocol

from pydantic import BaseModel


class ClientResult(BaseModel):
    """Outcome of one native client invocation."""

    returncode: int
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class DatabaseClient(Protocol):
    """Metadata interface implemented by ``MySQLAdapter``."""

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` and return True when the server answers."""
        ...

    async def list_tables(self) -> list[str]:
        """Return the base table names of the connected database."""
        ...

    async def get_buffer_pool_size(self) -> int:
        """Return ``@@innodb_buffer_pool_size`` in bytes."""
        ...

    async def close(self) -> None:
        """Dispose of the connection pool."""
        ...


class SqlImporter(Protocol):
    """Native-client interface implemented by ``MySQLCommandClient``."""

    async def import_file(
        self,
        sql_file: Path,
        error_log: Path,
        init_command: str | None = None,
    ) -> ClientResult:
        """Execute every statement of ``sql_file`` against the database.

        Args:
            sql_file: SQL text to feed to the client on stdin.
            error_log: File that receives the client's diagnostic output.
                It is truncated at the start of each invocation.
            init_command: Optional statement run at connect time, before
                the file's contents (e.g. session-level ``SET``).

        Returns:
            ClientResult with the client's exit code.
        """
        ...

    async def dump_table(self, table: str, output: Path) -> ClientResult:
        """Write a consistent SQL dump of ``table`` to ``output``."""
        ...
