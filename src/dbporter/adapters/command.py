"""Native client adapter: runs ``mariadb``/``mysql`` and their dump tools.

Provides ``MySQLCommandClient``, the ``SqlImporter`` implementation used by
export and import.  SQL files are fed to the client on stdin exactly as the
dump tool wrote them, so client-side directives (``DELIMITER``, conditional
comments) keep working.

The secret is handed to the child process through ``MYSQL_PWD`` so it never
appears in the process list.

Usage:
    from dbporter.adapters.command import MySQLCommandClient

    client = MySQLCommandClient(profile)
    result = await client.import_file(Path("users.sql"), Path("logs/users.sql.error"))
    if not result.ok:
        print(Path("logs/users.sql.error").read_text())
"""

import asyncio
import os
import shutil
import time
from pathlib import Path

from dbporter.adapters.base import ClientResult
from dbporter.config.models import ConnectionProfile

CLIENT_BINARIES = ("mariadb", "mysql")
DUMP_BINARIES = ("mariadb-dump", "mysqldump")

INSTALL_HINT = (
    "Install the client tools, e.g. "
    "'sudo apt install mariadb-client' or 'sudo pacman -S mariadb-clients'."
)


class ClientNotFoundError(Exception):
    """Raised when none of the candidate client binaries is on PATH."""

    pass


def find_binary(candidates: tuple[str, ...]) -> str:
    """Return the first of ``candidates`` found on PATH.

    Raises:
        ClientNotFoundError: If none is installed.
    """
    for name in candidates:
        if shutil.which(name):
            return name
    raise ClientNotFoundError(
        f"Neither {' nor '.join(candidates)} found. {INSTALL_HINT}"
    )


class MySQLCommandClient:
    """``SqlImporter`` backed by the engine's command-line tools.

    Args:
        profile: Connection profile (host, port, user, password, database).
        client_binary: Client executable.  Detected when omitted, preferring
            ``mariadb`` over ``mysql``.
        dump_binary: Dump executable.  Detected lazily on first dump,
            preferring ``mariadb-dump`` over ``mysqldump``.
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        client_binary: str | None = None,
        dump_binary: str | None = None,
    ) -> None:
        self._profile = profile
        self._client = client_binary or find_binary(CLIENT_BINARIES)
        self._dump = dump_binary

    @property
    def client_binary(self) -> str:
        return self._client

    def _connection_args(self) -> list[str]:
        args = [f"--user={self._profile.user}"]
        if self._profile.host and self._profile.host != "localhost":
            args.append(f"--host={self._profile.host}")
        if self._profile.port != 3306:
            args.append(f"--port={self._profile.port}")
        return args

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["MYSQL_PWD"] = self._profile.password
        return env

    async def import_file(
        self,
        sql_file: Path,
        error_log: Path,
        init_command: str | None = None,
    ) -> ClientResult:
        """Feed ``sql_file`` to the client, diagnostics into ``error_log``."""
        args = [self._client, *self._connection_args()]
        if init_command:
            args.append(f"--init-command={init_command}")
        args.append(self._profile.database)

        error_log.parent.mkdir(parents=True, exist_ok=True)
        start = time.monotonic()
        with open(sql_file, "rb") as stdin, open(error_log, "wb") as stderr:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=stdin,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=stderr,
                env=self._env(),
            )
            returncode = await _wait(process)
        return ClientResult(returncode=returncode, duration=time.monotonic() - start)

    async def dump_table(self, table: str, output: Path) -> ClientResult:
        """Dump one table with ``--single-transaction --skip-lock-tables``."""
        if self._dump is None:
            self._dump = find_binary(DUMP_BINARIES)

        args = [
            self._dump,
            *self._connection_args(),
            "--single-transaction",
            "--skip-lock-tables",
            self._profile.database,
            table,
        ]

        output.parent.mkdir(parents=True, exist_ok=True)
        start = time.monotonic()
        with open(output, "wb") as stdout:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=stdout,
                stderr=asyncio.subprocess.DEVNULL,
                env=self._env(),
            )
            returncode = await _wait(process)
        return ClientResult(returncode=returncode, duration=time.monotonic() - start)


async def _wait(process: asyncio.subprocess.Process) -> int:
    """Wait for ``process``; kill it if the waiting task is cancelled."""
    try:
        return await process.wait()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise
