"""Shared fakes: a scripted SQL importer and a local, unprivileged host."""

import shutil
from pathlib import Path

import pytest

from dbporter.adapters.base import ClientResult
from dbporter.config.models import Workspace

LOCK_WAIT = "ERROR 1205 (HY000) at line 17: Lock wait timeout exceeded; try restarting transaction"
DEADLOCK = "ERROR 1213 (40001) at line 9: Deadlock found when trying to get lock; try restarting transaction"
SYNTAX = "ERROR 1064 (42000) at line 3: You have an error in your SQL syntax"


class FakeImporter:
    """SqlImporter whose attempts follow a per-file script.

    ``script`` maps a file name to the diagnostics of its successive failing
    attempts; once the list is used up every further attempt succeeds.
    ``retry_script`` does the same for calls made with an ``init_command``.
    """

    def __init__(
        self,
        script: dict[str, list[str]] | None = None,
        retry_script: dict[str, list[str]] | None = None,
        failing_dumps: set[str] | None = None,
    ) -> None:
        self.script = {name: list(errors) for name, errors in (script or {}).items()}
        self.retry_script = {
            name: list(errors) for name, errors in (retry_script or {}).items()
        }
        self.failing_dumps = failing_dumps or set()
        self.calls: list[tuple[str, str | None]] = []
        self.dumped: list[str] = []

    async def import_file(
        self,
        sql_file: Path,
        error_log: Path,
        init_command: str | None = None,
    ) -> ClientResult:
        self.calls.append((sql_file.name, init_command))
        script = self.retry_script if init_command else self.script
        pending = script.get(sql_file.name, [])

        error_log.parent.mkdir(parents=True, exist_ok=True)
        if pending:
            error_log.write_text(pending.pop(0) + "\n")
            return ClientResult(returncode=1, duration=0.01)
        error_log.write_text("")
        return ClientResult(returncode=0, duration=0.01)

    async def dump_table(self, table: str, output: Path) -> ClientResult:
        self.dumped.append(table)
        output.parent.mkdir(parents=True, exist_ok=True)
        if table in self.failing_dumps:
            output.write_text("")
            return ClientResult(returncode=2)
        output.write_text(f"CREATE TABLE `{table}` (id INT);\nINSERT INTO `{table}` VALUES (1);\n")
        return ClientResult(returncode=0)

    def attempts_for(self, name: str) -> int:
        return sum(1 for called, _ in self.calls if called == name)


class LocalHost:
    """SystemHost stand-in operating on ordinary files under tmp_path."""

    def __init__(self, privileged: bool = True, failing_restarts: int = 0) -> None:
        self.privileged = privileged
        self.failing_restarts = failing_restarts
        self.restarts: list[str] = []
        self.waits: list[float] = []

    def has_privilege(self) -> bool:
        return self.privileged

    def read_text(self, path: Path) -> str:
        return path.read_text()

    def copy_file(self, source: Path, target: Path) -> None:
        shutil.copy2(source, target)

    def write_text(self, path: Path, content: str) -> None:
        path.write_text(content)

    def remove(self, path: Path) -> None:
        path.unlink(missing_ok=True)

    def restart_service(self, name: str) -> None:
        self.restarts.append(name)
        if self.failing_restarts:
            self.failing_restarts -= 1
            raise OSError(f"Job for {name}.service failed")

    def wait(self, seconds: float) -> None:
        self.waits.append(seconds)


def write_sql_files(directory: Path, names: list[str]) -> list[Path]:
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for name in names:
        path = directory / name
        path.write_text(f"INSERT INTO `{path.stem}` VALUES (1);\n")
        paths.append(path)
    return paths


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    ws = Workspace(base_dir=tmp_path / "ops")
    ws.ensure()
    return ws
