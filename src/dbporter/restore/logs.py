"""Shared success log and error report.

Both files are appended to by every concurrent worker.  Each record is
written with a single ``os.write`` on an ``O_APPEND`` descriptor while
holding a process-local lock and an exclusive ``flock``, so records never
interleave even if several processes share the workspace.

Error report format (one block per failed file, blank-line separated)::

    FAILED: orders.sql (after 3 retries)
      Error details:
        ERROR 1205 (HY000) at line 17: Lock wait timeout exceeded; ...

"""

import fcntl
import os
import re
import threading
from pathlib import Path

FAILED_RECORD = re.compile(r"^FAILED: (.+?\.sql)(?: \(after \d+ retries\))?\s*$")


class AppendLog:
    """Append-only text file with atomic per-record writes."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def truncate(self) -> None:
        """Start the log empty for a new session."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("")

    def append(self, record: str) -> None:
        data = record.encode()
        with self._lock:
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    os.write(fd, data)
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)

    def read_text(self) -> str:
        if not self.path.exists():
            return ""
        return self.path.read_text()

    def is_empty(self) -> bool:
        return not self.path.exists() or self.path.stat().st_size == 0

    def lines(self) -> list[str]:
        return [line for line in self.read_text().splitlines() if line]


def format_failure_record(name: str, attempts: int, diagnostic: str) -> str:
    """Build one error report block for a permanently failed file."""
    lines = [f"FAILED: {name} (after {attempts} retries)"]
    if diagnostic.strip():
        lines.append("  Error details:")
        lines.extend(f"    {line}" for line in diagnostic.rstrip("\n").splitlines())
    return "\n".join(lines) + "\n\n"


def parse_failed_names(report: str) -> list[str]:
    """Return file names of ``FAILED:`` records, in order, without duplicates."""
    names: list[str] = []
    for line in report.splitlines():
        match = FAILED_RECORD.match(line)
        if match and match.group(1) not in names:
            names.append(match.group(1))
    return names
