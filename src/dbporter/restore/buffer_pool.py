"""Temporary InnoDB buffer pool resizing for the duration of an import.

A larger buffer pool speeds up bulk imports considerably, but changing it
needs a config edit and a server restart.  This module sizes the pool from
system memory, rewrites the engine config, restarts the server, and puts
everything back afterwards.

State machine::

    idle -> planned -> applied -> reverted
    idle -> planned -> skipped        (not beneficial, declined, no config,
                                       no privilege, or the apply failed)

The path of the config backup is written to a pointer file in the workspace
*before* the live config is touched.  Revert is driven by that pointer, so
it works from a ``finally`` block, from a different optimizer instance, or
from the next run after the process was killed (``recover_stale``).

Usage:
    optimizer = BufferPoolOptimizer(workspace.backup_pointer, service_name="mariadb")
    plan = optimizer.plan(current_bytes=await adapter.get_buffer_pool_size())
    with BufferPoolGuard(optimizer, plan, authorize=lambda p: True):
        ...  # import runs with the larger pool
"""

import logging
import os
import shutil
import subprocess
import sys
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import psutil

from dbporter.restore.models import BufferPoolPlan, BufferPoolState

logger = logging.getLogger(__name__)

GIB = 1024**3

# (minimum total GiB, percent of total) -- larger machines give a smaller
# share to leave room for the OS and other processes.
MEMORY_TIERS = ((64, 50), (32, 60), (16, 65), (8, 70), (4, 75))

CONFIG_SEARCH_PATHS = (
    Path("/etc/mysql/mariadb.conf.d/50-server.cnf"),
    Path("/etc/mysql/mysql.conf.d/mysqld.cnf"),
    Path("/etc/mysql/my.cnf"),
    Path("/etc/my.cnf"),
)

BUFFER_POOL_DIRECTIVE = "innodb_buffer_pool_size"
SERVER_SECTION = "[mysqld]"
BACKUP_MARKER = ".temp_import."


# ============================================================================
# Sizing
# ============================================================================


def read_system_memory() -> tuple[int, int]:
    """Return (total, available) system memory in whole GiB, rounded down."""
    memory = psutil.virtual_memory()
    return memory.total // GIB, memory.available // GIB


def compute_suggested_size(total_gb: int, available_gb: int) -> tuple[int, int]:
    """Suggested buffer pool size for an import.

    Returns:
        Tuple of (suggested_gb, safe_ceiling_gb).  The suggestion is clamped
        to at most ``available_gb - 1`` and at least 1.

    Example:
        >>> compute_suggested_size(64, 60)
        (32, 59)
        >>> compute_suggested_size(3, 2)
        (1, 1)
    """
    suggested = 1
    for threshold, percent in MEMORY_TIERS:
        if total_gb >= threshold:
            suggested = total_gb * percent // 100
            break

    safe_ceiling = available_gb - 1
    if suggested > safe_ceiling:
        suggested = safe_ceiling
    if suggested < 1:
        suggested = 1
    return suggested, safe_ceiling


# ============================================================================
# Config file handling
# ============================================================================


def find_engine_config(candidates: tuple[Path, ...] = CONFIG_SEARCH_PATHS) -> Path | None:
    """Return the first existing config file among ``candidates``."""
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def rewrite_buffer_pool_directive(config_text: str, size_gb: int) -> str:
    """Set the buffer pool size in an option file's text.

    Drops every existing ``innodb_buffer_pool_size`` line and inserts the
    new directive right after the ``[mysqld]`` header, appending the section
    when the file has none.
    """
    directive = f"{BUFFER_POOL_DIRECTIVE} = {size_gb}G\n"
    lines = [
        line
        for line in config_text.splitlines(keepends=True)
        if not line.startswith(BUFFER_POOL_DIRECTIVE)
    ]

    for index, line in enumerate(lines):
        if line.startswith(SERVER_SECTION):
            if not line.endswith("\n"):
                lines[index] = line + "\n"
            lines.insert(index + 1, directive)
            return "".join(lines)

    text = "".join(lines)
    if text and not text.endswith("\n"):
        text += "\n"
    return f"{text}\n{SERVER_SECTION}\n{directive}"


def live_config_for(backup: Path) -> Path:
    """Path of the config file a ``*.temp_import.<timestamp>`` backup was taken from."""
    return Path(str(backup).rsplit(BACKUP_MARKER, 1)[0])


# ============================================================================
# Privileged host operations
# ============================================================================


class SystemHost:
    """File and service operations on the engine's host.

    Runs commands directly as root, through ``sudo -n`` otherwise.  With
    ``interactive=True`` a terminal user may be asked for their sudo password
    once, when privilege is first checked.
    """

    def __init__(self, interactive: bool = False) -> None:
        self.interactive = interactive

    def _prefix(self) -> list[str]:
        return [] if os.geteuid() == 0 else ["sudo", "-n"]

    def _run(self, args: list[str], **kwargs) -> subprocess.CompletedProcess:
        return subprocess.run([*self._prefix(), *args], check=True, **kwargs)

    def has_privilege(self) -> bool:
        if os.geteuid() == 0:
            return True
        if shutil.which("sudo") is None:
            return False
        probe = subprocess.run(["sudo", "-n", "true"], capture_output=True)
        if probe.returncode == 0:
            return True
        if self.interactive and sys.stdin.isatty():
            logger.info("Requesting sudo access for buffer pool optimization")
            return subprocess.run(["sudo", "-v"]).returncode == 0
        return False

    def read_text(self, path: Path) -> str:
        try:
            return path.read_text()
        except PermissionError:
            return self._run(["cat", str(path)], capture_output=True, text=True).stdout

    def copy_file(self, source: Path, target: Path) -> None:
        self._run(["cp", "-p", str(source), str(target)])

    def write_text(self, path: Path, content: str) -> None:
        self._run(["tee", str(path)], input=content, text=True, stdout=subprocess.DEVNULL)

    def remove(self, path: Path) -> None:
        self._run(["rm", "-f", str(path)])

    def restart_service(self, name: str) -> None:
        self._run(["systemctl", "restart", name])

    def wait(self, seconds: float) -> None:
        time.sleep(seconds)


# ============================================================================
# Optimizer
# ============================================================================


class BufferPoolOptimizer:
    """Plans, applies and reverts a temporary buffer pool size.

    Args:
        pointer_path: Durable file naming the config backup while applied.
        host: Privileged operations; defaults to a non-interactive SystemHost.
        service_name: systemd unit restarted after each config change.
        config_paths: Candidate engine config files, first match wins.
        memory: Returns (total_gb, available_gb).
        stabilize_seconds: Pause after each restart.
        clock: Timestamp source for backup file names.
    """

    def __init__(
        self,
        pointer_path: Path,
        host: SystemHost | None = None,
        service_name: str = "mariadb",
        config_paths: tuple[Path, ...] = CONFIG_SEARCH_PATHS,
        memory: Callable[[], tuple[int, int]] = read_system_memory,
        stabilize_seconds: float = 3.0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.pointer_path = pointer_path
        self.host = host or SystemHost()
        self.service_name = service_name
        self.config_paths = config_paths
        self._memory = memory
        self.stabilize_seconds = stabilize_seconds
        self._clock = clock
        self.state = BufferPoolState.IDLE

    def plan(self, current_bytes: int) -> BufferPoolPlan:
        """Size the pool from system memory and the live setting."""
        total_gb, available_gb = self._memory()
        suggested, safe_ceiling = compute_suggested_size(total_gb, available_gb)
        plan = BufferPoolPlan(
            current_gb=round(current_bytes / GIB, 2),
            suggested_gb=suggested,
            total_gb=total_gb,
            available_gb=available_gb,
            safe_ceiling_gb=safe_ceiling,
        )
        self.state = BufferPoolState.PLANNED
        return plan

    def skip(self, reason: str) -> None:
        logger.info("Buffer pool optimization skipped: %s", reason)
        self.state = BufferPoolState.SKIPPED

    def apply(self, plan: BufferPoolPlan) -> bool:
        """Rewrite the engine config with the suggested size and restart.

        Never raises for infrastructure problems (no config file, no
        privilege, failing restart): the optimization is skipped and the
        config is left as it was.  An interruption mid-apply reverts and
        re-raises.

        Returns:
            True if the larger pool is now in effect.
        """
        if not plan.beneficial:
            self.skip(f"current {plan.current_gb}GB is already optimal")
            return False

        config = find_engine_config(self.config_paths)
        if config is None:
            self.skip("no engine configuration file found")
            return False

        if not self.host.has_privilege():
            self.skip("privilege elevation unavailable")
            return False

        stamp = self._clock().strftime("%Y%m%d_%H%M%S")
        backup = config.with_name(f"{config.name}{BACKUP_MARKER}{stamp}")
        logger.info(
            "Temporarily increasing buffer pool from %sGB to %dGB for import",
            plan.current_gb,
            plan.suggested_gb,
        )

        try:
            original = self.host.read_text(config)
            self.host.copy_file(config, backup)
            try:
                self._write_pointer(backup)
            except BaseException:
                self.host.remove(backup)
                raise
            plan.config_path = config
            plan.backup_path = backup
            plan.applied = True
            self.state = BufferPoolState.APPLIED

            self.host.write_text(
                config, rewrite_buffer_pool_directive(original, plan.suggested_gb)
            )
            logger.info("Restarting %s with optimized buffer pool", self.service_name)
            self.host.restart_service(self.service_name)
            self.host.wait(self.stabilize_seconds)
        except (subprocess.CalledProcessError, OSError) as e:
            logger.warning("Buffer pool optimization failed, continuing without it: %s", e)
            if plan.applied:
                self.revert(plan)
                plan.applied = False
            self.state = BufferPoolState.SKIPPED
            return False
        except BaseException:
            if plan.applied:
                self.revert(plan)
            raise

        return True

    def revert(self, plan: BufferPoolPlan | None = None) -> bool:
        """Put the pre-import config back and restart the engine.

        The backup is located through the pointer file, falling back to
        ``plan.backup_path``.  On success the backup and pointer are deleted.
        On failure both are kept so a later ``recover_stale`` can retry.

        Returns:
            True if a backup was restored.
        """
        backup = self._read_pointer()
        if backup is None and plan is not None:
            backup = plan.backup_path
        if backup is None:
            return False

        if not backup.is_file():
            logger.warning("Config backup %s is missing; nothing to restore", backup)
            self.pointer_path.unlink(missing_ok=True)
            return False

        live = live_config_for(backup)
        if not self.host.has_privilege():
            logger.error(
                "Cannot restore %s without privilege. Run manually: "
                "sudo cp %s %s && sudo systemctl restart %s",
                live,
                backup,
                live,
                self.service_name,
            )
            return False

        logger.info("Restoring original buffer pool configuration")
        try:
            self.host.copy_file(backup, live)
            self.host.restart_service(self.service_name)
            self.host.wait(self.stabilize_seconds)
            self.host.remove(backup)
        except (subprocess.CalledProcessError, OSError) as e:
            logger.error(
                "Failed to restore original configuration: %s (backup kept at %s)",
                e,
                backup,
            )
            return False

        self.pointer_path.unlink(missing_ok=True)
        self.state = BufferPoolState.REVERTED
        logger.info("Original configuration restored")
        return True

    def recover_stale(self) -> bool:
        """Revert a change left behind by a run that never reached its revert."""
        if not self.pointer_path.is_file():
            return False
        logger.warning("Found a buffer pool change from an interrupted import; reverting it")
        return self.revert()

    def _write_pointer(self, backup: Path) -> None:
        self.pointer_path.parent.mkdir(parents=True, exist_ok=True)
        self.pointer_path.write_text(f"{backup}\n")

    def _read_pointer(self) -> Path | None:
        if not self.pointer_path.is_file():
            return None
        content = self.pointer_path.read_text().strip()
        return Path(content) if content else None


class BufferPoolGuard:
    """Scoped buffer pool change: apply on enter if authorized, revert on exit.

    ``__exit__`` runs on normal completion, on exceptions and on
    ``KeyboardInterrupt``, so the engine never keeps the temporary size.

    Args:
        optimizer: Optimizer holding the planned state.
        plan: Result of ``optimizer.plan()``.
        authorize: Asked once, only when the plan is beneficial.
    """

    def __init__(
        self,
        optimizer: BufferPoolOptimizer,
        plan: BufferPoolPlan,
        authorize: Callable[[BufferPoolPlan], bool],
    ) -> None:
        self.optimizer = optimizer
        self.plan = plan
        self.authorize = authorize

    def __enter__(self) -> BufferPoolPlan:
        if not self.plan.beneficial:
            self.optimizer.skip(f"current {self.plan.current_gb}GB is already optimal")
        elif not self.authorize(self.plan):
            self.optimizer.skip("declined")
        else:
            self.optimizer.apply(self.plan)
        return self.plan

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.optimizer.state == BufferPoolState.APPLIED:
            self.optimizer.revert(self.plan)
