"""Tests for the concurrent import scheduler."""

import asyncio
from pathlib import Path
from unittest.mock import patch

from dbporter.adapters.base import ClientResult
from dbporter.restore.logs import AppendLog
from dbporter.restore.models import ImportJob
from dbporter.restore.scheduler import get_thread_count, run_concurrent_pass
from dbporter.restore.worker import ImportWorker

from conftest import SYNTAX, FakeImporter, write_sql_files


def _make_worker(tmp_path: Path, importer) -> ImportWorker:
    async def _no_sleep(seconds: float) -> None:
        return None

    return ImportWorker(
        importer,
        error_log_dir=tmp_path / "logs",
        success_log=AppendLog(tmp_path / "success_log.txt"),
        error_report=AppendLog(tmp_path / "error_report.txt"),
        sleep=_no_sleep,
    )


class TestGetThreadCount:
    """Width: override, else logical CPUs - 2, at least 1."""

    def test_override_wins(self) -> None:
        assert get_thread_count(5) == 5

    def test_cpus_minus_two(self) -> None:
        with patch("dbporter.restore.scheduler.psutil.cpu_count", return_value=8):
            assert get_thread_count(0) == 6

    def test_floor_of_one(self) -> None:
        with patch("dbporter.restore.scheduler.psutil.cpu_count", return_value=2):
            assert get_thread_count() == 1

    def test_unknown_cpu_count(self) -> None:
        with patch("dbporter.restore.scheduler.psutil.cpu_count", return_value=None):
            assert get_thread_count() == 2


class _TrackingImporter(FakeImporter):
    """Records the peak number of imports in flight."""

    def __init__(self) -> None:
        super().__init__()
        self.active = 0
        self.peak = 0

    async def import_file(self, sql_file, error_log, init_command=None) -> ClientResult:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        try:
            return await super().import_file(sql_file, error_log, init_command)
        finally:
            self.active -= 1


class TestRunConcurrentPass:
    """Bounded fan-out, fan-in barrier."""

    async def test_all_succeed(self, tmp_path: Path) -> None:
        files = write_sql_files(tmp_path / "restore", [f"t{i}.sql" for i in range(6)])
        worker = _make_worker(tmp_path, FakeImporter())

        result = await run_concurrent_pass(
            [ImportJob.from_path(p) for p in files], worker, width=3
        )

        assert result.full_success
        assert result.total == 6
        assert sorted(result.succeeded) == sorted(p.name for p in files)
        assert worker.error_report.is_empty()

    async def test_width_bounds_concurrency(self, tmp_path: Path) -> None:
        files = write_sql_files(tmp_path / "restore", [f"t{i}.sql" for i in range(10)])
        importer = _TrackingImporter()

        await run_concurrent_pass(
            [ImportJob.from_path(p) for p in files], _make_worker(tmp_path, importer), width=3
        )

        assert importer.peak == 3

    async def test_each_job_processed_exactly_once(self, tmp_path: Path) -> None:
        files = write_sql_files(tmp_path / "restore", [f"t{i}.sql" for i in range(12)])
        importer = FakeImporter()

        await run_concurrent_pass(
            [ImportJob.from_path(p) for p in files], _make_worker(tmp_path, importer), width=4
        )

        assert sorted(name for name, _ in importer.calls) == sorted(p.name for p in files)

    async def test_partial_failure_reports_failed_subset(self, tmp_path: Path) -> None:
        files = write_sql_files(tmp_path / "restore", ["a.sql", "b.sql", "c.sql"])
        importer = FakeImporter({"b.sql": [SYNTAX]})

        result = await run_concurrent_pass(
            [ImportJob.from_path(p) for p in files], _make_worker(tmp_path, importer), width=2
        )

        assert not result.full_success
        assert result.failed == ["b.sql"]
        assert sorted(result.succeeded) == ["a.sql", "c.sql"]

    async def test_zero_width_runs_one_at_a_time(self, tmp_path: Path) -> None:
        files = write_sql_files(tmp_path / "restore", ["a.sql", "b.sql"])
        importer = _TrackingImporter()

        result = await run_concurrent_pass(
            [ImportJob.from_path(p) for p in files], _make_worker(tmp_path, importer), width=0
        )

        assert result.width == 1
        assert importer.peak == 1
