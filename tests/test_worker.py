"""Tests for the import job worker's retry state machine."""

from pathlib import Path

from dbporter.restore.logs import AppendLog, parse_failed_names
from dbporter.restore.models import ImportJob, JobStatus
from dbporter.restore.worker import ImportWorker

from conftest import DEADLOCK, LOCK_WAIT, SYNTAX, FakeImporter, write_sql_files


def _make_worker(tmp_path: Path, importer: FakeImporter) -> tuple[ImportWorker, list[float]]:
    sleeps: list[float] = []

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    worker = ImportWorker(
        importer,
        error_log_dir=tmp_path / "logs",
        success_log=AppendLog(tmp_path / "success_log.txt"),
        error_report=AppendLog(tmp_path / "error_report.txt"),
        sleep=_sleep,
    )
    return worker, sleeps


class TestImportWorker:
    """One job, internal retries, terminal status."""

    async def test_first_try_success(self, tmp_path: Path) -> None:
        (sql,) = write_sql_files(tmp_path / "restore", ["users.sql"])
        worker, sleeps = _make_worker(tmp_path, FakeImporter())

        job = await worker.run(ImportJob.from_path(sql))

        assert job.status == JobStatus.SUCCEEDED
        assert job.attempts == 1
        assert sleeps == []
        assert worker.success_log.lines() == ["users.sql"]
        assert worker.error_report.is_empty()
        assert not worker.error_log_for(job).exists()

    async def test_lock_wait_twice_then_success(self, tmp_path: Path) -> None:
        (sql,) = write_sql_files(tmp_path / "restore", ["orders.sql"])
        importer = FakeImporter({"orders.sql": [LOCK_WAIT, LOCK_WAIT]})
        worker, sleeps = _make_worker(tmp_path, importer)

        job = await worker.run(ImportJob.from_path(sql))

        assert job.status == JobStatus.SUCCEEDED
        assert job.attempts == 3
        assert sleeps == [2, 4]
        assert importer.attempts_for("orders.sql") == 3
        assert worker.success_log.lines() == ["orders.sql"]
        assert worker.error_report.is_empty()

    async def test_deadlock_backoff(self, tmp_path: Path) -> None:
        (sql,) = write_sql_files(tmp_path / "restore", ["items.sql"])
        worker, sleeps = _make_worker(tmp_path, FakeImporter({"items.sql": [DEADLOCK]}))

        job = await worker.run(ImportJob.from_path(sql))

        assert job.status == JobStatus.SUCCEEDED
        assert sleeps == [1]

    async def test_transient_exhaustion_is_permanent(self, tmp_path: Path) -> None:
        (sql,) = write_sql_files(tmp_path / "restore", ["orders.sql"])
        importer = FakeImporter({"orders.sql": [LOCK_WAIT] * 3})
        worker, sleeps = _make_worker(tmp_path, importer)

        job = await worker.run(ImportJob.from_path(sql))

        assert job.status == JobStatus.FAILED_PERMANENT
        assert job.attempts == 3
        assert sleeps == [2, 4]
        report = worker.error_report.read_text()
        assert report.startswith("FAILED: orders.sql (after 3 retries)\n")
        assert "    " + LOCK_WAIT in report
        assert worker.success_log.lines() == []
        assert worker.error_log_for(job).read_text().strip() == LOCK_WAIT

    async def test_permanent_error_not_retried(self, tmp_path: Path) -> None:
        (sql,) = write_sql_files(tmp_path / "restore", ["broken.sql"])
        importer = FakeImporter({"broken.sql": [SYNTAX]})
        worker, sleeps = _make_worker(tmp_path, importer)

        job = await worker.run(ImportJob.from_path(sql))

        assert job.status == JobStatus.FAILED_PERMANENT
        assert job.attempts == 1
        assert sleeps == []
        assert importer.attempts_for("broken.sql") == 1
        assert parse_failed_names(worker.error_report.read_text()) == ["broken.sql"]

    async def test_lock_then_permanent_stops(self, tmp_path: Path) -> None:
        (sql,) = write_sql_files(tmp_path / "restore", ["mixed.sql"])
        worker, sleeps = _make_worker(
            tmp_path, FakeImporter({"mixed.sql": [LOCK_WAIT, SYNTAX]})
        )

        job = await worker.run(ImportJob.from_path(sql))

        assert job.status == JobStatus.FAILED_PERMANENT
        assert job.attempts == 2
        assert sleeps == [2]
        assert "after 2 retries" in worker.error_report.read_text()

    async def test_backoff_unit_scales_sleep(self, tmp_path: Path) -> None:
        (sql,) = write_sql_files(tmp_path / "restore", ["orders.sql"])
        worker, sleeps = _make_worker(tmp_path, FakeImporter({"orders.sql": [LOCK_WAIT]}))
        worker.backoff_unit = 0.5

        await worker.run(ImportJob.from_path(sql))

        assert sleeps == [1.0]

    async def test_importer_oserror_is_permanent(self, tmp_path: Path) -> None:
        sql = tmp_path / "restore" / "gone.sql"
        importer = FakeImporter()

        async def _missing(sql_file, error_log, init_command=None):
            raise FileNotFoundError(f"No such file: {sql_file}")

        importer.import_file = _missing
        worker, _ = _make_worker(tmp_path, importer)

        job = await worker.run(ImportJob.from_path(sql))

        assert job.status == JobStatus.FAILED_PERMANENT
        assert "No such file" in job.last_error
        assert parse_failed_names(worker.error_report.read_text()) == ["gone.sql"]
