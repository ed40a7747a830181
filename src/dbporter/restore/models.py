"""Models for the import orchestration engine.

Usage:
    from dbporter.restore.models import ImportJob, JobStatus, SessionReport

    job = ImportJob.from_path(Path("restore/users.sql"))
    job.table        # "users"
    job.status       # JobStatus.PENDING
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Classification of one failed import attempt."""

    TRANSIENT_LOCK = "transient-lock"
    TRANSIENT_DEADLOCK = "transient-deadlock"
    PERMANENT = "permanent"


class JobStatus(str, Enum):
    """Lifecycle of an ImportJob.  Terminal: SUCCEEDED, FAILED_PERMANENT."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED_TRANSIENT = "failed-transient"
    FAILED_PERMANENT = "failed-permanent"


class ImportJob(BaseModel):
    """One SQL file to import.

    Owned by exactly one worker for its whole retry lifetime.
    """

    source: Path
    attempts: int = 0
    status: JobStatus = JobStatus.PENDING
    last_error: str = ""
    elapsed: float = 0.0

    @classmethod
    def from_path(cls, path: Path) -> "ImportJob":
        return cls(source=path)

    @property
    def name(self) -> str:
        """File name, as written to the success log and error report."""
        return self.source.name

    @property
    def table(self) -> str:
        return self.source.stem

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED_PERMANENT)


class PassResult(BaseModel):
    """Fan-in result of the concurrent pass."""

    total: int = 0
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    width: int = 1

    @property
    def full_success(self) -> bool:
        return not self.failed and len(self.succeeded) == self.total


class RetryOutcome(str, Enum):
    """Verdict of the sequential retry pass."""

    NOTHING_TO_RETRY = "nothing-to-retry"
    FULL_RECOVERY = "full-recovery"
    PARTIAL_RECOVERY = "partial-recovery"
    FAILED = "failed"


class RetryPassResult(BaseModel):
    """Result of the sequential retry pass."""

    outcome: RetryOutcome = RetryOutcome.NOTHING_TO_RETRY
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """False only when not a single retried file went through."""
        return self.outcome != RetryOutcome.FAILED


class BufferPoolState(str, Enum):
    """Buffer pool optimizer state machine."""

    IDLE = "idle"
    PLANNED = "planned"
    APPLIED = "applied"
    REVERTED = "reverted"
    SKIPPED = "skipped"


class BufferPoolPlan(BaseModel):
    """Sizing decision for the engine's buffer pool, in whole GiB.

    ``applied`` and ``backup_path`` are set only when the engine config was
    actually rewritten.  The backup path is also written to the workspace
    pointer file so revert works from any control path.
    """

    current_gb: float
    suggested_gb: int
    total_gb: int
    available_gb: int
    safe_ceiling_gb: int
    applied: bool = False
    config_path: Path | None = None
    backup_path: Path | None = None

    @property
    def beneficial(self) -> bool:
        return self.suggested_gb > self.current_gb


class SessionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class SessionReport(BaseModel):
    """Final outcome of one import session."""

    status: SessionStatus
    concurrent: PassResult
    retry: RetryPassResult | None = None
    buffer_pool: BufferPoolPlan | None = None
    elapsed: float = 0.0

    @property
    def exit_code(self) -> int:
        return 0 if self.status == SessionStatus.SUCCESS else 1

    @property
    def recovered(self) -> bool:
        return (
            self.retry is not None
            and self.retry.outcome == RetryOutcome.FULL_RECOVERY
        )

    @property
    def still_failing(self) -> list[str]:
        """Files that did not import in either pass."""
        if self.concurrent.full_success:
            return []
        if self.retry is None or self.retry.outcome == RetryOutcome.NOTHING_TO_RETRY:
            return list(self.concurrent.failed)
        return list(self.retry.failed)

    def summary(self) -> str:
        """One status line distinguishing the three possible endings."""
        if self.concurrent.full_success:
            return f"All {self.concurrent.total} SQL files imported successfully"
        if self.recovered:
            return (
                f"All {self.concurrent.total} SQL files imported "
                f"({len(self.retry.succeeded)} recovered after sequential retry)"
            )
        failing = ", ".join(Path(name).stem for name in self.still_failing)
        return f"Import still failing for these tables: {failing}"
