"""Import orchestration: concurrent pass, sequential retry, buffer pool sizing.

Usage:
    from dbporter.restore import import_database, BufferPoolOptimizer
    from dbporter.restore import ImportSession, SessionReport
"""

from dbporter.restore.buffer_pool import (
    BufferPoolGuard,
    BufferPoolOptimizer,
    SystemHost,
    compute_suggested_size,
)
from dbporter.restore.classifier import classify_error
from dbporter.restore.models import (
    BufferPoolPlan,
    ErrorKind,
    ImportJob,
    JobStatus,
    RetryOutcome,
    SessionReport,
    SessionStatus,
)
from dbporter.restore.runner import ImportAbortedError, import_database
from dbporter.restore.scheduler import get_thread_count
from dbporter.restore.session import ImportSession

__all__ = [
    "BufferPoolGuard",
    "BufferPoolOptimizer",
    "SystemHost",
    "compute_suggested_size",
    "classify_error",
    "BufferPoolPlan",
    "ErrorKind",
    "ImportJob",
    "JobStatus",
    "RetryOutcome",
    "SessionReport",
    "SessionStatus",
    "ImportAbortedError",
    "import_database",
    "get_thread_count",
    "ImportSession",
]
