"""Classify a failed import attempt from the client's diagnostic output.

This is the only place retry eligibility is decided.
"""

from dbporter.restore.models import ErrorKind

LOCK_WAIT_SIGNATURE = "Lock wait timeout exceeded"
DEADLOCK_SIGNATURE = "Deadlock found"


def classify_error(diagnostic: str) -> ErrorKind:
    """Map diagnostic text to an ErrorKind.

    Example:
        >>> classify_error("ERROR 1205 (HY000) at line 42: Lock wait timeout exceeded; ...")
        <ErrorKind.TRANSIENT_LOCK: 'transient-lock'>
        >>> classify_error("ERROR 1064 (42000): You have an error in your SQL syntax")
        <ErrorKind.PERMANENT: 'permanent'>
    """
    if LOCK_WAIT_SIGNATURE in diagnostic:
        return ErrorKind.TRANSIENT_LOCK
    if DEADLOCK_SIGNATURE in diagnostic:
        return ErrorKind.TRANSIENT_DEADLOCK
    return ErrorKind.PERMANENT


def backoff_delay(kind: ErrorKind, attempt: int) -> int | None:
    """Backoff in time units before retrying after failed ``attempt``.

    Lock waits back off ``attempt * 2``, deadlocks ``attempt``.  Returns
    None for permanent failures, which are never retried by a worker.
    """
    if kind == ErrorKind.TRANSIENT_LOCK:
        return attempt * 2
    if kind == ErrorKind.TRANSIENT_DEADLOCK:
        return attempt
    return None
