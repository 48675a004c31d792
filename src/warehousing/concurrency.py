"""Per-document concurrency control for stock mutations.

Two layers guard every read-validate-write against a warehouse document:

* Pessimistic: a keyed lock registry hands out one exclusive lock per
  aggregate id. Operations touching several documents acquire their locks
  in sorted order, so two workers can never wait on each other.
* Optimistic: protean versions each aggregate and refuses to persist a
  copy whose version moved since it was read (``ExpectedVersionError``).

Both failure modes surface as ``ConcurrencyConflict``, the only error that
``run_serialized`` retries.
"""

import os
import threading
from collections.abc import Callable, Iterable
from contextlib import contextmanager
from typing import Any

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_random

from warehousing.exceptions import ConcurrencyConflict

logger = structlog.get_logger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_LOCK_TIMEOUT = 5.0


def _custom_setting(name: str, default: Any) -> Any:
    custom = current_domain.config.get("custom", {}) or {}
    return custom.get(name, default)


def max_retries() -> int:
    value = os.getenv("WAREHOUSING_MAX_RETRIES")
    if value is not None:
        return int(value)
    return int(_custom_setting("max_retries", DEFAULT_MAX_RETRIES))


def lock_timeout() -> float:
    value = os.getenv("WAREHOUSING_LOCK_TIMEOUT")
    if value is not None:
        return float(value)
    return float(_custom_setting("lock_timeout", DEFAULT_LOCK_TIMEOUT))


class DocumentLocks:
    """Registry of exclusive locks keyed by document id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, *keys: str, timeout: float | None = None):
        """Hold every lock in ``keys`` for the duration of the block."""
        ordered = sorted({str(key) for key in keys if key})
        timeout = lock_timeout() if timeout is None else timeout
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                if not lock.acquire(timeout=timeout):
                    raise ConcurrencyConflict(f"Timed out waiting for lock on {key}", keys=tuple(ordered))
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


document_locks = DocumentLocks()


def _clean(keys) -> list[str]:
    return sorted({str(key) for key in keys if key})


def _log_retry(retry_state) -> None:
    logger.warning(
        "concurrency_conflict_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


def run_serialized(
    operation: Callable[[], Any],
    keys: Iterable[str] | Callable[[], Iterable[str]],
    retries: int | None = None,
) -> Any:
    """Run ``operation`` while holding the document locks for ``keys``.

    ``keys`` may be a callable that derives the ids from stored state. It is
    evaluated again once the locks are held; if the set grew in between, the
    attempt is abandoned as a conflict and retried.
    """
    attempts = max_retries() if retries is None else retries
    resolve = keys if callable(keys) else (lambda: keys)

    def attempt_once():
        lock_keys = _clean(resolve())
        with document_locks.hold(*lock_keys):
            if callable(keys) and not set(_clean(resolve())) <= set(lock_keys):
                raise ConcurrencyConflict("Documents changed while acquiring locks", keys=tuple(lock_keys))
            return operation()

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_random(min=0, max=0.02),
        retry=retry_if_exception_type((ConcurrencyConflict, ExpectedVersionError)),
        before_sleep=_log_retry,
    )
    try:
        return retrying(attempt_once)
    except RetryError as exc:
        last_error = exc.last_attempt.exception()
        logger.error("concurrency_conflict_gave_up", attempts=attempts, error=str(last_error))
        raise ConcurrencyConflict(f"Gave up after {attempts} attempts: {last_error}") from last_error
