"""Tests for document locking and conflict retries."""

import threading

import pytest
from protean.exceptions import ExpectedVersionError
from warehousing.concurrency import DocumentLocks, lock_timeout, max_retries, run_serialized
from warehousing.exceptions import ConcurrencyConflict, InsufficientStock


class TestSettings:
    def test_defaults_come_from_domain_config(self, monkeypatch):
        monkeypatch.delenv("WAREHOUSING_MAX_RETRIES", raising=False)
        monkeypatch.delenv("WAREHOUSING_LOCK_TIMEOUT", raising=False)
        assert max_retries() == 3
        assert lock_timeout() == 5.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("WAREHOUSING_MAX_RETRIES", "5")
        monkeypatch.setenv("WAREHOUSING_LOCK_TIMEOUT", "0.5")
        assert max_retries() == 5
        assert lock_timeout() == 0.5


class TestConcurrencyConflict:
    def test_exposes_messages_like_other_domain_errors(self):
        error = ConcurrencyConflict("lost the race", keys=("wh-001",))
        assert error.messages == {"_concurrency": ["lost the race"]}
        assert error.keys == ("wh-001",)
        assert "lost the race" in str(error)


class TestDocumentLocks:
    def test_held_lock_times_out(self):
        locks = DocumentLocks()
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("wh-001", timeout=1):
                held.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(2)
        try:
            with pytest.raises(ConcurrencyConflict) as exc:
                with locks.hold("wh-002", "wh-001", timeout=0.05):
                    pass
            assert exc.value.keys == ("wh-001", "wh-002")
        finally:
            release.set()
            thread.join()

    def test_locks_are_released_after_failure(self):
        locks = DocumentLocks()
        with pytest.raises(RuntimeError):
            with locks.hold("wh-001", timeout=0.05):
                raise RuntimeError("boom")
        with locks.hold("wh-001", timeout=0.05):
            pass

    def test_blank_keys_are_ignored(self):
        locks = DocumentLocks()
        with locks.hold(None, "", "wh-001", timeout=0.05):
            pass


class TestRunSerialized:
    def test_returns_operation_result(self):
        assert run_serialized(lambda: 42, ["wh-001"]) == 42

    def test_conflict_is_retried(self):
        calls = []

        def operation():
            calls.append(1)
            if len(calls) < 3:
                raise ConcurrencyConflict("lost the race")
            return "done"

        assert run_serialized(operation, ["wh-001"], retries=3) == "done"
        assert len(calls) == 3

    def test_version_error_is_retried(self):
        calls = []

        def operation():
            calls.append(1)
            if len(calls) == 1:
                raise ExpectedVersionError({"_version": "stale version"})
            return "done"

        assert run_serialized(operation, ["wh-001"]) == "done"
        assert len(calls) == 2

    def test_gives_up_after_max_attempts(self):
        calls = []

        def operation():
            calls.append(1)
            raise ConcurrencyConflict("lost the race")

        with pytest.raises(ConcurrencyConflict) as exc:
            run_serialized(operation, ["wh-001"])
        assert len(calls) == 3
        assert "Gave up after 3 attempts" in str(exc.value.messages)

    def test_domain_errors_are_not_retried(self):
        calls = []

        def operation():
            calls.append(1)
            raise InsufficientStock("prod-001", required=5, available=1)

        with pytest.raises(InsufficientStock):
            run_serialized(operation, ["wh-001"])
        assert len(calls) == 1

    def test_growing_key_set_is_a_conflict(self):
        resolved = []

        def keys():
            resolved.append(1)
            return ["wh-001"] if len(resolved) == 1 else ["wh-001", "wh-002"]

        assert run_serialized(lambda: "done", keys) == "done"
        # First attempt resolves twice and conflicts, second attempt locks both
        assert len(resolved) == 4
