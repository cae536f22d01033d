"""
Transaction Manager Counter - thread-safe counts of managed executions
"""

import threading
from typing import Any, Dict

from .events import TmEventListener


class TmSimpleCounter(TmEventListener):
    """Counts what the managers it is registered with have done"""

    FIELDS = (
        "execute_count",
        "transaction_count",
        "exception_count",
        "retry_count",
        "retry_over_count",
        "not_retryable_count",
        "commit_count",
        "rollback_count",
        "success_count",
        "fail_count",
    )

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in self.FIELDS}

    def _increment(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def __getattr__(self, name: str) -> int:
        if name in TmSimpleCounter.FIELDS:
            with self._lock:
                return self._counts[name]
        raise AttributeError(name)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        with self._lock:
            for name in self._counts:
                self._counts[name] = 0

    # events

    def execute_start(self, tm, tm_execute_id, option) -> None:
        self._increment("execute_count")

    def transaction_start(self, tm, tm_execute_id, attempt, option) -> None:
        self._increment("transaction_count")

    def transaction_exception(self, transaction, error) -> None:
        self._increment("exception_count")

    def transaction_rollbacked(self, transaction, error) -> None:
        if error is None:
            self._increment("rollback_count")

    def transaction_retry(self, transaction, cause, next_decision) -> None:
        self._increment("retry_count")

    def transaction_retry_over(self, transaction, cause, next_decision) -> None:
        self._increment("retry_over_count")

    def transaction_not_retryable(self, transaction, cause, next_decision) -> None:
        self._increment("not_retryable_count")

    def execute_end_success(self, transaction, committed: bool, result: Any) -> None:
        if committed:
            self._increment("commit_count")
        else:
            self._increment("rollback_count")
        self._increment("success_count")

    def execute_end_fail(self, tm, tm_execute_id, option, transaction, error) -> None:
        self._increment("fail_count")

    def __repr__(self) -> str:
        return f"TmSimpleCounter({self.snapshot()})"
