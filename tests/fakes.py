"""
In-memory SQL service used by the tests
"""

import concurrent.futures
import itertools
from typing import Any, Dict, List, Optional, Sequence, Tuple

from diagnostics.error_codes import SqlServiceCode
from diagnostics.exceptions import ServerError
from session.service import (
    CounterType,
    FutureResponse,
    RowStream,
    SqlService,
    TransactionHandle,
)


class CountingPending:
    """Pending operation that counts close() calls"""

    def __init__(self, value: Any = None, error: Optional[BaseException] = None,
                 never_completes: bool = False, close_error: Optional[BaseException] = None):
        self.future: concurrent.futures.Future = concurrent.futures.Future()
        if error is not None:
            self.future.set_exception(error)
        elif not never_completes:
            self.future.set_result(value)
        self.close_error = close_error
        self.close_count = 0
        self.close_timeouts: List[Optional[float]] = []

    def get(self, timeout: Optional[float] = None):
        return self.future.result(timeout)

    def close(self, timeout: Optional[float] = None) -> None:
        self.close_count += 1
        self.close_timeouts.append(timeout)
        if self.close_error is not None:
            raise self.close_error


class FakeTransactionHandle(TransactionHandle):

    def __init__(self, transaction_id: str, close_error: Optional[BaseException] = None):
        self._transaction_id = transaction_id
        self.close_error = close_error
        self.close_count = 0

    @property
    def transaction_id(self) -> str:
        return self._transaction_id

    def close(self, timeout: Optional[float] = None) -> None:
        self.close_count += 1
        if self.close_error is not None:
            raise self.close_error


class FakeRowStream(RowStream):

    def __init__(self, columns: Sequence[str], rows: Sequence[Sequence[Any]],
                 error_after: Optional[int] = None, error: Optional[ServerError] = None):
        self._columns = list(columns)
        self._rows = [tuple(row) for row in rows]
        self.error_after = error_after
        self.error = error
        self.close_count = 0

    @property
    def columns(self) -> List[str]:
        return self._columns

    def __iter__(self):
        for index, row in enumerate(self._rows):
            if self.error_after is not None and index >= self.error_after:
                raise self.error
            yield row

    def close(self, timeout: Optional[float] = None) -> None:
        self.close_count += 1


def server_error(code: SqlServiceCode = SqlServiceCode.OCC_READ_EXCEPTION, message: str = "") -> ServerError:
    return ServerError(code, message or code.name.lower())


class FakeSqlService(SqlService):
    """
    Scriptable SQL service

    Results are looked up by SQL text. Errors queued in ``commit_errors`` are
    raised by successive commits. ``hanging`` SQL never completes.
    """

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []
        self.handles: List[FakeTransactionHandle] = []
        self.statement_results: Dict[str, Any] = {}
        self.query_results: Dict[str, Any] = {}
        self.hanging: set = set()
        self.begin_error: Optional[BaseException] = None
        self.begin_hangs = False
        self.commit_errors: List[Optional[BaseException]] = []
        self.rollback_error: Optional[BaseException] = None
        self.status_error: Optional[BaseException] = None
        self.handle_close_error: Optional[BaseException] = None
        self.pending_close_count = 0
        self.session_close_count = 0
        self._ids = itertools.count(1)

    def _on_close(self, timeout: Optional[float]) -> None:
        self.pending_close_count += 1

    def _completed(self, value: Any) -> FutureResponse:
        return FutureResponse.completed(value, self._on_close)

    def _failed(self, error: BaseException) -> FutureResponse:
        return FutureResponse.failed(error, self._on_close)

    def _hanging(self) -> FutureResponse:
        return FutureResponse(concurrent.futures.Future(), self._on_close)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    # SqlService

    def begin_transaction(self, option):
        self.calls.append(("begin", option))
        if self.begin_hangs:
            return self._hanging()
        if self.begin_error is not None:
            return self._failed(self.begin_error)
        handle = FakeTransactionHandle(f"TX-{next(self._ids)}", self.handle_close_error)
        self.handles.append(handle)
        return self._completed(handle)

    def execute_statement(self, tx, sql, parameters=None):
        self.calls.append(("execute_statement", sql))
        if sql in self.hanging:
            return self._hanging()
        result = self.statement_results.get(sql, {CounterType.INSERTED_ROWS: 1})
        if isinstance(result, BaseException):
            return self._failed(result)
        return self._completed(result)

    def execute_query(self, tx, sql, parameters=None):
        self.calls.append(("execute_query", sql))
        if sql in self.hanging:
            return self._hanging()
        result = self.query_results.get(sql, FakeRowStream(["id"], []))
        if isinstance(result, BaseException):
            return self._failed(result)
        return self._completed(result)

    def commit(self, tx, commit_type):
        self.calls.append(("commit", commit_type))
        if self.commit_errors:
            error = self.commit_errors.pop(0)
            if error is not None:
                return self._failed(error)
        return self._completed(None)

    def rollback(self, tx):
        self.calls.append(("rollback", tx.transaction_id))
        if self.rollback_error is not None:
            return self._failed(self.rollback_error)
        return self._completed(None)

    def get_transaction_status(self, tx):
        self.calls.append(("status", tx.transaction_id))
        return self._completed(self.status_error)

    def explain(self, sql, parameters=None):
        self.calls.append(("explain", sql))
        return self._completed({"sql": sql, "columns": []})

    def close_session(self):
        self.calls.append(("close_session", None))
        self.session_close_count += 1
        return self._completed(None)
