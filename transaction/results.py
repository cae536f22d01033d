"""
SQL Results - handles over the pending outcome of one statement or query

A result holds only a weak reference to its transaction; the transaction owns
the result through its ResourceTracker.
"""

import weakref
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import structlog

from diagnostics.error_codes import ErrorCode
from diagnostics.exceptions import ServerError, already_closed, from_server_error
from infrastructure.async_resolver import close_pending, resolve
from infrastructure.timeouts import SessionOptions, TimeoutKey, TimeoutPolicy
from session.service import CounterType, FutureResponse, RowStream

logger = structlog.get_logger(__name__)

RowMapping = Callable[[Dict[str, Any]], Any]


class ResultStatus(Enum):
    """Result handle states"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLOSED = "closed"


class ResultCount:
    """
    Row counters of an executed statement

    ``total`` is None when the server has not reported any counters, which
    means the count is not available (it is not zero).
    """

    def __init__(self, counters: Optional[Mapping[CounterType, int]]):
        self._counters = dict(counters) if counters is not None else None

    def is_available(self) -> bool:
        return self._counters is not None

    def get(self, counter_type: CounterType) -> int:
        if self._counters is None:
            return 0
        return self._counters.get(counter_type, 0)

    @property
    def inserted_count(self) -> int:
        return self.get(CounterType.INSERTED_ROWS)

    @property
    def updated_count(self) -> int:
        return self.get(CounterType.UPDATED_ROWS)

    @property
    def merged_count(self) -> int:
        return self.get(CounterType.MERGED_ROWS)

    @property
    def deleted_count(self) -> int:
        return self.get(CounterType.DELETED_ROWS)

    @property
    def total(self) -> Optional[int]:
        if self._counters is None:
            return None
        return sum(self._counters.values())

    def __repr__(self) -> str:
        if self._counters is None:
            return "ResultCount(not available)"
        counters = {key.value: value for key, value in self._counters.items()}
        return f"ResultCount({counters})"


class SqlResult:
    """Common lifecycle of statement and query results"""

    CONNECT_KEY = TimeoutKey.RESULT_CONNECT
    CLOSE_KEY = TimeoutKey.RESULT_CLOSE
    CONNECT_TIMEOUT_CODE = ErrorCode.RESULT_CONNECT_TIMEOUT
    CLOSE_TIMEOUT_CODE = ErrorCode.RESULT_CLOSE_TIMEOUT

    def __init__(self,
                 transaction,
                 execute_id: int,
                 pending: FutureResponse,
                 sql: str,
                 parameters: Any,
                 options: SessionOptions):
        self._owner = weakref.ref(transaction)
        self.execute_id = execute_id
        self.sql = sql
        self.parameters = parameters
        self.connect_timeout = TimeoutPolicy(options, self.CONNECT_KEY)
        self.close_timeout = TimeoutPolicy(options, self.CLOSE_KEY)
        self._pending = pending
        self._status = ResultStatus.PENDING
        self._resolved = False
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._ended = False

    @property
    def status(self) -> ResultStatus:
        return self._status

    @property
    def transaction(self):
        """Owning transaction, or None once it has been garbage-collected"""
        return self._owner()

    def set_connect_timeout(self, seconds: Optional[float]) -> None:
        self.connect_timeout.set(seconds)

    def set_close_timeout(self, seconds: Optional[float]) -> None:
        self.close_timeout.set(seconds)

    def _do_resolve(self) -> Any:
        try:
            value = resolve(self._pending, self.connect_timeout,
                            self.CONNECT_TIMEOUT_CODE, self.CLOSE_TIMEOUT_CODE)
        except Exception as e:
            self._resolved = True
            self._error = e
            if self._status != ResultStatus.CLOSED:
                self._status = ResultStatus.FAILED
            self._notify_end(e)
            raise
        self._resolved = True
        self._value = value
        if self._status != ResultStatus.CLOSED:
            self._status = ResultStatus.SUCCEEDED
        return value

    def _get_value(self) -> Any:
        if self._resolved:
            if self._error is not None:
                raise self._error
            return self._value
        if self._status == ResultStatus.CLOSED:
            raise already_closed(ErrorCode.RESULT_ALREADY_CLOSED)
        return self._do_resolve()

    def _notify_end(self, error: Optional[BaseException]) -> None:
        if self._ended:
            return
        self._ended = True
        owner = self._owner()
        if owner is not None:
            owner._notify_execute_end(self, error)

    def _close_low(self) -> None:
        if not self._resolved:
            close_pending(self._pending, self.close_timeout, self.CLOSE_TIMEOUT_CODE)

    def close(self) -> None:
        """Release the result; the owning transaction stops tracking it"""
        if self._status == ResultStatus.CLOSED:
            return
        error: Optional[BaseException] = None
        try:
            self._close_low()
        except Exception as e:
            error = e
            raise
        finally:
            self._status = ResultStatus.CLOSED
            self._notify_end(error)
            owner = self._owner()
            if owner is not None:
                owner._remove_child(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class StatementResult(SqlResult):
    """
    Result of an update/DDL statement

    Closing a result that is still pending waits for it when
    ``check_result_on_close`` is set, so server errors of statements that were
    never looked at still surface (for example at commit).
    """

    def __init__(self, *args, check_result_on_close: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.check_result_on_close = check_result_on_close

    def get_result_count(self) -> ResultCount:
        counters = self._get_value()
        return ResultCount(counters)

    def get_update_count(self) -> Optional[int]:
        """Total row count, or None when the count is not available"""
        return self.get_result_count().total

    def _do_resolve(self) -> Any:
        value = super()._do_resolve()
        self._notify_end(None)
        return value

    def _close_low(self) -> None:
        if not self._resolved and self.check_result_on_close:
            self._do_resolve()
            return
        super()._close_low()


class QueryResult(SqlResult):
    """Rows of a query; iterate it or call fetch_all()"""

    CONNECT_KEY = TimeoutKey.RS_CONNECT
    CLOSE_KEY = TimeoutKey.RS_CLOSE
    CONNECT_TIMEOUT_CODE = ErrorCode.RS_CONNECT_TIMEOUT
    CLOSE_TIMEOUT_CODE = ErrorCode.RS_CLOSE_TIMEOUT

    def __init__(self, *args, mapping: Optional[RowMapping] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.mapping = mapping
        self._read_count = 0
        self._iterating = False

    def _stream(self) -> RowStream:
        return self._get_value()

    def get_columns(self) -> List[str]:
        return list(self._stream().columns)

    @property
    def read_count(self) -> int:
        return self._read_count

    def _convert_row(self, columns: List[str], row) -> Any:
        record = dict(zip(columns, row))
        if self.mapping is not None:
            return self.mapping(record)
        return record

    def __iter__(self) -> Iterator[Any]:
        stream = self._stream()
        if self._iterating:
            raise RuntimeError("query result is already being read")
        self._iterating = True
        columns = list(stream.columns)
        try:
            for row in stream:
                if self._status == ResultStatus.CLOSED:
                    raise already_closed(ErrorCode.RESULT_ALREADY_CLOSED)
                self._read_count += 1
                yield self._convert_row(columns, row)
        except ServerError as e:
            error = from_server_error(e)
            self._status = ResultStatus.FAILED
            self._notify_end(error)
            raise error
        finally:
            self._iterating = False
        self._notify_end(None)

    def fetch_all(self) -> List[Any]:
        return list(self)

    def find_record(self) -> Optional[Any]:
        """First row, or None for an empty result"""
        for record in self:
            return record
        return None

    def _close_low(self) -> None:
        if not self._resolved:
            super()._close_low()
            return
        if self._error is None:
            close_pending(self._value, self.close_timeout, self.CLOSE_TIMEOUT_CODE)
