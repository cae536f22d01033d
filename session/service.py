"""
SQL Service Boundary - the asynchronous service the engine drives

Implementations talk to the database; the engine only sees closeable futures.
"""

import concurrent.futures
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")


class CounterType(Enum):
    """Kinds of row counts reported for a statement"""
    INSERTED_ROWS = "inserted_rows"
    UPDATED_ROWS = "updated_rows"
    MERGED_ROWS = "merged_rows"
    DELETED_ROWS = "deleted_rows"


class FutureResponse(Generic[T]):
    """
    Closeable future returned by every service call

    Wraps a ``concurrent.futures.Future``. close() releases the server-side
    resources of the request through ``on_close`` and is idempotent.
    """

    def __init__(self,
                 future: "concurrent.futures.Future[T]",
                 on_close: Optional[Callable[[Optional[float]], None]] = None):
        self._future = future
        self._on_close = on_close
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def completed(cls, value: T, on_close=None) -> "FutureResponse[T]":
        future: concurrent.futures.Future = concurrent.futures.Future()
        future.set_result(value)
        return cls(future, on_close)

    @classmethod
    def failed(cls, error: BaseException, on_close=None) -> "FutureResponse[T]":
        future: concurrent.futures.Future = concurrent.futures.Future()
        future.set_exception(error)
        return cls(future, on_close)

    def get(self, timeout: Optional[float] = None) -> T:
        return self._future.result(timeout)

    def is_done(self) -> bool:
        return self._future.done()

    def is_closed(self) -> bool:
        return self._closed

    def close(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if not self._future.done():
            self._future.cancel()
        if self._on_close is not None:
            self._on_close(timeout)


class TransactionHandle(ABC):
    """Server-side transaction returned by begin_transaction"""

    @property
    @abstractmethod
    def transaction_id(self) -> str:
        pass

    @abstractmethod
    def close(self, timeout: Optional[float] = None) -> None:
        """Release the server-side transaction"""
        pass


class RowStream(ABC):
    """Rows of a query, read sequentially"""

    @property
    @abstractmethod
    def columns(self) -> List[str]:
        pass

    @abstractmethod
    def __iter__(self) -> Iterator[Sequence[Any]]:
        pass

    @abstractmethod
    def close(self, timeout: Optional[float] = None) -> None:
        pass


class SqlService(ABC):
    """
    Asynchronous SQL service of one session

    Every method returns a FutureResponse; failures reported by the server are
    raised from ``get()`` as ``diagnostics.ServerError``.
    """

    @abstractmethod
    def begin_transaction(self, option: Any) -> FutureResponse[TransactionHandle]:
        pass

    @abstractmethod
    def execute_statement(self, tx: TransactionHandle, sql: str,
                          parameters: Optional[Dict[str, Any]] = None
                          ) -> FutureResponse[Optional[Dict[CounterType, int]]]:
        """Result is the row counters, or None when the server did not report them"""
        pass

    @abstractmethod
    def execute_query(self, tx: TransactionHandle, sql: str,
                      parameters: Optional[Dict[str, Any]] = None) -> FutureResponse[RowStream]:
        pass

    @abstractmethod
    def commit(self, tx: TransactionHandle, commit_type: Any) -> FutureResponse[None]:
        pass

    @abstractmethod
    def rollback(self, tx: TransactionHandle) -> FutureResponse[None]:
        pass

    @abstractmethod
    def get_transaction_status(self, tx: TransactionHandle) -> FutureResponse[Optional[Exception]]:
        """Result is None for a normal transaction, otherwise the server error it ended with"""
        pass

    @abstractmethod
    def explain(self, sql: str, parameters: Optional[Dict[str, Any]] = None) -> FutureResponse[Any]:
        pass

    @abstractmethod
    def close_session(self) -> FutureResponse[None]:
        pass
