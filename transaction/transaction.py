"""
Transaction - one attempt of a unit of work against the SQL service
"""

import itertools
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from diagnostics.error_codes import ErrorCode
from diagnostics.exceptions import add_suppressed, already_closed, already_finished
from infrastructure.async_resolver import close_pending, resolve
from infrastructure.resource_tracker import ResourceTracker, close_resources
from infrastructure.timeouts import TimeoutKey, TimeoutPolicy
from session.service import FutureResponse, TransactionHandle
from .events import TransactionEventListener
from .options import CommitType, TransactionOption
from .results import QueryResult, RowMapping, SqlResult, StatementResult
from .status import TransactionStatus

logger = structlog.get_logger(__name__)

_tx_number_counter = itertools.count(1)
_tx_number_lock = threading.Lock()


def _next_tx_number() -> int:
    with _tx_number_lock:
        return next(_tx_number_counter)


class TransactionState(Enum):
    """Transaction lifecycle states"""
    CREATED = "created"
    STARTED = "started"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    CLOSED = "closed"


class Transaction:
    """
    One transaction attempt

    The begin request is issued when the transaction is created and resolved
    on first use. Statement and query results are children of the transaction
    and are closed before it commits, rolls back or closes.

    A transaction is not thread-safe; confine it to one thread at a time.
    """

    def __init__(self,
                 session,
                 option: TransactionOption,
                 begin_pending: FutureResponse[TransactionHandle],
                 attempt: int = 1):
        self.session = session
        self.option = option
        self.attempt = attempt
        self.tx_number = _next_tx_number()
        self.tm_execute_id: Optional[int] = None
        self.commit_type: Optional[CommitType] = None
        self.rollback_on_close = True

        options = session.options
        self.begin_timeout = TimeoutPolicy(options, TimeoutKey.TX_BEGIN)
        self.commit_timeout = TimeoutPolicy(options, TimeoutKey.TX_COMMIT)
        self.rollback_timeout = TimeoutPolicy(options, TimeoutKey.TX_ROLLBACK)
        self.close_timeout = TimeoutPolicy(options, TimeoutKey.TX_CLOSE)
        self.status_timeout = TimeoutPolicy(options, TimeoutKey.TX_STATUS)

        self._begin_pending = begin_pending
        self._begin_error: Optional[BaseException] = None
        self._handle: Optional[TransactionHandle] = None
        self._state = TransactionState.CREATED
        self._closing = False
        self._tracker = ResourceTracker()
        self._listeners: List[TransactionEventListener] = []
        self._execute_ids = itertools.count(1)

    # properties

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def transaction_id(self) -> Optional[str]:
        """Server transaction id; None until the begin request has completed"""
        return self._handle.transaction_id if self._handle is not None else None

    def is_committed(self) -> bool:
        return self._state == TransactionState.COMMITTED

    def is_rolled_back(self) -> bool:
        return self._state == TransactionState.ROLLED_BACK

    def is_closed(self) -> bool:
        return self._state == TransactionState.CLOSED

    def is_available(self) -> bool:
        """Not yet finished: commit or rollback may still be issued"""
        return self._state in (TransactionState.CREATED, TransactionState.STARTED) and not self._closing

    def child_count(self) -> int:
        return len(self._tracker)

    # settings

    def set_begin_timeout(self, seconds: Optional[float]) -> None:
        self.begin_timeout.set(seconds)

    def set_commit_timeout(self, seconds: Optional[float]) -> None:
        self.commit_timeout.set(seconds)

    def set_rollback_timeout(self, seconds: Optional[float]) -> None:
        self.rollback_timeout.set(seconds)

    def set_close_timeout(self, seconds: Optional[float]) -> None:
        self.close_timeout.set(seconds)

    def add_listener(self, listener: TransactionEventListener) -> "Transaction":
        self._listeners.append(listener)
        return self

    def _event(self, occurred: Optional[BaseException], action: Callable[[TransactionEventListener], None]) -> None:
        for listener in list(self._listeners):
            try:
                action(listener)
            except Exception as e:
                if occurred is not None:
                    add_suppressed(e, occurred)
                raise

    # begin

    def get_or_begin_transaction_id(self) -> str:
        return self.get_low_transaction().transaction_id

    def get_low_transaction(self) -> TransactionHandle:
        """
        Resolve the begin request (once)

        Returns:
            Server-side transaction handle

        Raises:
            TxPilotError: TX_ALREADY_CLOSED, TX_BEGIN_TIMEOUT or the server error
        """
        if self._state == TransactionState.CLOSED:
            raise already_closed(ErrorCode.TX_ALREADY_CLOSED)
        if self._handle is not None:
            return self._handle
        if self._begin_error is not None:
            raise self._begin_error

        try:
            handle = resolve(self._begin_pending, self.begin_timeout,
                             ErrorCode.TX_BEGIN_TIMEOUT, ErrorCode.TX_CLOSE_TIMEOUT)
        except Exception as e:
            self._begin_error = e
            logger.warning("tx_begin_failed", tx_number=self.tx_number, attempt=self.attempt, error=str(e))
            raise
        self._handle = handle
        if self._state == TransactionState.CREATED:
            self._state = TransactionState.STARTED

        transaction_id = handle.transaction_id
        logger.debug("tx_begin", tx_number=self.tx_number, transaction_id=transaction_id, option=str(self.option))
        self._event(None, lambda listener: listener.transaction_id_obtained(self, transaction_id))
        return handle

    # execute

    def _check_executable(self) -> None:
        if self._state == TransactionState.CLOSED or self._closing:
            raise already_closed(ErrorCode.TX_ALREADY_CLOSED)
        if self._state == TransactionState.COMMITTED:
            raise already_finished(ErrorCode.TX_ALREADY_COMMITTED)
        if self._state == TransactionState.ROLLED_BACK:
            raise already_finished(ErrorCode.TX_ALREADY_ROLLBACKED)

    def _start_execute(self, sql: str, parameters: Any, issue: Callable[[TransactionHandle], FutureResponse]):
        self._check_executable()
        handle = self.get_low_transaction()
        execute_id = next(self._execute_ids)
        self._event(None, lambda listener: listener.execute_start(self, execute_id, sql, parameters))
        try:
            pending = issue(handle)
        except Exception as e:
            self._event(e, lambda listener: listener.execute_end(self, execute_id, sql, parameters, None, e))
            raise
        return execute_id, pending

    def execute_statement(self, sql: str, parameters: Optional[Dict[str, Any]] = None) -> StatementResult:
        """
        Issue an update/DDL statement

        Args:
            sql: SQL text
            parameters: Bound parameters

        Returns:
            Pending statement result (owned by this transaction)

        Raises:
            TxPilotError: ALREADY_CLOSED/ALREADY_FINISHED, or a begin failure
        """
        service = self.session.service
        execute_id, pending = self._start_execute(
            sql, parameters, lambda handle: service.execute_statement(handle, sql, parameters))
        result = StatementResult(self, execute_id, pending, sql, parameters, self.session.options)
        self._tracker.add(result)
        return result

    def execute_query(self,
                      sql: str,
                      parameters: Optional[Dict[str, Any]] = None,
                      mapping: Optional[RowMapping] = None) -> QueryResult:
        """Issue a query; rows are read through the returned result"""
        service = self.session.service
        execute_id, pending = self._start_execute(
            sql, parameters, lambda handle: service.execute_query(handle, sql, parameters))
        result = QueryResult(self, execute_id, pending, sql, parameters, self.session.options, mapping=mapping)
        self._tracker.add(result)
        return result

    def execute_ddl(self, sql: str) -> None:
        with self.execute_statement(sql) as result:
            result.get_result_count()

    def execute_and_get_count(self, sql: str, parameters: Optional[Dict[str, Any]] = None) -> Optional[int]:
        """Row count of the statement, or None when the count is not available"""
        with self.execute_statement(sql, parameters) as result:
            return result.get_update_count()

    def execute_and_get_list(self,
                             sql: str,
                             parameters: Optional[Dict[str, Any]] = None,
                             mapping: Optional[RowMapping] = None) -> List[Any]:
        with self.execute_query(sql, parameters, mapping) as result:
            return result.fetch_all()

    def execute_and_find_record(self,
                                sql: str,
                                parameters: Optional[Dict[str, Any]] = None,
                                mapping: Optional[RowMapping] = None) -> Optional[Any]:
        with self.execute_query(sql, parameters, mapping) as result:
            return result.find_record()

    def _notify_execute_end(self, result: SqlResult, error: Optional[BaseException]) -> None:
        self._event(error, lambda listener: listener.execute_end(
            self, result.execute_id, result.sql, result.parameters, result, error))

    def _remove_child(self, child: Any) -> None:
        self._tracker.remove(child)

    # commit / rollback

    def commit(self, commit_type: Optional[CommitType] = None) -> None:
        """
        Commit the transaction

        Open results are closed first. A second commit (or a commit after
        rollback) fails locally without contacting the server.

        Raises:
            TxPilotError: ALREADY_FINISHED, TX_COMMIT_TIMEOUT, the server's abort
                error, or an aggregated child close error
        """
        self._check_executable()
        if commit_type is None:
            commit_type = self.commit_type or CommitType.DEFAULT

        self._event(None, lambda listener: listener.commit_start(self, commit_type))
        try:
            handle = self.get_low_transaction()
            close_resources(self._tracker, None, ErrorCode.TX_COMMIT_CHILD_CLOSE_ERROR)
            pending = self.session.service.commit(handle, commit_type)
            resolve(pending, self.commit_timeout, ErrorCode.TX_COMMIT_TIMEOUT, ErrorCode.TX_COMMIT_CLOSE_TIMEOUT)
        except Exception as e:
            logger.debug("tx_commit_failed", tx_number=self.tx_number, transaction_id=self.transaction_id, error=str(e))
            self._event(e, lambda listener: listener.commit_end(self, commit_type, e))
            raise
        self._state = TransactionState.COMMITTED
        self._event(None, lambda listener: listener.commit_end(self, commit_type, None))

    def rollback(self) -> None:
        """
        Roll the transaction back

        Allowed after a failed commit. Fails locally after a successful commit,
        a previous rollback, or close.
        """
        self._check_executable()
        self._rollback_low()

    def _rollback_low(self) -> None:
        self._event(None, lambda listener: listener.rollback_start(self))
        try:
            handle = self.get_low_transaction()
            close_resources(self._tracker, None, ErrorCode.TX_ROLLBACK_CHILD_CLOSE_ERROR)
            pending = self.session.service.rollback(handle)
            resolve(pending, self.rollback_timeout, ErrorCode.TX_ROLLBACK_TIMEOUT, ErrorCode.TX_ROLLBACK_CLOSE_TIMEOUT)
        except Exception as e:
            logger.debug("tx_rollback_failed", tx_number=self.tx_number, transaction_id=self.transaction_id, error=str(e))
            self._event(e, lambda listener: listener.rollback_end(self, e))
            raise
        self._state = TransactionState.ROLLED_BACK
        self._event(None, lambda listener: listener.rollback_end(self, None))

    # status

    def get_transaction_status(self) -> TransactionStatus:
        """Ask the server how the transaction ended up"""
        if self._state == TransactionState.CLOSED:
            raise already_closed(ErrorCode.TX_ALREADY_CLOSED)
        handle = self.get_low_transaction()
        pending = self.session.service.get_transaction_status(handle)
        server_error = resolve(pending, self.status_timeout,
                               ErrorCode.TX_STATUS_CONNECT_TIMEOUT, ErrorCode.TX_STATUS_CLOSE_TIMEOUT)
        return TransactionStatus.of(server_error)

    # close

    def _close_own(self) -> None:
        errors: List[Exception] = []
        if self.rollback_on_close and self._handle is not None and self._state == TransactionState.STARTED:
            try:
                self._rollback_low()
            except Exception as e:
                errors.append(e)

        try:
            if self._handle is not None:
                close_pending(self._handle, self.close_timeout, ErrorCode.TX_CLOSE_TIMEOUT)
            elif self._begin_error is None:
                close_pending(self._begin_pending, self.close_timeout, ErrorCode.TX_CLOSE_TIMEOUT)
        except Exception as e:
            errors.append(e)

        if errors:
            primary = errors[0]
            for other in errors[1:]:
                add_suppressed(primary, other)
            raise primary

    def close(self) -> None:
        """
        Close remaining results, roll back if still open, then release the
        server-side transaction

        The transaction is CLOSED afterwards even when closing failed.
        """
        if self._state == TransactionState.CLOSED or self._closing:
            return
        self._closing = True
        error: Optional[BaseException] = None
        try:
            close_resources(self._tracker, self._close_own, ErrorCode.TX_CHILD_CLOSE_ERROR)
        except Exception as e:
            error = e
            logger.debug("tx_close_failed", tx_number=self.tx_number, error=str(e))
            raise
        finally:
            self._state = TransactionState.CLOSED
            self._closing = False
            self.session._remove_child(self)
            self._event(error, lambda listener: listener.close_transaction(self, error))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __str__(self) -> str:
        return (f"Transaction(option={self.option}, transactionId={self.transaction_id}, "
                f"attempt={self.attempt}, txNumber={self.tx_number})")
