"""
Session - owner of the SQL service connection and the transactions on it
"""

import threading
from typing import Any, Dict, Optional

import structlog

from diagnostics.error_codes import ErrorCode
from diagnostics.exceptions import already_closed
from infrastructure.async_resolver import resolve
from infrastructure.resource_tracker import ResourceTracker, close_resources
from infrastructure.timeouts import SessionOptions, TimeoutKey, TimeoutPolicy
from .service import SqlService

logger = structlog.get_logger(__name__)


class Session:
    """
    Session over one SQL service

    Transactions created here are tracked and closed with the session. A
    session may be shared by several threads, each with its own transactions.
    """

    def __init__(self, service: SqlService, options: Optional[SessionOptions] = None):
        self.service = service
        self.options = options or SessionOptions()
        self.close_timeout = TimeoutPolicy(self.options, TimeoutKey.SESSION_CLOSE)
        self.explain_timeout = TimeoutPolicy(self.options, TimeoutKey.EXPLAIN_CONNECT)
        self._tracker = ResourceTracker()
        self._lock = threading.Lock()
        self._closed = False

        logger.info("session_created", label=self.options.label)

    def is_closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise already_closed(ErrorCode.SESSION_ALREADY_CLOSED)

    def create_transaction(self, option, attempt: int = 1):
        """
        Begin a transaction (the begin request resolves on first use)

        Args:
            option: TransactionOption
            attempt: Attempt number within a managed execution

        Returns:
            Transaction owned by this session
        """
        from transaction.transaction import Transaction

        with self._lock:
            self._check_open()
            begin_pending = self.service.begin_transaction(option)
            transaction = Transaction(self, option, begin_pending, attempt=attempt)
            self._tracker.add(transaction)
        return transaction

    def create_transaction_manager(self, setting=None):
        """Create a TransactionManager bound to this session"""
        from execution.manager import TransactionManager

        self._check_open()
        return TransactionManager(self, setting)

    def explain(self, sql: str, parameters: Optional[Dict[str, Any]] = None) -> Any:
        """Statement metadata as reported by the service"""
        self._check_open()
        pending = self.service.explain(sql, parameters)
        return resolve(pending, self.explain_timeout,
                       ErrorCode.EXPLAIN_CONNECT_TIMEOUT, ErrorCode.EXPLAIN_CLOSE_TIMEOUT)

    def transaction_count(self) -> int:
        return len(self._tracker)

    def _remove_child(self, child: Any) -> None:
        self._tracker.remove(child)

    def _close_own(self) -> None:
        pending = self.service.close_session()
        resolve(pending, self.close_timeout, ErrorCode.SESSION_CLOSE_TIMEOUT, ErrorCode.SESSION_CLOSE_TIMEOUT)

    def close(self) -> None:
        """Close open transactions, then the service session"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.info("session_close", open_transactions=len(self._tracker))
        close_resources(self._tracker, self._close_own, ErrorCode.SESSION_CHILD_CLOSE_ERROR)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
