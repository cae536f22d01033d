"""
Transaction Logger - structured log of managed executions
"""

import time
from typing import Any, Dict, Optional

import structlog

from transaction.events import TransactionEventListener
from .events import TmEventListener

logger = structlog.get_logger(__name__)


class _TransactionLogListener(TransactionEventListener):
    """Logs statement, commit and rollback events of one transaction"""

    def __init__(self, log):
        self.log = log
        self._started: Dict[Any, float] = {}

    def _elapsed_ms(self, key) -> Optional[float]:
        start = self._started.pop(key, None)
        if start is None:
            return None
        return round((time.monotonic() - start) * 1000, 3)

    def transaction_id_obtained(self, transaction, transaction_id):
        self.log.info("tx_id_obtained", transaction_id=transaction_id)

    def execute_start(self, transaction, execute_id, sql, parameters):
        self._started[("execute", execute_id)] = time.monotonic()
        self.log.debug("tx_execute_start", execute_id=execute_id, sql=sql)

    def execute_end(self, transaction, execute_id, sql, parameters, result, error):
        elapsed_ms = self._elapsed_ms(("execute", execute_id))
        if error is None:
            self.log.debug("tx_execute_end", execute_id=execute_id, elapsed_ms=elapsed_ms)
        else:
            self.log.warning("tx_execute_error", execute_id=execute_id, sql=sql, elapsed_ms=elapsed_ms, error=str(error))

    def commit_start(self, transaction, commit_type):
        self._started["commit"] = time.monotonic()
        self.log.debug("tx_commit_start", commit_type=commit_type.value)

    def commit_end(self, transaction, commit_type, error):
        elapsed_ms = self._elapsed_ms("commit")
        if error is None:
            self.log.info("tx_commit_end", elapsed_ms=elapsed_ms)
        else:
            self.log.warning("tx_commit_error", elapsed_ms=elapsed_ms, error=str(error))

    def rollback_start(self, transaction):
        self._started["rollback"] = time.monotonic()
        self.log.debug("tx_rollback_start")

    def rollback_end(self, transaction, error):
        elapsed_ms = self._elapsed_ms("rollback")
        if error is None:
            self.log.info("tx_rollback_end", elapsed_ms=elapsed_ms)
        else:
            self.log.warning("tx_rollback_error", elapsed_ms=elapsed_ms, error=str(error))

    def close_transaction(self, transaction, error):
        if error is None:
            self.log.debug("tx_close")
        else:
            self.log.warning("tx_close_error", error=str(error))


class TxLogListener(TmEventListener):
    """
    Logs the lifecycle of managed executions through structlog

    Register it on a TransactionManager or a TmSetting. Every transaction the
    manager starts gets a per-transaction listener bound with the execution id,
    attempt and transaction number.
    """

    def __init__(self, log=None):
        self.log = log or logger
        self._execute_started: Dict[int, float] = {}

    def execute_start(self, tm, tm_execute_id, option):
        self._execute_started[tm_execute_id] = time.monotonic()
        self.log.info("tm_execute_start", tm_execute_id=tm_execute_id, option=str(option))

    def transaction_start(self, tm, tm_execute_id, attempt, option):
        self.log.debug("tm_transaction_start", tm_execute_id=tm_execute_id, attempt=attempt, option=str(option))

    def transaction_started(self, transaction):
        bound = self.log.bind(tm_execute_id=transaction.tm_execute_id, attempt=transaction.attempt,
                              tx_number=transaction.tx_number)
        transaction.add_listener(_TransactionLogListener(bound))

    def transaction_exception(self, transaction, error):
        self.log.warning("tm_transaction_exception", tm_execute_id=transaction.tm_execute_id,
                         attempt=transaction.attempt, error=str(error))

    def transaction_rollbacked(self, transaction, error):
        if error is not None:
            self.log.warning("tm_rollback_error", tm_execute_id=transaction.tm_execute_id, error=str(error))

    def transaction_retry(self, transaction, cause, next_decision):
        self.log.info("tm_transaction_retry", tm_execute_id=transaction.tm_execute_id,
                      attempt=transaction.attempt, next=str(next_decision))

    def transaction_retry_over(self, transaction, cause, next_decision):
        self.log.error("tm_transaction_retry_over", tm_execute_id=transaction.tm_execute_id,
                       attempt=transaction.attempt, next=str(next_decision))

    def transaction_not_retryable(self, transaction, cause, next_decision):
        self.log.error("tm_transaction_not_retryable", tm_execute_id=transaction.tm_execute_id,
                       attempt=transaction.attempt, error=str(cause))

    def _execute_elapsed_ms(self, tm_execute_id) -> Optional[float]:
        start = self._execute_started.pop(tm_execute_id, None)
        if start is None:
            return None
        return round((time.monotonic() - start) * 1000, 3)

    def execute_end_success(self, transaction, committed, result):
        self.log.info("tm_execute_end", tm_execute_id=transaction.tm_execute_id, committed=committed,
                      attempt=transaction.attempt,
                      elapsed_ms=self._execute_elapsed_ms(transaction.tm_execute_id))

    def execute_end_fail(self, tm, tm_execute_id, option, transaction, error):
        self.log.error("tm_execute_fail", tm_execute_id=tm_execute_id, option=str(option),
                       elapsed_ms=self._execute_elapsed_ms(tm_execute_id), error=str(error),
                       cause=str(error.__cause__) if error.__cause__ is not None else None)
