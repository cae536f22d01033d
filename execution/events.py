"""
Transaction Manager Events - listener hooks fired by a managed execution
"""

from typing import Any, Optional


class TmEventListener:
    """
    Transaction manager event listener

    Every hook is a no-op; override the ones you need. Hooks run on the
    caller's thread in registration order. An exception raised by a hook
    propagates (with the error being handled attached as suppressed).
    """

    def execute_start(self, tm, tm_execute_id: int, option) -> None:
        pass

    def transaction_start(self, tm, tm_execute_id: int, attempt: int, option) -> None:
        pass

    def transaction_started(self, transaction) -> None:
        pass

    def transaction_exception(self, transaction, error: BaseException) -> None:
        pass

    def transaction_rollbacked(self, transaction, error: Optional[BaseException]) -> None:
        """Rollback done after an abort; ``error`` is the rollback failure, if any"""
        pass

    def transaction_retry(self, transaction, cause: BaseException, next_decision) -> None:
        pass

    def transaction_retry_over(self, transaction, cause: BaseException, next_decision) -> None:
        pass

    def transaction_not_retryable(self, transaction, cause: BaseException, next_decision) -> None:
        pass

    def execute_end_success(self, transaction, committed: bool, result: Any) -> None:
        pass

    def execute_end_fail(self, tm, tm_execute_id: int, option, transaction, error: BaseException) -> None:
        pass
