"""
Transaction Events - listener hooks fired by a Transaction
"""

from typing import Any, Optional


class TransactionEventListener:
    """
    Transaction event listener

    Every hook is a no-op; override the ones you need. Listeners are invoked
    synchronously, in registration order, on the thread using the transaction.
    """

    def transaction_id_obtained(self, transaction, transaction_id: str) -> None:
        pass

    def execute_start(self, transaction, execute_id: int, sql: str, parameters: Any) -> None:
        pass

    def execute_end(self, transaction, execute_id: int, sql: str, parameters: Any,
                    result: Any, error: Optional[BaseException]) -> None:
        pass

    def commit_start(self, transaction, commit_type) -> None:
        pass

    def commit_end(self, transaction, commit_type, error: Optional[BaseException]) -> None:
        pass

    def rollback_start(self, transaction) -> None:
        pass

    def rollback_end(self, transaction, error: Optional[BaseException]) -> None:
        pass

    def close_transaction(self, transaction, error: Optional[BaseException]) -> None:
        pass
