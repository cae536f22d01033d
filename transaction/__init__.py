"""
Transaction Package - transaction attempts, their results and events
"""

from .options import CommitType, TransactionOption, TransactionType
from .events import TransactionEventListener
from .results import QueryResult, ResultCount, ResultStatus, SqlResult, StatementResult
from .status import TransactionStatus
from .transaction import Transaction, TransactionState

__all__ = [
    'CommitType',
    'TransactionOption',
    'TransactionType',
    'TransactionEventListener',
    'QueryResult',
    'ResultCount',
    'ResultStatus',
    'SqlResult',
    'StatementResult',
    'TransactionStatus',
    'Transaction',
    'TransactionState',
]
