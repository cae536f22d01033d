"""
Session Package - SQL service boundary and the session that owns transactions
"""

from .service import CounterType, FutureResponse, RowStream, SqlService, TransactionHandle
from .session import Session

__all__ = [
    'CounterType',
    'FutureResponse',
    'RowStream',
    'SqlService',
    'TransactionHandle',
    'Session',
]
