"""
Execution Package - transaction manager with retry policies and listeners
"""

from .manager import TransactionManager
from .retry import (
    DecisionType,
    DefaultRetryPredicate,
    RetryCode,
    RetryDecision,
    RetryInstruction,
    get_default_retry_predicate,
    set_default_retry_predicate,
)
from .option_supplier import (
    AlwaysOptionSupplier,
    ListOptionSupplier,
    MultipleListOptionSupplier,
    OccLtxOptionSupplier,
    OptionSupplier,
    StrategyOptionSupplier,
    of_always,
    of_multiple,
    of_occ_ltx,
    of_options,
    of_strategy,
)
from .settings import TmSetting
from .events import TmEventListener
from .counter import TmSimpleCounter
from .tx_logger import TxLogListener

__all__ = [
    'TransactionManager',
    'DecisionType',
    'DefaultRetryPredicate',
    'RetryCode',
    'RetryDecision',
    'RetryInstruction',
    'get_default_retry_predicate',
    'set_default_retry_predicate',
    'AlwaysOptionSupplier',
    'ListOptionSupplier',
    'MultipleListOptionSupplier',
    'OccLtxOptionSupplier',
    'OptionSupplier',
    'StrategyOptionSupplier',
    'of_always',
    'of_multiple',
    'of_occ_ltx',
    'of_options',
    'of_strategy',
    'TmSetting',
    'TmEventListener',
    'TmSimpleCounter',
    'TxLogListener',
]
