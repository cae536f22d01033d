"""
Retry Classification - decides whether a failed attempt may be retried
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from diagnostics.classifier import ExceptionUtil, get_exception_util
from transaction.options import TransactionOption, TransactionType

logger = structlog.get_logger(__name__)


class RetryCode(Enum):
    """Outcome of the retry predicate"""
    RETRYABLE = "retryable"
    RETRYABLE_LTX = "retryable_ltx"
    NOT_RETRYABLE = "not_retryable"


@dataclass(frozen=True)
class RetryInstruction:
    """Retry predicate result with the reason it was reached"""
    code: RetryCode
    reason: str = ""

    @classmethod
    def of_retryable(cls, reason: str = "") -> "RetryInstruction":
        return cls(RetryCode.RETRYABLE, reason)

    @classmethod
    def of_retryable_ltx(cls, reason: str = "") -> "RetryInstruction":
        return cls(RetryCode.RETRYABLE_LTX, reason)

    @classmethod
    def of_not_retryable(cls, reason: str = "") -> "RetryInstruction":
        return cls(RetryCode.NOT_RETRYABLE, reason)

    def is_retryable(self) -> bool:
        return self.code != RetryCode.NOT_RETRYABLE

    def __str__(self) -> str:
        return f"{self.code.name}({self.reason})"


class DecisionType(Enum):
    EXECUTE = "execute"
    RETRY_OVER = "retry_over"
    NOT_RETRYABLE = "not_retryable"


@dataclass(frozen=True)
class RetryDecision:
    """
    What the manager does next

    EXECUTE carries the option of the next attempt. RETRY_OVER means the cause
    was retryable but the attempt budget is spent; NOT_RETRYABLE means it was not.
    RETRY_OVER may also carry the option that would have run next.
    """
    type: DecisionType
    option: Optional[TransactionOption] = None
    instruction: Optional[RetryInstruction] = None

    @classmethod
    def execute(cls, option: TransactionOption, instruction: Optional[RetryInstruction] = None) -> "RetryDecision":
        if option is None:
            raise ValueError("option is None")
        return cls(DecisionType.EXECUTE, option, instruction)

    @classmethod
    def retry_over(cls, instruction: Optional[RetryInstruction] = None,
                   option: Optional[TransactionOption] = None) -> "RetryDecision":
        return cls(DecisionType.RETRY_OVER, option, instruction)

    @classmethod
    def not_retryable(cls, instruction: Optional[RetryInstruction] = None) -> "RetryDecision":
        return cls(DecisionType.NOT_RETRYABLE, None, instruction)

    def is_execute(self) -> bool:
        return self.type == DecisionType.EXECUTE

    def is_retry_over(self) -> bool:
        return self.type == DecisionType.RETRY_OVER

    def is_not_retryable(self) -> bool:
        return self.type == DecisionType.NOT_RETRYABLE

    def with_option(self, option: TransactionOption) -> "RetryDecision":
        return RetryDecision(self.type, option, self.instruction)

    def __str__(self) -> str:
        if self.option is not None:
            return f"{self.type.name}({self.option}, {self.instruction})"
        return f"{self.type.name}({self.instruction})"


class DefaultRetryPredicate:
    """
    Default retry predicate

    Only serialization failures reported by the server are retryable. An OCC
    conflicting with a write-preserved area is retried as LTX. When the server
    says the transaction is already inactive, the transaction status tells the
    real cause.
    """

    def __init__(self, exception_util: Optional[ExceptionUtil] = None):
        self._exception_util = exception_util

    @property
    def exception_util(self) -> ExceptionUtil:
        return self._exception_util or get_exception_util()

    def __call__(self, transaction, exc: BaseException) -> RetryInstruction:
        option = transaction.option
        if option.type == TransactionType.OCC:
            return self.test_occ(transaction, exc)
        if option.type == TransactionType.LTX:
            return self.test_ltx(transaction, exc)
        if option.type == TransactionType.RTX:
            return self.test_rtx(transaction, exc)
        return self.test_common("OTHER", transaction, exc)

    def test_occ(self, transaction, exc: BaseException) -> RetryInstruction:
        if self.exception_util.is_conflict_on_write_preserve(exc):
            return RetryInstruction.of_retryable_ltx(f"OCC ltx retry. {exc}")
        return self.test_common("OCC", transaction, exc)

    def test_ltx(self, transaction, exc: BaseException) -> RetryInstruction:
        return self.test_common("LTX", transaction, exc)

    def test_rtx(self, transaction, exc: BaseException) -> RetryInstruction:
        return self.test_common("RTX", transaction, exc)

    def test_common(self, position: str, transaction, exc: BaseException) -> RetryInstruction:
        if self.exception_util.is_serialization_failure(exc):
            return RetryInstruction.of_retryable(f"{position} retry. {exc}")

        if self.exception_util.is_inactive_transaction(exc):
            status = transaction.get_transaction_status()
            status_error = status.error
            if status_error is None:
                return RetryInstruction.of_not_retryable(f"{position} not retry. {exc}, status=normal")
            if self.exception_util.is_serialization_failure(status_error):
                return RetryInstruction.of_retryable(f"{position} retry. {status_error} with {exc}")
            return RetryInstruction.of_not_retryable(f"{position} not retry. {status_error} with {exc}")

        return RetryInstruction.of_not_retryable(f"{position} not retry. {exc}")


_default_retry_predicate = DefaultRetryPredicate()


def get_default_retry_predicate():
    return _default_retry_predicate


def set_default_retry_predicate(predicate) -> None:
    global _default_retry_predicate
    if predicate is None:
        raise ValueError("predicate is None")
    _default_retry_predicate = predicate
