"""
Option Suppliers - retry policy of the transaction manager

A supplier returns the option of the first attempt and, after each failed
attempt, a RetryDecision: run again (possibly with another option), retry over
(budget spent) or not retryable. Attempt numbers start at 1.
"""

import bisect
from typing import Any, Callable, List, Optional

import structlog

from transaction.options import TransactionOption
from .retry import RetryCode, RetryDecision, RetryInstruction, get_default_retry_predicate

logger = structlog.get_logger(__name__)

RetryPredicate = Callable[[Any, BaseException], RetryInstruction]
DecisionListener = Callable[[int, Optional[BaseException], RetryDecision], None]
RetryStrategy = Callable[[int, BaseException], RetryDecision]


class OptionSupplier:
    """Base supplier; subclasses implement compute_first and compute_retry"""

    def __init__(self, retry_predicate: Optional[RetryPredicate] = None):
        self._retry_predicate = retry_predicate
        self.decision_listener: Optional[DecisionListener] = None
        self.description: Optional[str] = None

    @property
    def retry_predicate(self) -> RetryPredicate:
        return self._retry_predicate or get_default_retry_predicate()

    def set_retry_predicate(self, predicate: RetryPredicate) -> "OptionSupplier":
        if predicate is None:
            raise ValueError("predicate is None")
        self._retry_predicate = predicate
        return self

    def set_decision_listener(self, listener: Optional[DecisionListener]) -> "OptionSupplier":
        self.decision_listener = listener
        return self

    def set_description(self, description: Optional[str]) -> "OptionSupplier":
        self.description = description
        return self

    def create_execute_info(self, tm_execute_id: int) -> Any:
        """Per-execution state handed back on every get() of that execution"""
        return None

    def get(self,
            execute_info: Any,
            attempt: int,
            transaction=None,
            exc: Optional[BaseException] = None) -> RetryDecision:
        """
        Decide the option of ``attempt``

        Args:
            execute_info: Value from create_execute_info()
            attempt: Number of the attempt about to run (1 = first)
            transaction: Failed transaction of the previous attempt
            exc: Cause of the previous attempt's failure

        Returns:
            RetryDecision
        """
        decision = self.compute(execute_info, attempt, transaction, exc)
        if decision is None:
            raise ValueError(f"{self} returned no decision for attempt {attempt}")
        if self.decision_listener is not None:
            self.decision_listener(attempt, exc, decision)
        return decision

    def compute(self, execute_info: Any, attempt: int, transaction, exc: Optional[BaseException]) -> RetryDecision:
        if attempt <= 1:
            return self.compute_first(execute_info)

        instruction = self.retry_predicate(transaction, exc)
        if instruction is None:
            raise ValueError("retry predicate returned None")
        if instruction.is_retryable():
            return self.compute_retry(execute_info, attempt, exc, instruction)
        return RetryDecision.not_retryable(instruction)

    def compute_first(self, execute_info: Any) -> RetryDecision:
        raise NotImplementedError

    def compute_retry(self, execute_info: Any, attempt: int, exc: Optional[BaseException],
                      instruction: RetryInstruction) -> RetryDecision:
        raise NotImplementedError

    def default_description(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.description or self.default_description()


class AlwaysOptionSupplier(OptionSupplier):
    """Same option on every attempt, up to ``max_attempts`` (None = unlimited)"""

    def __init__(self, option: TransactionOption, max_attempts: Optional[int] = None,
                 retry_predicate: Optional[RetryPredicate] = None):
        super().__init__(retry_predicate)
        if max_attempts is not None and max_attempts < 1:
            raise ValueError(f"max_attempts < 1 (max_attempts={max_attempts})")
        self.option = option
        self.max_attempts = max_attempts

    def compute_first(self, execute_info: Any) -> RetryDecision:
        return RetryDecision.execute(self.option)

    def compute_retry(self, execute_info, attempt, exc, instruction) -> RetryDecision:
        if self.max_attempts is None or attempt <= self.max_attempts:
            return RetryDecision.execute(self.option, instruction)
        return RetryDecision.retry_over(instruction, self.option)

    def default_description(self) -> str:
        return f"{self.option}*{self.max_attempts if self.max_attempts is not None else 'unlimited'}"


class ListOptionSupplier(OptionSupplier):
    """Each option once, in order"""

    def __init__(self, *options: TransactionOption, retry_predicate: Optional[RetryPredicate] = None):
        super().__init__(retry_predicate)
        if not options:
            raise ValueError("options is empty")
        self.options = list(options)

    def compute_first(self, execute_info: Any) -> RetryDecision:
        return RetryDecision.execute(self.options[0])

    def compute_retry(self, execute_info, attempt, exc, instruction) -> RetryDecision:
        if attempt <= len(self.options):
            return RetryDecision.execute(self.options[attempt - 1], instruction)
        return RetryDecision.retry_over(instruction, self.options[-1])

    def default_description(self) -> str:
        return ", ".join(str(option) for option in self.options)


class MultipleListOptionSupplier(OptionSupplier):
    """Option x count, option x count, ... e.g. OCC three times then LTX once"""

    def __init__(self, retry_predicate: Optional[RetryPredicate] = None):
        super().__init__(retry_predicate)
        self._options: List[TransactionOption] = []
        self._counts: List[int] = []
        self._upper_bounds: List[int] = []

    def add(self, option: TransactionOption, count: int) -> "MultipleListOptionSupplier":
        if count < 1:
            raise ValueError(f"count < 1 (count={count})")
        total = self._upper_bounds[-1] if self._upper_bounds else 0
        self._options.append(option)
        self._counts.append(count)
        self._upper_bounds.append(total + count)
        return self

    @property
    def total_attempts(self) -> int:
        return self._upper_bounds[-1] if self._upper_bounds else 0

    def find_option(self, attempt: int) -> Optional[TransactionOption]:
        index = bisect.bisect_left(self._upper_bounds, attempt)
        if index >= len(self._options):
            return None
        return self._options[index]

    def compute_first(self, execute_info: Any) -> RetryDecision:
        if not self._options:
            raise ValueError("no option has been added")
        return RetryDecision.execute(self._options[0])

    def compute_retry(self, execute_info, attempt, exc, instruction) -> RetryDecision:
        option = self.find_option(attempt)
        if option is None:
            return RetryDecision.retry_over(instruction, self._options[-1])
        return RetryDecision.execute(option, instruction)

    def default_description(self) -> str:
        return ", ".join(f"{option}*{count}" for option, count in zip(self._options, self._counts))


class _OccLtxExecuteInfo:
    def __init__(self):
        self.is_occ = True
        self.occ_count = 0


class OccLtxOptionSupplier(OptionSupplier):
    """
    OCC up to ``occ_size`` attempts, then LTX up to ``ltx_size`` attempts

    A conflict on a write-preserved area (RETRYABLE_LTX) switches to LTX at once.
    """

    def __init__(self, occ_option: TransactionOption, occ_size: int,
                 ltx_option: TransactionOption, ltx_size: int,
                 retry_predicate: Optional[RetryPredicate] = None):
        super().__init__(retry_predicate)
        if not occ_option.is_occ:
            raise ValueError("occ_option is not OCC")
        if occ_size < 1:
            raise ValueError(f"occ_size < 1 (size={occ_size})")
        if not (ltx_option.is_ltx or ltx_option.is_rtx):
            raise ValueError("ltx_option is not LTX or RTX")
        if ltx_size < 1:
            raise ValueError(f"ltx_size < 1 (size={ltx_size})")
        self.occ_option = occ_option
        self.occ_size = occ_size
        self.ltx_option = ltx_option
        self.ltx_size = ltx_size

    def create_execute_info(self, tm_execute_id: int) -> Any:
        return _OccLtxExecuteInfo()

    def compute_first(self, execute_info: _OccLtxExecuteInfo) -> RetryDecision:
        execute_info.occ_count += 1
        return RetryDecision.execute(self.occ_option)

    def compute_retry(self, execute_info: _OccLtxExecuteInfo, attempt, exc, instruction) -> RetryDecision:
        if instruction.code == RetryCode.RETRYABLE_LTX:
            execute_info.is_occ = False

        if execute_info.is_occ:
            if attempt <= self.occ_size:
                execute_info.occ_count += 1
                return RetryDecision.execute(self.occ_option, instruction)
            execute_info.is_occ = False

        ltx_attempt = attempt - execute_info.occ_count
        if ltx_attempt <= self.ltx_size:
            return RetryDecision.execute(self.ltx_option, instruction)
        return RetryDecision.retry_over(instruction, self.ltx_option)

    def default_description(self) -> str:
        return f"{self.occ_option}*var({self.occ_size}), {self.ltx_option}*{self.ltx_size}"


class StrategyOptionSupplier(OptionSupplier):
    """
    Plain function strategy: ``strategy(attempt, cause) -> RetryDecision``

    The strategy replaces the retry predicate entirely.
    """

    def __init__(self, first_option: TransactionOption, strategy: RetryStrategy):
        super().__init__()
        self.first_option = first_option
        self.strategy = strategy

    def compute(self, execute_info: Any, attempt: int, transaction, exc: Optional[BaseException]) -> RetryDecision:
        if attempt <= 1:
            return RetryDecision.execute(self.first_option)
        return self.strategy(attempt, exc)


def of_options(*options: TransactionOption) -> OptionSupplier:
    if len(options) == 1:
        return AlwaysOptionSupplier(options[0], max_attempts=1)
    return ListOptionSupplier(*options)


def of_always(option: TransactionOption, max_attempts: Optional[int] = None) -> OptionSupplier:
    return AlwaysOptionSupplier(option, max_attempts)


def of_multiple(*pairs) -> MultipleListOptionSupplier:
    """of_multiple(option1, count1, option2, count2, ...)"""
    if not pairs or len(pairs) % 2 != 0:
        raise ValueError("expected option/count pairs")
    supplier = MultipleListOptionSupplier()
    for option, count in zip(pairs[0::2], pairs[1::2]):
        supplier.add(option, count)
    return supplier


def of_occ_ltx(occ_size: int, ltx_option: TransactionOption, ltx_size: int,
               occ_option: Optional[TransactionOption] = None) -> OccLtxOptionSupplier:
    return OccLtxOptionSupplier(occ_option or TransactionOption.of_occ(), occ_size, ltx_option, ltx_size)


def of_strategy(first_option: TransactionOption, strategy: RetryStrategy) -> StrategyOptionSupplier:
    return StrategyOptionSupplier(first_option, strategy)
