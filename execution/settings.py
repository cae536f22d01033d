"""
Transaction Manager Settings
"""

from typing import Any, List, Optional

from transaction.options import CommitType, TransactionOption
from .events import TmEventListener
from .option_supplier import (
    OptionSupplier,
    of_always,
    of_multiple,
    of_occ_ltx,
    of_options,
)
from .retry import RetryDecision


class TmSetting:
    """
    How a transaction manager runs one managed execution

    Attributes:
        supplier: Retry policy (first option and per-failure decision)
        label: Transaction label applied to options that have none
        commit_type: Commit type (None = transaction default)
        begin_timeout / commit_timeout / rollback_timeout: Per-attempt
            overrides of the session timeouts (seconds)
        listeners: Listeners invoked after the manager's own listeners
    """

    def __init__(self,
                 supplier: OptionSupplier,
                 label: Optional[str] = None,
                 commit_type: Optional[CommitType] = None,
                 begin_timeout: Optional[float] = None,
                 commit_timeout: Optional[float] = None,
                 rollback_timeout: Optional[float] = None):
        if supplier is None:
            raise ValueError("supplier is None")
        self.supplier = supplier
        self.label = label
        self.commit_type = commit_type
        self.begin_timeout = begin_timeout
        self.commit_timeout = commit_timeout
        self.rollback_timeout = rollback_timeout
        self.listeners: List[TmEventListener] = []

    @classmethod
    def of(cls, *options: TransactionOption) -> "TmSetting":
        """Each option once, in order"""
        return cls(of_options(*options))

    @classmethod
    def of_always(cls, option: TransactionOption, max_attempts: Optional[int] = None) -> "TmSetting":
        return cls(of_always(option, max_attempts))

    @classmethod
    def of_multiple(cls, *pairs) -> "TmSetting":
        return cls(of_multiple(*pairs))

    @classmethod
    def of_occ_ltx(cls, occ_size: int, ltx_option: TransactionOption, ltx_size: int) -> "TmSetting":
        return cls(of_occ_ltx(occ_size, ltx_option, ltx_size))

    def add_listener(self, listener: TmEventListener) -> "TmSetting":
        self.listeners.append(listener)
        return self

    def create_execute_info(self, tm_execute_id: int) -> Any:
        return self.supplier.create_execute_info(tm_execute_id)

    def _apply_label(self, decision: RetryDecision) -> RetryDecision:
        if self.label is not None and decision.is_execute() and decision.option.label is None:
            return decision.with_option(decision.option.with_label(self.label))
        return decision

    def get_first_decision(self, execute_info: Any) -> RetryDecision:
        decision = self.supplier.get(execute_info, 1)
        if not decision.is_execute():
            raise ValueError(f"first decision must execute: {decision}")
        return self._apply_label(decision)

    def get_decision(self, execute_info: Any, attempt: int, transaction, exc: BaseException) -> RetryDecision:
        return self._apply_label(self.supplier.get(execute_info, attempt, transaction, exc))

    def initialize_transaction(self, transaction) -> None:
        if self.begin_timeout is not None:
            transaction.set_begin_timeout(self.begin_timeout)
        if self.commit_timeout is not None:
            transaction.set_commit_timeout(self.commit_timeout)
        if self.rollback_timeout is not None:
            transaction.set_rollback_timeout(self.rollback_timeout)
        if self.commit_type is not None:
            transaction.commit_type = self.commit_type

    def __repr__(self) -> str:
        return f"TmSetting(supplier={self.supplier}, label={self.label!r}, commit_type={self.commit_type})"
