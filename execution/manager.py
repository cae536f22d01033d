"""
Transaction Manager - runs an action in a transaction, retrying on
serialization failures
"""

import itertools
import threading
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog

from diagnostics.error_codes import ErrorCode
from diagnostics.exceptions import ErrorKind, TxPilotError, add_suppressed
from transaction.options import TransactionOption
from transaction.results import RowMapping
from .events import TmEventListener
from .settings import TmSetting

logger = structlog.get_logger(__name__)

R = TypeVar("R")

OptionModifier = Callable[[TransactionOption, int], TransactionOption]

_tm_execute_ids = itertools.count(1)
_tm_execute_lock = threading.Lock()


def _next_tm_execute_id() -> int:
    with _tm_execute_lock:
        return next(_tm_execute_ids)


class _AttemptOutcome:
    """Result of one attempt: either the action's result or the next option"""

    def __init__(self, result: Any = None, next_option: Optional[TransactionOption] = None):
        self.result = result
        self.next_option = next_option

    @property
    def is_done(self) -> bool:
        return self.next_option is None


class TransactionManager:
    """
    Transaction manager

    execute() creates a transaction, runs the action with it and commits. When
    the action or the commit fails, the setting's option supplier decides
    whether to run another attempt. Attempts are strictly sequential and each
    attempt's transaction is closed before the next one starts.
    """

    def __init__(self, session, setting: Optional[TmSetting] = None):
        self.session = session
        self.default_setting = setting
        self.option_modifier: Optional[OptionModifier] = None
        self._listeners: List[TmEventListener] = []

    def add_listener(self, listener: TmEventListener) -> "TransactionManager":
        self._listeners.append(listener)
        return self

    def set_option_modifier(self, modifier: Optional[OptionModifier]) -> "TransactionManager":
        """``modifier(option, attempt) -> option`` applied to every attempt's option"""
        self.option_modifier = modifier
        return self

    def _resolve_setting(self, setting: Optional[TmSetting]) -> TmSetting:
        setting = setting or self.default_setting
        if setting is None:
            raise ValueError("setting is not specified")
        return setting

    def _modify_option(self, option: TransactionOption, attempt: int) -> TransactionOption:
        if self.option_modifier is None:
            return option
        modified = self.option_modifier(option, attempt)
        if modified is None:
            raise ValueError(f"option modifier returned None for attempt {attempt}")
        return modified

    def _event(self, setting: TmSetting, occurred: Optional[BaseException],
               action: Callable[[TmEventListener], None]) -> None:
        for listener in self._listeners + setting.listeners:
            try:
                action(listener)
            except Exception as e:
                if occurred is not None:
                    add_suppressed(e, occurred)
                raise

    # execute

    def execute(self, action: Callable[[Any], R], setting: Optional[TmSetting] = None) -> R:
        """
        Run ``action(transaction)`` and commit, retrying as the setting allows

        Args:
            action: Unit of work; receives the attempt's Transaction
            setting: TmSetting (defaults to the manager's)

        Returns:
            The action's result

        Raises:
            TxPilotError: RETRY_OVER when the attempt budget is spent,
                NOT_RETRYABLE for any other abort
                (the original failure is the cause)
        """
        setting = self._resolve_setting(setting)
        if action is None:
            raise ValueError("action is not specified")

        tm_execute_id = _next_tm_execute_id()
        execute_info = setting.create_execute_info(tm_execute_id)
        option = self._modify_option(setting.get_first_decision(execute_info).option, 1)

        logger.debug("tm_execute_start", tm_execute_id=tm_execute_id, option=str(option), supplier=str(setting.supplier))
        self._event(setting, None, lambda listener: listener.execute_start(self, tm_execute_id, option))

        attempt = 1
        while True:
            transaction = None
            try:
                self._event(setting, None,
                            lambda listener: listener.transaction_start(self, tm_execute_id, attempt, option))
                transaction = self.session.create_transaction(option, attempt=attempt)
                transaction.tm_execute_id = tm_execute_id
                outcome = self._run_and_close(setting, execute_info, transaction, action)
            except Exception as e:
                failed_option, failed_transaction = option, transaction
                logger.debug("tm_execute_fail", tm_execute_id=tm_execute_id, attempt=attempt, error=str(e))
                self._event(setting, e, lambda listener: listener.execute_end_fail(
                    self, tm_execute_id, failed_option, failed_transaction, e))
                raise

            if outcome.is_done:
                logger.debug("tm_execute_end", tm_execute_id=tm_execute_id, attempt=attempt)
                return outcome.result
            option = outcome.next_option
            attempt += 1

    def _run_and_close(self, setting: TmSetting, execute_info: Any, transaction, action) -> _AttemptOutcome:
        primary: Optional[BaseException] = None
        try:
            setting.initialize_transaction(transaction)
            self._event(setting, None, lambda listener: listener.transaction_started(transaction))
            return self._run_attempt(setting, execute_info, transaction, action)
        except BaseException as e:
            primary = e
            raise
        finally:
            try:
                transaction.close()
            except Exception as close_error:
                if primary is None:
                    raise
                add_suppressed(primary, close_error)

    def _run_attempt(self, setting: TmSetting, execute_info: Any, transaction, action) -> _AttemptOutcome:
        try:
            result = action(transaction)
            committed = False
            if not transaction.is_rolled_back():
                transaction.commit(setting.commit_type)
                committed = True
        except Exception as e:
            self._event(setting, e, lambda listener: listener.transaction_exception(transaction, e))
            next_option = self._process_exception(setting, execute_info, transaction, e)
            return _AttemptOutcome(next_option=next_option)

        self._event(setting, None, lambda listener: listener.execute_end_success(transaction, committed, result))
        return _AttemptOutcome(result=result)

    def _process_exception(self, setting: TmSetting, execute_info: Any, transaction,
                           cause: Exception) -> TransactionOption:
        next_attempt = transaction.attempt + 1
        try:
            decision = setting.get_decision(execute_info, next_attempt, transaction, cause)
            if decision.is_execute():
                option = self._modify_option(decision.option, next_attempt)
                if option != decision.option:
                    decision = decision.with_option(option)
        except Exception as e:
            add_suppressed(e, cause)
            self._rollback(setting, transaction, e)
            raise

        if decision.is_execute():
            # rolled back even when the abort is retryable
            self._rollback(setting, transaction, cause)
            logger.info("tm_execute_retry", tm_execute_id=transaction.tm_execute_id, attempt=next_attempt,
                        option=str(decision.option), error=str(cause))
            self._event(setting, cause, lambda listener: listener.transaction_retry(transaction, cause, decision))
            return decision.option

        status = None
        if transaction.transaction_id is not None:
            try:
                status = transaction.get_transaction_status()
            except Exception as e:
                add_suppressed(cause, e)
        self._rollback(setting, transaction, cause)

        if decision.is_retry_over():
            logger.warning("tm_execute_retry_over", tm_execute_id=transaction.tm_execute_id,
                           attempt=transaction.attempt, error=str(cause))
            self._event(setting, cause, lambda listener: listener.transaction_retry_over(transaction, cause, decision))
            raise TxPilotError(ErrorKind.RETRY_OVER, ErrorCode.TM_RETRY_OVER, cause=cause,
                               transaction=transaction, next_decision=decision, transaction_status=status)

        self._event(setting, cause, lambda listener: listener.transaction_not_retryable(transaction, cause, decision))
        raise TxPilotError(ErrorKind.NOT_RETRYABLE, ErrorCode.TM_NOT_RETRYABLE, cause=cause,
                           transaction=transaction, next_decision=decision, transaction_status=status)

    def _rollback(self, setting: TmSetting, transaction, save: BaseException) -> None:
        if not transaction.is_available() or transaction.transaction_id is None:
            return
        try:
            transaction.rollback()
        except Exception as e:
            logger.warning("tm_rollback_failed", tx_number=transaction.tx_number, error=str(e))
            add_suppressed(save, e)
            self._event(setting, save, lambda listener: listener.transaction_rollbacked(transaction, e))
            return
        self._event(setting, save, lambda listener: listener.transaction_rollbacked(transaction, None))

    # convenience

    def _ddl_setting(self, setting: Optional[TmSetting]) -> TmSetting:
        if setting is not None:
            return setting
        if self.default_setting is not None:
            return self.default_setting
        return TmSetting.of(TransactionOption.of_ddl().with_label("txpilot ddl"))

    def execute_ddl(self, sql: str, setting: Optional[TmSetting] = None) -> None:
        self.execute(lambda transaction: transaction.execute_ddl(sql), self._ddl_setting(setting))

    def execute_and_get_count(self, sql: str, parameters: Optional[Dict[str, Any]] = None,
                              setting: Optional[TmSetting] = None) -> Optional[int]:
        return self.execute(lambda transaction: transaction.execute_and_get_count(sql, parameters), setting)

    def execute_and_get_list(self, sql: str, parameters: Optional[Dict[str, Any]] = None,
                             mapping: Optional[RowMapping] = None,
                             setting: Optional[TmSetting] = None) -> List[Any]:
        return self.execute(lambda transaction: transaction.execute_and_get_list(sql, parameters, mapping), setting)

    def execute_and_find_record(self, sql: str, parameters: Optional[Dict[str, Any]] = None,
                                mapping: Optional[RowMapping] = None,
                                setting: Optional[TmSetting] = None) -> Optional[Any]:
        return self.execute(lambda transaction: transaction.execute_and_find_record(sql, parameters, mapping),
                            setting)

    def __repr__(self) -> str:
        return f"TransactionManager(setting={self.default_setting})"
