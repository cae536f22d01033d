"""
Tests for the default retry predicate
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from diagnostics.classifier import ExceptionUtil, get_exception_util, set_exception_util
from diagnostics.error_codes import SqlServiceCode
from diagnostics.exceptions import ServerError, from_server_error
from execution.retry import (
    DefaultRetryPredicate,
    RetryCode,
    RetryDecision,
    RetryInstruction,
    get_default_retry_predicate,
    set_default_retry_predicate,
)
from transaction.options import TransactionOption
from transaction.status import TransactionStatus


class StubTx:
    """Failed transaction with a scripted server status"""

    def __init__(self, option, status_error=None):
        self.option = option
        self.status_error = status_error
        self.status_calls = 0

    def get_transaction_status(self):
        self.status_calls += 1
        return TransactionStatus.of(self.status_error)


def abort(code):
    return from_server_error(ServerError(code))


class TestDefaultRetryPredicate:
    """Test classification by transaction type"""

    @pytest.mark.parametrize("option", [
        TransactionOption.of_occ(),
        TransactionOption.of_ltx("t1"),
        TransactionOption.of_rtx(),
    ])
    def test_serialization_failure_retryable(self, option):
        predicate = DefaultRetryPredicate()

        instruction = predicate(StubTx(option), abort(SqlServiceCode.CC_EXCEPTION))

        assert instruction.code == RetryCode.RETRYABLE

    def test_occ_write_preserve_conflict_retries_as_ltx(self):
        predicate = DefaultRetryPredicate()

        instruction = predicate(StubTx(TransactionOption.of_occ()),
                                abort(SqlServiceCode.CONFLICT_ON_WRITE_PRESERVE_EXCEPTION))

        assert instruction.code == RetryCode.RETRYABLE_LTX

    def test_ltx_write_preserve_conflict_plain_retry(self):
        predicate = DefaultRetryPredicate()

        instruction = predicate(StubTx(TransactionOption.of_ltx("t1")),
                                abort(SqlServiceCode.CONFLICT_ON_WRITE_PRESERVE_EXCEPTION))

        assert instruction.code == RetryCode.RETRYABLE

    @pytest.mark.parametrize("error", [
        abort(SqlServiceCode.UNIQUE_CONSTRAINT_VIOLATION_EXCEPTION),
        abort(SqlServiceCode.SYNTAX_EXCEPTION),
        ValueError("application error"),
    ])
    def test_other_errors_not_retryable(self, error):
        predicate = DefaultRetryPredicate()

        assert not predicate(StubTx(TransactionOption.of_occ()), error).is_retryable()

    def test_inactive_transaction_consults_status(self):
        predicate = DefaultRetryPredicate()
        tx = StubTx(TransactionOption.of_occ(), status_error=ServerError(SqlServiceCode.OCC_READ_EXCEPTION))

        instruction = predicate(tx, abort(SqlServiceCode.INACTIVE_TRANSACTION_EXCEPTION))

        assert instruction.code == RetryCode.RETRYABLE
        assert tx.status_calls == 1

    def test_inactive_transaction_with_other_status(self):
        predicate = DefaultRetryPredicate()
        tx = StubTx(TransactionOption.of_occ(), status_error=ServerError(SqlServiceCode.TARGET_NOT_FOUND_EXCEPTION))

        instruction = predicate(tx, abort(SqlServiceCode.INACTIVE_TRANSACTION_EXCEPTION))

        assert instruction.code == RetryCode.NOT_RETRYABLE
        assert "TARGET_NOT_FOUND" in instruction.reason

    def test_inactive_transaction_with_normal_status(self):
        predicate = DefaultRetryPredicate()

        instruction = predicate(StubTx(TransactionOption.of_occ()),
                                abort(SqlServiceCode.INACTIVE_TRANSACTION_EXCEPTION))

        assert instruction.code == RetryCode.NOT_RETRYABLE


class TestReplaceableDefaults:
    """Test process-wide replacement of classifier and predicate"""

    def test_custom_exception_util(self):
        class EverythingRetryable(ExceptionUtil):
            def is_serialization_failure(self, exc):
                return True

        original = get_exception_util()
        predicate = DefaultRetryPredicate()
        set_exception_util(EverythingRetryable())
        try:
            assert predicate(StubTx(TransactionOption.of_occ()), ValueError("x")).is_retryable()
        finally:
            set_exception_util(original)

    def test_default_predicate_replaceable(self):
        original = get_default_retry_predicate()
        replacement = lambda tx, exc: RetryInstruction.of_not_retryable("never")  # noqa: E731
        set_default_retry_predicate(replacement)
        try:
            assert get_default_retry_predicate() is replacement
        finally:
            set_default_retry_predicate(original)

    def test_none_predicate_rejected(self):
        with pytest.raises(ValueError):
            set_default_retry_predicate(None)


class TestRetryDecision:
    """Test decision values"""

    def test_execute_requires_option(self):
        with pytest.raises(ValueError):
            RetryDecision.execute(None)

    def test_with_option_keeps_type_and_instruction(self):
        instruction = RetryInstruction.of_retryable("cc")
        decision = RetryDecision.execute(TransactionOption.of_occ(), instruction)

        changed = decision.with_option(TransactionOption.of_rtx())

        assert changed.is_execute()
        assert changed.option.is_rtx
        assert changed.instruction is instruction
