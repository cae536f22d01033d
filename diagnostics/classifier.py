"""
Diagnostic Code Provider - maps exceptions to diagnostic codes and classifies them
"""

from typing import Optional

from .error_codes import DiagnosticCode, SqlServiceCode
from .exceptions import ErrorKind, ServerError, TxPilotError, iterate_causes


class DiagnosticCodeProvider:
    """Finds the diagnostic code behind any exception"""

    @staticmethod
    def find_diagnostic_code(exc: Optional[BaseException]) -> Optional[DiagnosticCode]:
        """
        Find the first diagnostic code in the cause chain

        Args:
            exc: Any exception (may wrap a server error)

        Returns:
            Client or server diagnostic code, or None
        """
        for t in iterate_causes(exc):
            if isinstance(t, TxPilotError) and t.code is not None:
                return t.code
            if isinstance(t, ServerError):
                return t.code
        return None

    @staticmethod
    def find_server_code(exc: Optional[BaseException]) -> Optional[DiagnosticCode]:
        """Find the code the SQL service reported, ignoring client-side codes"""
        for t in iterate_causes(exc):
            if isinstance(t, ServerError):
                return t.code
            if isinstance(t, TxPilotError) and t.kind == ErrorKind.SERVER_REPORTED:
                return t.code
        return None

    @staticmethod
    def find_engine_error(exc: Optional[BaseException]) -> Optional[TxPilotError]:
        for t in iterate_causes(exc):
            if isinstance(t, TxPilotError):
                return t
        return None

    @staticmethod
    def create_message(code: Optional[DiagnosticCode]) -> Optional[str]:
        if code is None:
            return None
        return str(code)


class ExceptionUtil:
    """
    Classification of server-reported errors

    Only the server code is consulted; the client never retries on its own
    error codes (timeouts, already closed, ...).
    """

    SERIALIZATION_FAILURE_CATEGORY = 4000

    def __init__(self, provider: Optional[DiagnosticCodeProvider] = None):
        self.provider = provider or DiagnosticCodeProvider()

    def _code(self, exc: BaseException) -> Optional[DiagnosticCode]:
        return self.provider.find_server_code(exc)

    def is_serialization_failure(self, exc: BaseException) -> bool:
        code = self._code(exc)
        if code is None:
            return False
        return code.is_sql_code() and code.category() == self.SERIALIZATION_FAILURE_CATEGORY

    def is_conflict_on_write_preserve(self, exc: BaseException) -> bool:
        return self._code(exc) == SqlServiceCode.CONFLICT_ON_WRITE_PRESERVE_EXCEPTION

    def is_inactive_transaction(self, exc: BaseException) -> bool:
        return self._code(exc) == SqlServiceCode.INACTIVE_TRANSACTION_EXCEPTION

    def is_unique_constraint_violation(self, exc: BaseException) -> bool:
        return self._code(exc) == SqlServiceCode.UNIQUE_CONSTRAINT_VIOLATION_EXCEPTION

    def is_target_not_found(self, exc: BaseException) -> bool:
        return self._code(exc) == SqlServiceCode.TARGET_NOT_FOUND_EXCEPTION


_exception_util = ExceptionUtil()


def get_exception_util() -> ExceptionUtil:
    """Get global exception classifier"""
    return _exception_util


def set_exception_util(exception_util: ExceptionUtil) -> None:
    """Replace global exception classifier"""
    global _exception_util
    if exception_util is None:
        raise ValueError("exception_util is None")
    _exception_util = exception_util
