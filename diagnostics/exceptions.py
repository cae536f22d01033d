"""
Exceptions - the single error type raised by the engine, plus the boundary
error raised by the SQL service
"""

from enum import Enum
from typing import Any, List, Optional

from .error_codes import DiagnosticCode, ErrorCode


class ErrorKind(Enum):
    """Discriminator of TxPilotError"""
    TIMEOUT = "timeout"
    SERVER_REPORTED = "server_reported"
    ALREADY_CLOSED = "already_closed"
    ALREADY_FINISHED = "already_finished"
    RETRY_OVER = "retry_over"
    NOT_RETRYABLE = "not_retryable"
    AGGREGATED_CLOSE = "aggregated_close"
    INTERRUPTED = "interrupted"
    CLIENT = "client"


def add_suppressed(primary: BaseException, secondary: BaseException) -> None:
    """
    Attach ``secondary`` to ``primary`` as a suppressed cause

    Works for any exception instance; the suppressed cause is also added as a
    note so it appears in tracebacks.
    """
    if primary is secondary:
        return
    suppressed = primary.__dict__.setdefault("suppressed", [])
    suppressed.append(secondary)
    if hasattr(primary, "add_note"):
        primary.add_note(f"Suppressed: {type(secondary).__name__}: {secondary}")


def get_suppressed(exc: BaseException) -> List[BaseException]:
    """Get suppressed causes attached with add_suppressed()"""
    return list(exc.__dict__.get("suppressed", []))


class ServerError(Exception):
    """
    Error reported by the SQL service through a future

    This is the boundary type: service implementations raise it, the engine
    converts it into TxPilotError(kind=SERVER_REPORTED).
    """

    def __init__(self, code: DiagnosticCode, message: str = ""):
        super().__init__(f"{code.code_name}: {message}" if message else code.code_name)
        self.code = code
        self.server_message = message


class TxPilotError(Exception):
    """
    Error raised by the transaction engine

    Attributes:
        kind: What went wrong (see ErrorKind)
        code: Client ErrorCode or server diagnostic code
        transaction: Transaction the error occurred in (if any)
        next_decision: RetryDecision computed for the failed attempt (manager errors)
        transaction_status: Status fetched after a terminal failure (manager errors)
    """

    def __init__(self,
                 kind: ErrorKind,
                 code: Optional[DiagnosticCode] = None,
                 message: Optional[str] = None,
                 cause: Optional[BaseException] = None,
                 transaction: Any = None,
                 next_decision: Any = None,
                 transaction_status: Any = None):
        self.kind = kind
        self.code = code
        self.transaction = transaction
        self.next_decision = next_decision
        self.transaction_status = transaction_status
        self.tx_method: Optional[str] = None
        self.sql: Optional[str] = None
        self.sql_parameters: Any = None
        super().__init__(self._create_message(message, cause))
        if cause is not None:
            self.__cause__ = cause

    def _create_message(self, message: Optional[str], cause: Optional[BaseException]) -> str:
        if message is None:
            if isinstance(self.code, ErrorCode):
                message = self.code.message
            elif cause is not None:
                message = str(cause)
            else:
                message = self.kind.value
        if self.code is not None:
            message = f"{self.code.structured_code}: {message}"
        if self.transaction is not None:
            message = f"{message}. {self.transaction}"
        if self.next_decision is not None:
            message = f"{message}, next={self.next_decision}"
        return message

    # transaction information

    @property
    def cause(self) -> Optional[BaseException]:
        return self.__cause__

    @property
    def suppressed(self) -> List[BaseException]:
        return get_suppressed(self)

    @property
    def is_timeout(self) -> bool:
        return self.kind == ErrorKind.TIMEOUT

    def _find_transaction(self):
        for exc in iterate_causes(self):
            transaction = getattr(exc, "transaction", None)
            if transaction is not None:
                return transaction
        return None

    @property
    def transaction_id(self) -> Optional[str]:
        """Server transaction id, if it was resolved"""
        transaction = self._find_transaction()
        return transaction.transaction_id if transaction is not None else None

    @property
    def attempt(self) -> int:
        transaction = self._find_transaction()
        return transaction.attempt if transaction is not None else 0

    @property
    def transaction_option(self):
        transaction = self._find_transaction()
        return transaction.option if transaction is not None else None

    @property
    def tx_number(self) -> int:
        """Client-side transaction sequence number"""
        transaction = self._find_transaction()
        return transaction.tx_number if transaction is not None else 0

    @property
    def tm_execute_id(self) -> Optional[int]:
        transaction = self._find_transaction()
        return getattr(transaction, "tm_execute_id", None)


def iterate_causes(exc: Optional[BaseException]):
    """Yield ``exc`` and its explicit cause chain"""
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__


def already_closed(code: ErrorCode) -> TxPilotError:
    return TxPilotError(ErrorKind.ALREADY_CLOSED, code)


def already_finished(code: ErrorCode) -> TxPilotError:
    return TxPilotError(ErrorKind.ALREADY_FINISHED, code)


def timeout_error(code: ErrorCode, cause: Optional[BaseException] = None) -> TxPilotError:
    return TxPilotError(ErrorKind.TIMEOUT, code, cause=cause)


def from_server_error(error: ServerError) -> TxPilotError:
    """Convert a service-side error into the engine's error type"""
    return TxPilotError(ErrorKind.SERVER_REPORTED, error.code, message=str(error), cause=error)
