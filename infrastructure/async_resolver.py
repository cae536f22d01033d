"""
Async Resolver - bounded wait on a pending service operation

Every pending operation is closed exactly once by resolve(), whatever the
outcome: success, server error, timeout or interruption.
"""

import concurrent.futures
import time
from typing import Any, Optional, Protocol, TypeVar, Union

import structlog

from diagnostics.error_codes import ErrorCode
from diagnostics.exceptions import (
    ErrorKind,
    ServerError,
    TxPilotError,
    add_suppressed,
    from_server_error,
    timeout_error,
)
from .timeouts import TimeoutPolicy, remaining_timeout

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_TIMEOUT_ERRORS = (TimeoutError, concurrent.futures.TimeoutError)


class PendingOperation(Protocol[T]):
    """Closeable pending result of an asynchronous service call"""

    def get(self, timeout: Optional[float] = None) -> T:
        """Wait for the result; raise TimeoutError when ``timeout`` elapses"""
        ...

    def close(self, timeout: Optional[float] = None) -> None:
        """Release the server-side resources; raise TimeoutError if that takes too long"""
        ...


def _convert(error: BaseException, code: ErrorCode) -> BaseException:
    if isinstance(error, _TIMEOUT_ERRORS):
        return timeout_error(code, cause=error)
    if isinstance(error, ServerError):
        return from_server_error(error)
    return error


def close_pending(pending: PendingOperation,
                  timeout: Union[TimeoutPolicy, Optional[float]],
                  on_close_timeout_code: ErrorCode) -> None:
    """Close a pending operation that will not be waited for"""
    seconds = timeout.get() if isinstance(timeout, TimeoutPolicy) else timeout
    try:
        pending.close(seconds)
    except Exception as e:
        converted = _convert(e, on_close_timeout_code)
        if converted is e:
            raise
        raise converted


def resolve(pending: PendingOperation[T],
            timeout: Union[TimeoutPolicy, Optional[float]],
            on_timeout_code: ErrorCode,
            on_close_timeout_code: ErrorCode) -> T:
    """
    Wait for a pending operation, then close it

    Args:
        pending: Pending operation returned by the SQL service
        timeout: Policy (re-read now) or seconds; None waits forever
        on_timeout_code: Code raised when the wait elapses
        on_close_timeout_code: Code raised when the close elapses

    Returns:
        The operation's result

    Raises:
        TxPilotError: TIMEOUT, SERVER_REPORTED or INTERRUPTED
    """
    total = timeout.get() if isinstance(timeout, TimeoutPolicy) else timeout
    start = time.monotonic()

    primary: Optional[BaseException] = None
    result: Any = None
    try:
        result = pending.get(total)
    except _TIMEOUT_ERRORS as e:
        logger.warning("resolve_timeout", code=on_timeout_code.structured_code, timeout=total)
        primary = timeout_error(on_timeout_code, cause=e)
    except ServerError as e:
        primary = from_server_error(e)
    except concurrent.futures.CancelledError as e:
        primary = TxPilotError(ErrorKind.INTERRUPTED, message="wait for pending operation was cancelled", cause=e)
    except BaseException as e:
        primary = e

    close_error: Optional[BaseException] = None
    try:
        pending.close(remaining_timeout(total, start))
    except BaseException as e:
        close_error = _convert(e, on_close_timeout_code)

    if close_error is not None:
        if primary is None:
            raise close_error
        if (isinstance(primary, TxPilotError) and primary.kind == ErrorKind.TIMEOUT
                and isinstance(close_error, TxPilotError) and close_error.kind == ErrorKind.TIMEOUT):
            # the close timed out as well; report the close timeout
            add_suppressed(close_error, primary)
            raise close_error
        add_suppressed(primary, close_error)

    if primary is not None:
        raise primary
    return result
