"""
Resource Tracker - ownership of child resources and aggregated cleanup
"""

import threading
from typing import Any, Callable, Dict, List, Optional

import structlog

from diagnostics.error_codes import ErrorCode
from diagnostics.exceptions import ErrorKind, TxPilotError, add_suppressed

logger = structlog.get_logger(__name__)


class ResourceTracker:
    """
    Insertion-ordered set of closeable children

    Members are tracked by identity. add/remove may be called from other
    threads while close_all() is running.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._resources: Dict[int, Any] = {}

    def add(self, resource: Any) -> None:
        with self._lock:
            self._resources[id(resource)] = resource

    def remove(self, resource: Any) -> None:
        with self._lock:
            self._resources.pop(id(resource), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def is_empty(self) -> bool:
        return len(self) == 0

    def snapshot(self) -> List[Any]:
        with self._lock:
            return list(self._resources.values())

    def _pop_oldest(self) -> Optional[Any]:
        with self._lock:
            if not self._resources:
                return None
            key = next(iter(self._resources))
            return self._resources.pop(key)

    def close_all(self) -> List[Exception]:
        """
        Close every member, oldest first

        Members added while a close is running are closed in the same pass.

        Returns:
            Errors raised by the individual closes, in close order
        """
        errors: List[Exception] = []
        while True:
            resource = self._pop_oldest()
            if resource is None:
                break
            try:
                resource.close()
            except Exception as e:
                logger.debug("child_close_failed", resource=type(resource).__name__, error=str(e))
                errors.append(e)
        return errors


def aggregate_close_errors(errors: List[Exception], code: ErrorCode) -> TxPilotError:
    """Wrap child close errors: first one is the cause, the rest are suppressed"""
    error = TxPilotError(ErrorKind.AGGREGATED_CLOSE, code, cause=errors[0])
    for other in errors[1:]:
        add_suppressed(error, other)
    return error


def close_resources(tracker: ResourceTracker,
                    own_close: Optional[Callable[[], None]],
                    child_close_error_code: ErrorCode) -> None:
    """
    Close tracked children, then run the owner's own close

    Args:
        tracker: Children to close first
        own_close: Owner's close action (may be None)
        child_close_error_code: Code of the aggregated child error

    Raises:
        Exception: The own-close error with the child errors suppressed, or
            TxPilotError(AGGREGATED_CLOSE) when only children failed
    """
    errors = tracker.close_all()
    if own_close is not None:
        try:
            own_close()
        except Exception as e:
            for error in errors:
                add_suppressed(e, error)
            raise
    if errors:
        raise aggregate_close_errors(errors, child_close_error_code)
