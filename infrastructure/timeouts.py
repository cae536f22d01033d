"""
Timeouts - session option table and per-operation timeout resolution
"""

import threading
import time
from enum import Enum
from typing import Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

# Smallest timeout handed to a close that runs after the budget is spent
MIN_TIMEOUT_SECONDS = 0.001


class TimeoutKey(Enum):
    """Operation keys of the session option table"""
    DEFAULT = "default"
    SESSION_CONNECT = "session_connect"
    SESSION_CLOSE = "session_close"
    PS_CONNECT = "ps_connect"
    PS_CLOSE = "ps_close"
    TX_BEGIN = "tx_begin"
    TX_COMMIT = "tx_commit"
    TX_ROLLBACK = "tx_rollback"
    TX_CLOSE = "tx_close"
    TX_STATUS = "tx_status"
    RESULT_CONNECT = "result_connect"
    RESULT_CLOSE = "result_close"
    RS_CONNECT = "rs_connect"
    RS_CLOSE = "rs_close"
    EXPLAIN_CONNECT = "explain_connect"
    EXPLAIN_CLOSE = "explain_close"
    SYSTEM_INFO_CONNECT = "system_info_connect"


class SessionOptions:
    """
    Timeout table shared by a session and everything it creates

    Values are seconds; ``None`` means unbounded. Keys that were never set fall
    back to DEFAULT, which itself falls back to unbounded.
    """

    def __init__(self, timeouts: Optional[Dict[TimeoutKey, Optional[float]]] = None,
                 label: Optional[str] = None):
        self._lock = threading.Lock()
        self._timeouts: Dict[TimeoutKey, Optional[float]] = {}
        self.label = label
        for key, seconds in (timeouts or {}).items():
            self.set_timeout(key, seconds)

    def set_timeout(self, key: TimeoutKey, seconds: Optional[float]) -> "SessionOptions":
        if seconds is not None and seconds < 0:
            raise ValueError(f"timeout must not be negative: {key.value}={seconds}")
        with self._lock:
            self._timeouts[key] = seconds
        return self

    def find_timeout(self, key: TimeoutKey) -> Optional[float]:
        """Timeout for ``key`` with DEFAULT fallback"""
        with self._lock:
            if key in self._timeouts:
                return self._timeouts[key]
            return self._timeouts.get(TimeoutKey.DEFAULT)

    def copy(self) -> "SessionOptions":
        with self._lock:
            timeouts = dict(self._timeouts)
        return SessionOptions(timeouts, label=self.label)

    def __repr__(self) -> str:
        with self._lock:
            timeouts = {key.value: value for key, value in self._timeouts.items()}
        return f"SessionOptions(timeouts={timeouts}, label={self.label!r})"


class TimeoutPolicy:
    """
    Resolves the timeout of one operation

    The session table is read on every get(), so updates made between retry
    attempts take effect. A value given to set() overrides the table.
    """

    def __init__(self, options: SessionOptions, key: TimeoutKey):
        self.options = options
        self.key = key
        self._fixed: Optional[float] = None
        self._has_fixed = False

    def set(self, seconds: Optional[float]) -> None:
        if seconds is not None and seconds < 0:
            raise ValueError(f"timeout must not be negative: {self.key.value}={seconds}")
        self._fixed = seconds
        self._has_fixed = True

    def clear(self) -> None:
        self._fixed = None
        self._has_fixed = False

    def get(self) -> Optional[float]:
        if self._has_fixed:
            return self._fixed
        return self.options.find_timeout(self.key)

    def __repr__(self) -> str:
        return f"TimeoutPolicy(key={self.key.value}, timeout={self.get()})"


def remaining_timeout(total: Optional[float], start: float) -> Optional[float]:
    """
    Time left of ``total`` since ``start`` (a time.monotonic() value)

    Never returns less than MIN_TIMEOUT_SECONDS so a close issued after the
    budget is spent still gets a chance to run. ``None`` stays unbounded.
    """
    if total is None:
        return None
    elapsed = time.monotonic() - start
    return max(total - elapsed, MIN_TIMEOUT_SECONDS)
