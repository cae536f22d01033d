"""
Diagnostics Package - error codes, the engine's error type and classification
"""

from .error_codes import (
    DiagnosticCode,
    ErrorCode,
    SqlServiceCode,
    ServerDiagnosticCode,
    parse_structured_code,
)
from .exceptions import (
    ErrorKind,
    ServerError,
    TxPilotError,
    add_suppressed,
    get_suppressed,
)
from .classifier import DiagnosticCodeProvider, ExceptionUtil, get_exception_util, set_exception_util

__all__ = [
    'DiagnosticCode',
    'ErrorCode',
    'SqlServiceCode',
    'ServerDiagnosticCode',
    'parse_structured_code',
    'ErrorKind',
    'ServerError',
    'TxPilotError',
    'add_suppressed',
    'get_suppressed',
    'DiagnosticCodeProvider',
    'ExceptionUtil',
    'get_exception_util',
    'set_exception_util',
]
