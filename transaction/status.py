"""
Transaction Status - server-side state of a transaction
"""

from dataclasses import dataclass
from typing import Optional

from diagnostics.error_codes import DiagnosticCode
from diagnostics.exceptions import ServerError, TxPilotError, from_server_error


@dataclass(frozen=True)
class TransactionStatus:
    """Normal, or the error the server ended the transaction with"""
    error: Optional[TxPilotError] = None

    @classmethod
    def of(cls, server_error: Optional[BaseException]) -> "TransactionStatus":
        if server_error is None:
            return cls()
        if isinstance(server_error, ServerError):
            return cls(from_server_error(server_error))
        if isinstance(server_error, TxPilotError):
            return cls(server_error)
        raise TypeError(f"unexpected transaction status: {server_error!r}")

    def is_normal(self) -> bool:
        return self.error is None

    def is_error(self) -> bool:
        return self.error is not None

    @property
    def diagnostic_code(self) -> Optional[DiagnosticCode]:
        return self.error.code if self.error is not None else None

    def __str__(self) -> str:
        if self.error is None:
            return "TransactionStatus(normal)"
        return f"TransactionStatus({self.error.code})"
