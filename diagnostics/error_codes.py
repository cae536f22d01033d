"""
Diagnostic Codes - client-side error codes and SQL service diagnostic codes
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional


ERROR_CODE_PREFIX = "TXPILOT"
SQL_CODE_PREFIX = "SQL"


def format_structured_code(prefix: str, number: int) -> str:
    return f"{prefix}-{number:05d}"


class DiagnosticCode:
    """
    Common surface of every diagnostic code (client or server)

    Subclasses provide ``structured_code``, ``code_number`` and ``code_name``.
    """

    def category(self) -> int:
        """Code block the code belongs to (1000, 2000, ...)"""
        return (self.code_number // 1000) * 1000

    def is_sql_code(self) -> bool:
        return self.structured_code.startswith(SQL_CODE_PREFIX + "-")


class ErrorCodeBlock:
    """Number ranges of client error codes"""
    SESSION = 1000
    TRANSACTION_MANAGER = 2000
    TRANSACTION = 3000
    STATEMENT = 4000
    RESULT = 5000
    EXPLAIN = 6000


class ErrorCode(DiagnosticCode, Enum):
    """Client-side error codes raised by the engine itself"""

    # session
    SESSION_CONNECT_TIMEOUT = (ErrorCodeBlock.SESSION + 1, "session connect timeout")
    SESSION_CHILD_CLOSE_ERROR = (ErrorCodeBlock.SESSION + 901, "session child resource close error")
    SESSION_CLOSE_TIMEOUT = (ErrorCodeBlock.SESSION + 902, "session close timeout")
    SESSION_CLOSE_ERROR = (ErrorCodeBlock.SESSION + 903, "session close error")
    SESSION_ALREADY_CLOSED = (ErrorCodeBlock.SESSION + 909, "session already closed")

    # transaction manager
    TM_NOT_RETRYABLE = (ErrorCodeBlock.TRANSACTION_MANAGER + 1, "transaction is not retryable")
    TM_RETRY_OVER = (ErrorCodeBlock.TRANSACTION_MANAGER + 2, "transaction retry over")
    TM_ROLLBACK_ERROR = (ErrorCodeBlock.TRANSACTION_MANAGER + 801, "transactionManager rollback error")

    # transaction
    TX_BEGIN_TIMEOUT = (ErrorCodeBlock.TRANSACTION + 1, "transaction begin timeout")
    TX_LOW_ERROR = (ErrorCodeBlock.TRANSACTION + 2, "low transaction error")
    TX_STATUS_CONNECT_TIMEOUT = (ErrorCodeBlock.TRANSACTION + 101, "transaction getTransactionStatus connect timeout")
    TX_STATUS_CLOSE_TIMEOUT = (ErrorCodeBlock.TRANSACTION + 191, "transaction getTransactionStatus close timeout")
    TX_ALREADY_COMMITTED = (ErrorCodeBlock.TRANSACTION + 601, "commit has already been called")
    TX_ALREADY_ROLLBACKED = (ErrorCodeBlock.TRANSACTION + 602, "rollback has already been called")
    TX_COMMIT_CHILD_CLOSE_ERROR = (ErrorCodeBlock.TRANSACTION + 701, "transaction child resource close error before commit")
    TX_COMMIT_TIMEOUT = (ErrorCodeBlock.TRANSACTION + 711, "transaction commit timeout")
    TX_COMMIT_CLOSE_TIMEOUT = (ErrorCodeBlock.TRANSACTION + 791, "transaction commit close timeout")
    TX_ROLLBACK_CHILD_CLOSE_ERROR = (ErrorCodeBlock.TRANSACTION + 801, "transaction child resource close error before rollback")
    TX_ROLLBACK_TIMEOUT = (ErrorCodeBlock.TRANSACTION + 811, "transaction rollback timeout")
    TX_ROLLBACK_CLOSE_TIMEOUT = (ErrorCodeBlock.TRANSACTION + 891, "transaction rollback close timeout")
    TX_CHILD_CLOSE_ERROR = (ErrorCodeBlock.TRANSACTION + 901, "transaction child resource close error")
    TX_CLOSE_TIMEOUT = (ErrorCodeBlock.TRANSACTION + 902, "transaction close timeout")
    TX_CLOSE_ERROR = (ErrorCodeBlock.TRANSACTION + 903, "transaction close error")
    TX_ALREADY_CLOSED = (ErrorCodeBlock.TRANSACTION + 909, "transaction already closed")

    # statement
    PS_CONNECT_TIMEOUT = (ErrorCodeBlock.STATEMENT + 1, "prepared statement connect timeout")
    PS_CLOSE_TIMEOUT = (ErrorCodeBlock.STATEMENT + 901, "prepared statement close timeout")
    PS_CLOSE_ERROR = (ErrorCodeBlock.STATEMENT + 902, "prepared statement close error")

    # result
    RS_CONNECT_TIMEOUT = (ErrorCodeBlock.RESULT + 101, "resultSet connect timeout")
    RS_CLOSE_TIMEOUT = (ErrorCodeBlock.RESULT + 191, "resultSet close timeout")
    RS_CLOSE_ERROR = (ErrorCodeBlock.RESULT + 192, "resultSet close error")
    RESULT_CONNECT_TIMEOUT = (ErrorCodeBlock.RESULT + 201, "executeResult connect timeout")
    RESULT_CLOSE_TIMEOUT = (ErrorCodeBlock.RESULT + 291, "executeResult close timeout")
    RESULT_CLOSE_ERROR = (ErrorCodeBlock.RESULT + 292, "executeResult close error")
    RESULT_ALREADY_CLOSED = (ErrorCodeBlock.RESULT + 909, "result already closed")

    # explain
    EXPLAIN_CONNECT_TIMEOUT = (ErrorCodeBlock.EXPLAIN + 1, "explain connect timeout")
    EXPLAIN_CLOSE_TIMEOUT = (ErrorCodeBlock.EXPLAIN + 901, "explain close timeout")

    def __init__(self, number: int, message: str):
        self._number = number
        self.message = message

    @property
    def code_number(self) -> int:
        return self._number

    @property
    def structured_code(self) -> str:
        return format_structured_code(ERROR_CODE_PREFIX, self._number)

    @property
    def code_name(self) -> str:
        return self.name

    @property
    def is_timeout(self) -> bool:
        return self.name.endswith("TIMEOUT")

    def __str__(self) -> str:
        return f"{self.structured_code} {self.message}"


class SqlServiceCode(DiagnosticCode, Enum):
    """
    Diagnostic codes reported by the SQL service

    The server groups its codes in blocks of 1000; the 4000 block is the
    concurrency-control (serialization failure) category.
    """

    SQL_SERVICE_EXCEPTION = 1000
    SQL_EXECUTION_EXCEPTION = 2000
    CONSTRAINT_VIOLATION_EXCEPTION = 2001
    UNIQUE_CONSTRAINT_VIOLATION_EXCEPTION = 2002
    NOT_NULL_CONSTRAINT_VIOLATION_EXCEPTION = 2003
    REFERENTIAL_INTEGRITY_CONSTRAINT_VIOLATION_EXCEPTION = 2004
    CHECK_CONSTRAINT_VIOLATION_EXCEPTION = 2005
    EVALUATION_EXCEPTION = 2010
    VALUE_EVALUATION_EXCEPTION = 2011
    SCALAR_SUBQUERY_EVALUATION_EXCEPTION = 2012
    TARGET_NOT_FOUND_EXCEPTION = 2014
    TARGET_ALREADY_EXISTS_EXCEPTION = 2016
    INCONSISTENT_STATEMENT_EXCEPTION = 2018
    RESTRICTED_OPERATION_EXCEPTION = 2020
    DEPENDENCIES_VIOLATION_EXCEPTION = 2021
    WRITE_OPERATION_BY_RTX_EXCEPTION = 2022
    LTX_WRITE_OPERATION_WITHOUT_WRITE_PRESERVE_EXCEPTION = 2023
    READ_OPERATION_ON_RESTRICTED_READ_AREA_EXCEPTION = 2024
    INACTIVE_TRANSACTION_EXCEPTION = 2025
    PARAMETER_APPLICATION_EXCEPTION = 2027
    UNRESOLVED_PLACEHOLDER_EXCEPTION = 2028
    LOAD_FILE_EXCEPTION = 2030
    COMPILE_EXCEPTION = 3000
    SYNTAX_EXCEPTION = 3001
    ANALYZE_EXCEPTION = 3002
    TYPE_ANALYZE_EXCEPTION = 3003
    SYMBOL_ANALYZE_EXCEPTION = 3004
    VALUE_ANALYZE_EXCEPTION = 3005
    UNSUPPORTED_COMPILER_FEATURE_EXCEPTION = 3010
    CC_EXCEPTION = 4000
    OCC_EXCEPTION = 4001
    OCC_READ_EXCEPTION = 4010
    CONFLICT_ON_WRITE_PRESERVE_EXCEPTION = 4015
    OCC_WRITE_EXCEPTION = 4011
    LTX_EXCEPTION = 4003
    LTX_READ_EXCEPTION = 4013
    LTX_WRITE_EXCEPTION = 4014
    RTX_EXCEPTION = 4005
    BLOCKED_BY_CONCURRENT_OPERATION_EXCEPTION = 4020
    INTERNAL_EXCEPTION = 5000
    UNSUPPORTED_RUNTIME_FEATURE_EXCEPTION = 5001
    BLOCKED_BY_HIGH_PRIORITY_TRANSACTION_EXCEPTION = 5002
    INVALID_RUNTIME_VALUE_EXCEPTION = 5004
    VALUE_OUT_OF_RANGE_EXCEPTION = 5005
    VALUE_TOO_LONG_EXCEPTION = 5006
    INVALID_DECIMAL_VALUE_EXCEPTION = 5007
    REQUEST_FAILURE_EXCEPTION = 6000
    TRANSACTION_NOT_FOUND_EXCEPTION = 6001
    STATEMENT_NOT_FOUND_EXCEPTION = 6002
    DUMP_FILE_EXCEPTION = 6003
    LOAD_FILE_FORMAT_EXCEPTION = 6004
    TRANSACTION_EXCEEDED_LIMIT_EXCEPTION = 6005
    SQL_REQUEST_TIMED_OUT_EXCEPTION = 6006

    @property
    def code_number(self) -> int:
        return self.value

    @property
    def code_name(self) -> str:
        return self.name

    @property
    def structured_code(self) -> str:
        return format_structured_code(SQL_CODE_PREFIX, self.value)

    def __str__(self) -> str:
        return f"{self.structured_code} {self.name}"


@dataclass(frozen=True)
class ServerDiagnosticCode(DiagnosticCode):
    """A server code not known to this client (reported as-is)"""
    prefix: str
    number: int
    name: str = "UNKNOWN"

    @property
    def code_number(self) -> int:
        return self.number

    @property
    def code_name(self) -> str:
        return self.name

    @property
    def structured_code(self) -> str:
        return format_structured_code(self.prefix, self.number)

    def __str__(self) -> str:
        return f"{self.structured_code} {self.name}"


def parse_structured_code(structured_code: str, name: Optional[str] = None) -> DiagnosticCode:
    """
    Parse a structured code such as ``SQL-04000``

    Args:
        structured_code: Code in ``PREFIX-NNNNN`` form
        name: Optional name reported alongside the code

    Returns:
        Known SqlServiceCode/ErrorCode member, or a ServerDiagnosticCode

    Raises:
        ValueError: If the code is malformed
    """
    prefix, sep, number = structured_code.partition("-")
    if not sep or not number.isdigit():
        raise ValueError(f"Invalid structured code: {structured_code}")

    value = int(number)
    if prefix == SQL_CODE_PREFIX:
        try:
            return SqlServiceCode(value)
        except ValueError:
            pass
    elif prefix == ERROR_CODE_PREFIX:
        for code in ErrorCode:
            if code.code_number == value:
                return code

    return ServerDiagnosticCode(prefix=prefix, number=value, name=name or "UNKNOWN")
