"""
Transaction Options - immutable description of how a transaction is begun
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Tuple


class TransactionType(Enum):
    """Concurrency-control mode of a transaction"""
    OCC = "occ"
    LTX = "ltx"
    RTX = "rtx"


class CommitType(Enum):
    """Durability level the commit waits for"""
    DEFAULT = "default"
    ACCEPTED = "accepted"
    AVAILABLE = "available"
    STORED = "stored"
    PROPAGATED = "propagated"


@dataclass(frozen=True)
class TransactionOption:
    """
    Transaction option

    LTX lists its write-preserved tables up front. A DDL option is an LTX that
    may also run DDL.
    """
    type: TransactionType
    label: Optional[str] = None
    write_preserve: Tuple[str, ...] = ()
    include_ddl: bool = False

    @classmethod
    def of_occ(cls) -> "TransactionOption":
        return cls(TransactionType.OCC)

    @classmethod
    def of_ltx(cls, *write_preserve: str) -> "TransactionOption":
        return cls(TransactionType.LTX, write_preserve=tuple(write_preserve))

    @classmethod
    def of_rtx(cls) -> "TransactionOption":
        return cls(TransactionType.RTX)

    @classmethod
    def of_ddl(cls) -> "TransactionOption":
        return cls(TransactionType.LTX, include_ddl=True)

    def with_label(self, label: Optional[str]) -> "TransactionOption":
        return replace(self, label=label)

    def with_write_preserve(self, tables: Iterable[str]) -> "TransactionOption":
        return replace(self, write_preserve=tuple(tables))

    @property
    def is_occ(self) -> bool:
        return self.type == TransactionType.OCC

    @property
    def is_ltx(self) -> bool:
        return self.type == TransactionType.LTX

    @property
    def is_rtx(self) -> bool:
        return self.type == TransactionType.RTX

    @property
    def is_ddl(self) -> bool:
        return self.include_ddl

    def type_name(self) -> str:
        if self.include_ddl:
            return "DDL"
        return self.type.name

    def __str__(self) -> str:
        parts = [f"type={self.type_name()}"]
        if self.label is not None:
            parts.append(f"label={self.label}")
        if self.write_preserve:
            parts.append(f"writePreserve={list(self.write_preserve)}")
        return f"TransactionOption({', '.join(parts)})"
