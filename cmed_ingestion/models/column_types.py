"""Column type tags and value coercion outcomes."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class ColumnType(str, Enum):
    """Type inferred for a column from a sample of its values."""
    DATE = "date"
    NUMERIC = "numeric"
    STRING = "string"
    UNKNOWN = "unknown"


ColumnTypeMap = Dict[str, ColumnType]


class CoercionStatus(str, Enum):
    """How a single value fared when coerced to its column type."""
    OK = "ok"
    UNCHANGED = "unchanged"
    INVALID = "invalid"


@dataclass(frozen=True)
class CoercionOutcome:
    """Result of coercing one raw value.

    ``value`` is what the lenient pipeline stores in the row: the converted
    value for OK, the original for UNCHANGED, and NaN (numbers) or the
    original (dates) for INVALID. Callers wanting strict handling inspect
    ``status`` instead of guessing from the value.
    """
    status: CoercionStatus
    value: Any
    original: Any

    @classmethod
    def ok(cls, value: Any, original: Any) -> "CoercionOutcome":
        return cls(CoercionStatus.OK, value, original)

    @classmethod
    def unchanged(cls, original: Any) -> "CoercionOutcome":
        return cls(CoercionStatus.UNCHANGED, original, original)

    @classmethod
    def invalid(cls, value: Any, original: Any) -> "CoercionOutcome":
        return cls(CoercionStatus.INVALID, value, original)

    @property
    def is_ok(self) -> bool:
        return self.status is CoercionStatus.OK
