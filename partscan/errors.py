"""Error taxonomy shared by the locator, codec, scan strategies and harness.

All errors carry enough context (unit path, column name) to diagnose a failed run and
survive a trip through a multiprocessing pipe or pool.
"""

from __future__ import annotations

from typing import Any


class PartscanError(Exception):
    def __init__(
        self, message: str, *, unit: str | None = None, column: str | None = None
    ) -> None:
        super().__init__(message)
        self.unit = unit
        self.column = column

    def __reduce__(self):
        # keep context attributes when pickled back from a worker process
        return (self.__class__, self.args, self.__dict__)


class NotFoundError(PartscanError):
    """Dataset root is missing or holds no units."""


class SchemaViolationError(PartscanError, ValueError):
    """A value or a unit does not conform to the declared schema."""

    def __init__(
        self,
        message: str,
        *,
        unit: str | None = None,
        column: str | None = None,
        value: Any = None,
        line: int | None = None,
    ) -> None:
        super().__init__(message, unit=unit, column=column)
        self.value = value
        self.line = line


class ColumnNotFoundError(PartscanError):
    """A wanted or predicate column is absent from the schema or a unit."""


class CountMismatchError(PartscanError):
    """Strategies disagreed on the total count for the same query."""

    def __init__(self, message: str, *, counts: dict[str, int] | None = None) -> None:
        super().__init__(message)
        self.counts = dict(counts or {})
