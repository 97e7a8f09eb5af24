"""Declared column types and value coercion.

A schema is a plain ``dict[str, str]`` mapping column name to one of the type names in
``COLUMN_TYPES``. Values are checked once at encode time; readers can then rely on the
physical type of every column.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import polars as pl

from partscan.errors import SchemaViolationError

STRING = "string"
INT64 = "int64"
INT32 = "int32"
TIMESTAMP = "timestamp"

COLUMN_TYPES = (STRING, INT64, INT32, TIMESTAMP)

TIMESTAMP_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d")

# ASCII base-10 only: no "1_000", no non-ASCII digits
_INT_RE = re.compile(r"[+-]?[0-9]+")

_INT_BOUNDS = {
    INT64: (-(2**63), 2**63 - 1),
    INT32: (-(2**31), 2**31 - 1),
}

_POLARS_TYPES = {
    STRING: pl.String,
    INT64: pl.Int64,
    INT32: pl.Int32,
    TIMESTAMP: pl.String,
}

_DUCKDB_TYPES = {
    STRING: "VARCHAR",
    INT64: "BIGINT",
    INT32: "INTEGER",
    TIMESTAMP: "VARCHAR",
}


def validate_schema(schema: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``schema`` with normalized type names.

    Raises SchemaViolationError for unknown type names.
    """
    out: dict[str, str] = {}
    for name, type_name in schema.items():
        t = str(type_name).strip().lower()
        if t not in COLUMN_TYPES:
            raise SchemaViolationError(
                f"Unknown type {type_name!r} for column {name!r}; "
                f"expected one of {', '.join(COLUMN_TYPES)}",
                column=name,
                value=type_name,
            )
        out[name] = t
    return out


def parse_schema(text: str) -> dict[str, str]:
    """Parse ``col:type,col:type`` as used on the command line."""
    schema: dict[str, str] = {}
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        name, sep, type_name = part.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Expected col:type, got {part!r}")
        schema[name.strip()] = type_name.strip()
    return validate_schema(schema)


def format_schema(schema: Mapping[str, str]) -> str:
    return ",".join(f"{name}:{t}" for name, t in schema.items())


def coerce_value(
    raw: str,
    type_name: str,
    *,
    column: str | None = None,
    unit: str | None = None,
    line: int | None = None,
) -> Any:
    """Coerce one text field to its declared type.

    Empty fields are nulls for every type except ``string``.
    """
    if type_name == STRING:
        return raw
    if raw == "":
        return None

    if type_name in _INT_BOUNDS:
        text = raw.strip()
        if not _INT_RE.fullmatch(text):
            raise SchemaViolationError(
                f"Cannot coerce {raw!r} to {type_name} (column {column!r}, unit {unit}, line {line})",
                unit=unit,
                column=column,
                value=raw,
                line=line,
            )
        value = int(text)
        lo, hi = _INT_BOUNDS[type_name]
        if value < lo or value > hi:
            raise SchemaViolationError(
                f"Value {value} out of {type_name} range (column {column!r}, unit {unit}, line {line})",
                unit=unit,
                column=column,
                value=raw,
                line=line,
            )
        return value

    if type_name == TIMESTAMP:
        for fmt in TIMESTAMP_FORMATS:
            try:
                datetime.strptime(raw, fmt)
                return raw
            except ValueError:
                continue
        raise SchemaViolationError(
            f"Cannot parse {raw!r} as timestamp (column {column!r}, unit {unit}, line {line})",
            unit=unit,
            column=column,
            value=raw,
            line=line,
        )

    raise SchemaViolationError(f"Unknown type {type_name!r}", column=column, value=raw)


def polars_dtype(type_name: str) -> pl.DataType:
    return _POLARS_TYPES[type_name]


def duckdb_type(type_name: str) -> str:
    return _DUCKDB_TYPES[type_name]


def polars_schema(schema: Mapping[str, str]) -> dict[str, pl.DataType]:
    return {name: polars_dtype(t) for name, t in schema.items()}


def dtype_conforms(dtype: pl.DataType, type_name: str) -> bool:
    """True if a physical Polars dtype stores values of the declared type."""
    return dtype == _POLARS_TYPES[type_name]
