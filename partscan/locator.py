"""Dataset discovery over flat or hive-partitioned directory trees.

Opening a dataset only walks directory entries: no unit is opened or read, so the cost
is proportional to the number of paths, not to the data size.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from partscan.config import DEFAULT_DELIMITER
from partscan.errors import NotFoundError, SchemaViolationError
from partscan.schema import STRING, coerce_value, validate_schema

ROW = "row"
COLUMN = "column"

UNIT_SUFFIXES = {
    ".csv": ROW,
    ".parquet": COLUMN,
}


@dataclass(frozen=True)
class Unit:
    path: Path
    encoding: str
    # ((key, raw value), ...) from key=value directories, outermost first
    partitions: tuple[tuple[str, str], ...] = ()

    @property
    def partition_values(self) -> dict[str, str]:
        return dict(self.partitions)

    @property
    def name(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class Dataset:
    root: Path
    schema: dict[str, str]
    units: tuple[Unit, ...]
    encoding: str
    partition_columns: tuple[str, ...] = ()
    delimiter: str = DEFAULT_DELIMITER
    # typed partition values per unit path, resolved once at open
    _typed_partitions: dict[Path, dict[str, Any]] = field(
        default_factory=dict, repr=False, compare=False
    )

    @property
    def columns(self) -> list[str]:
        return list(self.schema)

    @property
    def physical_columns(self) -> list[str]:
        return [c for c in self.schema if c not in self.partition_columns]

    def is_partition_column(self, column: str) -> bool:
        return column in self.partition_columns

    def partition_value(self, unit: Unit, column: str) -> Any:
        """Typed value of a partition column for one unit (None if the unit lacks it)."""
        return self._typed_partitions.get(unit.path, {}).get(column)

    @property
    def size_mb(self) -> float:
        total = sum(os.stat(u.path).st_size for u in self.units)
        return total / (1024 * 1024)

    def __len__(self) -> int:
        return len(self.units)


def parse_partition_segment(segment: str) -> tuple[str, str] | None:
    """Parse a hive-style ``key=value`` directory name."""
    key, sep, value = segment.partition("=")
    if not sep or not key:
        return None
    return key, value


def _ignored(name: str) -> bool:
    return name.startswith(".") or name.startswith("_")


def discover_units(root: Path, encoding: str | None = None) -> list[Unit]:
    """Walk ``root`` and return every unit file, sorted by relative path."""
    units: list[Unit] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not _ignored(d))
        rel_parts = Path(dirpath).relative_to(root).parts
        partitions = tuple(
            kv for kv in (parse_partition_segment(p) for p in rel_parts) if kv is not None
        )
        for fn in sorted(filenames):
            if _ignored(fn):
                continue
            kind = UNIT_SUFFIXES.get(Path(fn).suffix.lower())
            if kind is None:
                continue
            if encoding is not None and kind != encoding:
                continue
            units.append(Unit(path=Path(dirpath) / fn, encoding=kind, partitions=partitions))
    units.sort(key=lambda u: u.path.relative_to(root).as_posix())
    return units


def open_dataset(
    root: str | os.PathLike,
    schema: Mapping[str, str],
    *,
    encoding: str | None = None,
    delimiter: str = DEFAULT_DELIMITER,
    allow_empty: bool = False,
) -> Dataset:
    """Open a dataset handle: partition discovery and schema checks only.

    Raises NotFoundError if ``root`` does not exist or has no units (unless
    ``allow_empty``), SchemaViolationError if the schema or a partition value is invalid.
    """
    root = Path(root)
    if not root.is_dir():
        raise NotFoundError(f"Dataset root not found: {root}", unit=str(root))
    if encoding is not None and encoding not in (ROW, COLUMN):
        raise ValueError(f"Unknown encoding: {encoding}")

    schema = validate_schema(schema)
    units = discover_units(root, encoding)

    if not units:
        if not allow_empty:
            raise NotFoundError(f"No units found under {root}", unit=str(root))
        return Dataset(
            root=root,
            schema=schema,
            units=(),
            encoding=encoding or COLUMN,
            delimiter=delimiter,
        )

    kinds = {u.encoding for u in units}
    if len(kinds) > 1:
        raise ValueError(
            f"Mixed row and column units under {root}; pass encoding='row' or 'column'"
        )
    kind = kinds.pop()

    partition_columns: list[str] = []
    for unit in units:
        for key, _ in unit.partitions:
            if key not in partition_columns:
                partition_columns.append(key)
    for key in partition_columns:
        # undeclared partition keys are plain strings
        schema.setdefault(key, STRING)

    typed: dict[Path, dict[str, Any]] = {}
    for unit in units:
        values: dict[str, Any] = {}
        for key, raw in unit.partitions:
            try:
                values[key] = coerce_value(raw, schema[key], column=key, unit=unit.name)
            except SchemaViolationError as e:
                raise SchemaViolationError(
                    f"Partition value {key}={raw!r} of {unit.path} does not conform to {schema[key]}",
                    unit=unit.name,
                    column=key,
                    value=raw,
                ) from e
        typed[unit.path] = values

    return Dataset(
        root=root,
        schema=schema,
        units=tuple(units),
        encoding=kind,
        partition_columns=tuple(partition_columns),
        delimiter=delimiter,
        _typed_partitions=typed,
    )
