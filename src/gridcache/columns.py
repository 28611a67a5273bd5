"""
Column descriptors derived from a schema sample.
"""

from __future__ import annotations

from typing import Any

from gridcache.types import READONLY_SENTINELS, ColumnDescriptor, Schema, SortState


def infer_type(value: Any) -> str:
    """Map a sample value to a display type name."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if value is None:
        return "null"
    return "object"


def is_readonly_sentinel(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return any(
        type(value) is type(sentinel) and value == sentinel
        for sentinel in READONLY_SENTINELS
    )


def build_columns(schema: Schema) -> list[ColumnDescriptor]:
    """Build one descriptor per sample attribute, in sample order.

    An explicit ``schema.read_only`` list wins. Without one, a column is
    read-only when its sample value is -1 or "READONLY".
    """
    if schema.read_only is not None:
        unknown = set(schema.read_only) - set(schema.sample)
        if unknown:
            raise ValueError(
                f"read_only names columns missing from the sample: {sorted(unknown)}"
            )

    columns: list[ColumnDescriptor] = []
    for name, value in schema.sample.items():
        if schema.read_only is not None:
            read_only = name in schema.read_only
        else:
            read_only = is_readonly_sentinel(value)
        columns.append(
            ColumnDescriptor(
                name=str(name),
                type=infer_type(value),
                read_only=read_only,
                order=SortState.UNORDERED,
            )
        )
    return columns
