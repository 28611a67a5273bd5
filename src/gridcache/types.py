"""
Core types for gridcache.

This module defines the data structures shared by the cache, the transport
and the storage worker:
- Enums for procedures, sort state and per-request worker state
- Frozen dataclasses for the schema, column descriptors and cache options
- Wire envelopes exchanged across the worker boundary
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

Record = dict[str, Any]
WorkingSet = dict[int, Record]

# GET result when the durable store has no entry for the key
NOT_FOUND = "NOT FOUND"

# Prefix of the marker strings returned instead of raising at the cache boundary
ERROR_PREFIX = "Error "

# Sample values that mark a column read-only when no explicit list is given
READONLY_SENTINELS: tuple[Any, ...] = (-1, "READONLY")


class Procedure(str, Enum):
    """Procedures understood by the storage worker."""

    GET = "GET"
    SET = "SET"


class SortState(str, Enum):
    """Sort state of a column."""

    UNORDERED = "UNORDERED"
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


class RequestState(str, Enum):
    """Lifecycle of a single request inside the storage worker."""

    RECEIVED = "received"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Schema:
    """Describes the rows held by a cache.

    ``sample`` is one representative record. ``read_only`` lists the columns
    the UI must not edit; when it is None the sample's sentinel values decide.
    """

    name: str
    sample: Record
    read_only: tuple[str, ...] | None = None
    identity: str = "ID"


@dataclass(frozen=True)
class ColumnDescriptor:
    """Metadata for one column, derived once from the schema sample."""

    name: str
    type: str
    read_only: bool = False
    order: SortState = SortState.UNORDERED

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "readOnly": self.read_only,
            "order": self.order.value,
        }


@dataclass(frozen=True)
class CacheOptions:
    """Construction options for a cache."""

    schema: Schema
    size: int

    @property
    def store_key(self) -> str:
        """The cache's sole durable-store key."""
        return f"{self.schema.name}-{self.size}"


@dataclass(frozen=True)
class RequestPayload:
    """Body of a request envelope."""

    procedure: str
    key: str
    value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"procedure": self.procedure, "key": self.key}
        if self.value is not None:
            data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RequestPayload:
        return cls(
            procedure=data["procedure"],
            key=data["key"],
            value=data.get("value"),
        )


@dataclass(frozen=True)
class RequestEnvelope:
    """``{id, payload}`` sent from the cache to the storage worker."""

    id: int
    payload: RequestPayload

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "payload": self.payload.to_dict()}


@dataclass(frozen=True)
class ResponseEnvelope:
    """``{id, error, result}`` sent from the storage worker back to the cache."""

    id: int
    error: dict[str, str] | None = None
    result: Any = None

    @classmethod
    def success(cls, request_id: int, result: Any) -> ResponseEnvelope:
        return cls(id=request_id, error=None, result=result)

    @classmethod
    def failure(cls, request_id: int, message: str) -> ResponseEnvelope:
        return cls(id=request_id, error={"message": message}, result=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "error": self.error, "result": self.result}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponseEnvelope:
        return cls(id=data["id"], error=data.get("error"), result=data.get("result"))


@dataclass
class HydrationStats:
    """Timings of the last hydrate, in milliseconds."""

    fetch_ms: float = 0.0
    parse_ms: float = 0.0
    build_ms: float = 0.0
    records: int = 0

    @property
    def total_ms(self) -> float:
        return self.fetch_ms + self.parse_ms + self.build_ms
