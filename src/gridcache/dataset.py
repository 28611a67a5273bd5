"""
Dataset builders used to seed an empty durable store.

A builder is any async callable taking the requested size and returning a
working set keyed by the identity value. Identities are 0-based indexes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import orjson

from gridcache.exceptions import SerializationError
from gridcache.logging import get_logger
from gridcache.types import Record, Schema, WorkingSet

logger = get_logger(__name__)


class DatasetBuilder(Protocol):
    """Builds the seed working set for an empty store."""

    async def __call__(self, size: int) -> WorkingSet: ...


class SampleDatasetBuilder:
    """Generate ``size`` records shaped like the schema sample."""

    def __init__(self, schema: Schema) -> None:
        self.schema = schema

    def _make_value(self, column: str, sample: Any, index: int) -> Any:
        if column == self.schema.identity:
            return index
        if isinstance(sample, bool):
            return index % 2 == 0
        if isinstance(sample, (int, float)):
            return type(sample)(index)
        if isinstance(sample, str):
            return f"{column}-{index}"
        return sample

    def build_record(self, index: int) -> Record:
        return {
            column: self._make_value(column, sample, index)
            for column, sample in self.schema.sample.items()
        }

    async def __call__(self, size: int) -> WorkingSet:
        records = {index: self.build_record(index) for index in range(size)}
        logger.info("Built sample dataset", schema=self.schema.name, size=len(records))
        return records


class JsonDatasetBuilder:
    """Load records from a JSON array of objects.

    Each record's identity attribute is overwritten with its position in the
    file. At most ``size`` records are kept.
    """

    def __init__(self, path: str | Path, identity: str = "ID") -> None:
        self.path = Path(path)
        self.identity = identity

    async def __call__(self, size: int) -> WorkingSet:
        try:
            rows = orjson.loads(self.path.read_bytes())
        except orjson.JSONDecodeError as e:
            raise SerializationError(
                "Dataset file is not valid JSON",
                context={"path": str(self.path), "error": str(e)},
            ) from e
        if not isinstance(rows, list):
            raise SerializationError(
                "Dataset file must contain a JSON array",
                context={"path": str(self.path)},
            )

        records: WorkingSet = {}
        for index, row in enumerate(rows[:size]):
            record = dict(row)
            record[self.identity] = index
            records[index] = record

        if len(records) < size:
            logger.warning(
                "Dataset file has fewer rows than requested",
                path=str(self.path),
                requested=size,
                available=len(records),
            )
        logger.info("Loaded dataset", path=str(self.path), size=len(records))
        return records
