"""
Tests for the seed dataset builders.
"""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from gridcache.dataset import JsonDatasetBuilder, SampleDatasetBuilder
from gridcache.exceptions import SerializationError
from gridcache.types import Schema


class TestSampleDatasetBuilder:
    """Test records generated from the schema sample."""

    @pytest.mark.asyncio
    async def test_builds_requested_size(self, schema: Schema) -> None:
        records = await SampleDatasetBuilder(schema)(5)

        assert list(records) == [0, 1, 2, 3, 4]
        assert all(record["ID"] == key for key, record in records.items())

    @pytest.mark.asyncio
    async def test_records_follow_sample_shape(self) -> None:
        schema = Schema(
            name="T",
            sample={"ID": -1, "Name": " ", "Score": 0, "Ratio": 0.5, "Active": True},
        )
        record = (await SampleDatasetBuilder(schema)(3))[2]

        assert record == {"ID": 2, "Name": "Name-2", "Score": 2, "Ratio": 2.0, "Active": True}
        assert list(record) == list(schema.sample)

    @pytest.mark.asyncio
    async def test_zero_size(self, schema: Schema) -> None:
        assert await SampleDatasetBuilder(schema)(0) == {}


class TestJsonDatasetBuilder:
    """Test loading seed rows from a JSON file."""

    @pytest.mark.asyncio
    async def test_assigns_identity_by_position(self, temp_dir: Path) -> None:
        path = temp_dir / "channels.json"
        path.write_bytes(
            orjson.dumps([{"Call_Sign": "KABC"}, {"Call_Sign": "KCBS", "ID": 77}])
        )

        records = await JsonDatasetBuilder(path)(10)

        assert records == {
            0: {"Call_Sign": "KABC", "ID": 0},
            1: {"Call_Sign": "KCBS", "ID": 1},
        }

    @pytest.mark.asyncio
    async def test_truncates_to_size(self, temp_dir: Path) -> None:
        path = temp_dir / "rows.json"
        path.write_bytes(orjson.dumps([{"n": i} for i in range(10)]))

        records = await JsonDatasetBuilder(path, identity="Key")(4)

        assert list(records) == [0, 1, 2, 3]
        assert records[3] == {"n": 3, "Key": 3}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, temp_dir: Path) -> None:
        path = temp_dir / "bad.json"
        path.write_text("{oops")
        with pytest.raises(SerializationError):
            await JsonDatasetBuilder(path)(1)

    @pytest.mark.asyncio
    async def test_non_array_raises(self, temp_dir: Path) -> None:
        path = temp_dir / "object.json"
        path.write_text('{"rows": []}')
        with pytest.raises(SerializationError):
            await JsonDatasetBuilder(path)(1)

    @pytest.mark.asyncio
    async def test_missing_file_raises_os_error(self, temp_dir: Path) -> None:
        with pytest.raises(OSError):
            await JsonDatasetBuilder(temp_dir / "missing.json")(1)
