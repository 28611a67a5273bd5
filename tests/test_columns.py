"""
Tests for column descriptor derivation.
"""

from __future__ import annotations

import pytest

from gridcache.columns import build_columns, infer_type
from gridcache.types import Schema, SortState


class TestInferType:
    """Test sample value type names."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (1, "number"),
            (1.5, "number"),
            ("x", "string"),
            (True, "boolean"),
            (None, "null"),
            ([1], "object"),
        ],
    )
    def test_infer_type(self, value: object, expected: str) -> None:
        assert infer_type(value) == expected


class TestBuildColumns:
    """Test read-only detection and ordering."""

    def test_explicit_read_only_list(self) -> None:
        schema = Schema(
            name="Channels",
            sample={"ID": 0, "Call_Sign": " ", "Band": " "},
            read_only=("ID", "Band"),
        )
        columns = build_columns(schema)

        assert [c.name for c in columns] == ["ID", "Call_Sign", "Band"]
        assert [c.read_only for c in columns] == [True, False, True]

    def test_explicit_list_overrides_sentinels(self) -> None:
        schema = Schema(name="T", sample={"ID": -1, "Note": "READONLY"}, read_only=())
        assert not any(c.read_only for c in build_columns(schema))

    def test_sentinels_without_explicit_list(self) -> None:
        schema = Schema(
            name="T",
            sample={"ID": -1, "Owner": "READONLY", "Count": 0, "Name": " ", "Flag": True},
        )
        columns = {c.name: c for c in build_columns(schema)}

        assert columns["ID"].read_only
        assert columns["Owner"].read_only
        assert not columns["Count"].read_only
        assert not columns["Name"].read_only
        assert not columns["Flag"].read_only

    def test_float_minus_one_is_not_a_sentinel(self) -> None:
        schema = Schema(name="T", sample={"Ratio": -1.0})
        assert not build_columns(schema)[0].read_only

    def test_unknown_read_only_column_raises(self) -> None:
        schema = Schema(name="T", sample={"ID": 0}, read_only=("Missing",))
        with pytest.raises(ValueError):
            build_columns(schema)

    def test_columns_start_unordered(self) -> None:
        schema = Schema(name="T", sample={"ID": 0, "Name": " "})
        columns = build_columns(schema)
        assert all(c.order is SortState.UNORDERED for c in columns)
        assert columns[0].to_dict() == {
            "name": "ID",
            "type": "number",
            "readOnly": False,
            "order": "UNORDERED",
        }
