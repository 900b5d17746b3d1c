"""Tests for the dtengine.transform.columns module."""

import pytest

from dtengine.transform import (
    NESTED_TABLES_KEY,
    DerivedColumn,
    PercentageColumn,
    build_column_meta,
    discover_columns,
)
from dtengine.values import ColumnType

_ROWS = [
    {"name": "Acme", "amount": 120, "active": True, "won": 10, "target": 30},
    {"name": "Beta", "amount": 80, "active": False, "won": 20, "target": 40},
    {"name": "Core", "amount": 42, "active": True, "extra": "x", NESTED_TABLES_KEY: {}},
    {"name": "Dyn", "amount": 10, "active": False, "won": 5, "target": 0},
]


class TestPercentageColumn:
    """Tests for PercentageColumn."""

    def test_compute(self):
        pc = PercentageColumn(column_name="rate", target_field="target", value_field="won")
        assert pc.compute(_ROWS[0]) == pytest.approx(33.333, abs=0.001)
        assert pc.compute(_ROWS[2]) is None
        assert pc.compute(_ROWS[3]) is None

    def test_is_complete(self):
        assert PercentageColumn(column_name="r", target_field="t", value_field="v").is_complete()
        assert not PercentageColumn(column_name=" ", target_field="t", value_field="v").is_complete()


class TestBuildColumnMeta:
    """Tests for discover_columns and build_column_meta."""

    def test_discover_columns(self):
        assert discover_columns(_ROWS) == ["name", "amount", "active", "won", "target", "extra"]

    def test_types_and_multiselect(self):
        meta = build_column_meta(_ROWS, text_filter_columns=["extra"])
        assert meta.column_type("amount") == ColumnType.NUMBER
        assert meta.column_type("active") == ColumnType.BOOLEAN
        assert meta.column_type("name") == ColumnType.STRING
        assert meta.multiselect_columns == frozenset({"name"})

    def test_filter_disabled(self):
        assert build_column_meta(_ROWS, enable_filter=False).multiselect_columns == frozenset()

    def test_allowed_columns_and_overrides(self):
        meta = build_column_meta(
            _ROWS,
            allowed_columns=["name", "amount"],
            overrides={"amount": ColumnType.STRING},
        )
        assert meta.columns == ("name", "amount")
        assert meta.column_type("amount") == ColumnType.STRING
        assert "extra" in meta.all_columns

    def test_derived_columns(self):
        derived = [
            DerivedColumn(
                column_name="double",
                compute=lambda row, context: row["amount"] * 2,
                column_type=ColumnType.NUMBER,
                position=1,
            )
        ]
        meta = build_column_meta(_ROWS, allowed_columns=["name", "amount"], derived_columns=derived)
        assert meta.columns == ("name", "double", "amount")
        assert meta.column_type("double") == ColumnType.NUMBER

    def test_percentage_cell_value(self):
        pc = PercentageColumn(column_name="rate", target_field="target", value_field="won")
        meta = build_column_meta(_ROWS, percentage_columns=[pc])
        assert meta.percentage_column_names == ("rate",)
        assert meta.cell_value(_ROWS[0], "rate") == pytest.approx(100 / 3)
        assert meta.cell_value(_ROWS[0], "name") == "Acme"

    def test_no_rows(self):
        meta = build_column_meta([])
        assert meta.columns == ()
        assert meta.column_type("anything") == ColumnType.STRING
