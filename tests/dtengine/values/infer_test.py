"""Tests for the dtengine.values.infer module."""

import pytest

from dtengine.values import (
    ColumnType,
    distributed_samples,
    infer_column_type,
    infer_column_types,
    is_boolean_value,
    is_numeric_value,
    parse_column_type,
    to_number,
)


def _rows(field: str, values: list) -> list[dict]:
    return [{field: value} for value in values]


class TestScalars:
    """Tests for the scalar classifiers."""

    @pytest.mark.parametrize("value", [True, "yes", "N", "1", 0, " false "])
    def test_booleans(self, value):
        assert is_boolean_value(value)

    @pytest.mark.parametrize("value", ["maybe", 2, None, "2024-01-01"])
    def test_not_booleans(self, value):
        assert not is_boolean_value(value)

    @pytest.mark.parametrize("value", [3, 2.5, "1,234.5", "-7", "1e3"])
    def test_numbers(self, value):
        assert is_numeric_value(value)

    @pytest.mark.parametrize("value", [True, "", "abc", "1.2.3", None])
    def test_not_numbers(self, value):
        assert not is_numeric_value(value)

    def test_to_number(self):
        assert to_number("1,000") == 1000.0
        assert to_number(4) == 4.0
        assert to_number("abc") is None
        assert to_number(None) is None
        assert to_number(float("nan")) is None

    def test_parse_column_type(self):
        assert parse_column_type(" Number ") == ColumnType.NUMBER
        assert parse_column_type("unknown") is None
        assert parse_column_type(None) is None


class TestInferColumnType:
    """Tests for infer_column_type."""

    def test_number(self):
        rows = _rows("amount", [10, 20, "30", 40.5, 50, 60])
        assert infer_column_type(rows, "amount") == ColumnType.NUMBER

    def test_boolean_before_number(self):
        rows = _rows("flag", [1, 0, 1, 0, 1, 0])
        assert infer_column_type(rows, "flag") == ColumnType.BOOLEAN

    def test_date(self):
        rows = _rows("day", ["2024-01-01", "2024-01-02", "2024-02-01", "2024-03-01"])
        assert infer_column_type(rows, "day") == ColumnType.DATE

    def test_mixed_is_string(self):
        rows = _rows("code", ["2", "10", "abc", "x", "20", "y"])
        assert infer_column_type(rows, "code") == ColumnType.STRING

    def test_empty_rows(self):
        assert infer_column_type([], "any") == ColumnType.STRING

    def test_override_wins(self):
        rows = _rows("code", ["a", "b", "c", "d"])
        assert infer_column_type(rows, "code", "number") == ColumnType.NUMBER

    def test_nested_field(self):
        rows = [{"user": {"age": age}} for age in (21, 34, 45, 52)]
        assert infer_column_type(rows, "user.age") == ColumnType.NUMBER

    def test_infer_column_types(self):
        rows = [{"a": n * 10, "b": f"name{n}"} for n in range(1, 7)]
        assert infer_column_types(rows, ["a", "b"], {"b": "date"}) == {
            "a": ColumnType.NUMBER,
            "b": ColumnType.DATE,
        }


class TestDistributedSamples:
    """Tests for distributed_samples."""

    def test_half_the_rows(self):
        rows = _rows("n", list(range(1, 13)))
        samples = distributed_samples(rows, "n")
        assert len(samples) == 6
        assert samples[0] == 1

    def test_skips_nulls(self):
        rows = _rows("n", [None, None, 5, None])
        samples = distributed_samples(rows, "n")
        assert samples
        assert all(value == 5 for value in samples)

    def test_single_row(self):
        assert distributed_samples(_rows("n", [1]), "n") == [1]
        assert infer_column_type(_rows("n", [5]), "n") == ColumnType.NUMBER

    def test_no_rows(self):
        assert distributed_samples([], "n") == []
