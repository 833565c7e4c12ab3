"""Tests for coercion helpers and backend error classification."""

import math
import sqlite3

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from exportops.calc.validators import (
    coerce_number,
    combine_warnings,
    is_missing_column_error,
    is_missing_relation_error,
    is_missing_table_error,
    matches_date_range,
    parse_timestamp,
    summarize_warning,
)


class TestCoerceNumber:
    """Numbers arrive as floats, ints, Decimals or locale strings."""

    def test_comma_decimal_separator(self):
        assert coerce_number("12,5") == 12.5

    def test_garbage_uses_fallback(self):
        assert coerce_number("abc", 7) == 7

    @pytest.mark.parametrize("value", [None, "", "   ", True, "1_000", float("nan"), float("inf"), "inf"])
    def test_non_numbers_fall_back(self, value):
        assert coerce_number(value, -1.0) == -1.0

    def test_plain_numbers_pass_through(self):
        assert coerce_number(3) == 3.0
        assert coerce_number(" 42.25 ") == 42.25

    def test_result_is_always_finite(self):
        for value in ["1e400", "-1e400", "NaN", 1e308 * 10]:
            assert math.isfinite(coerce_number(value))


class TestDates:
    def test_parse_timestamp_accepts_z_suffix(self):
        assert parse_timestamp("2024-01-01T00:00:00Z") == parse_timestamp("2024-01-01")

    def test_parse_timestamp_rejects_garbage(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None

    def test_range_without_bounds_matches_everything(self):
        assert matches_date_range(None)
        assert matches_date_range("garbage")

    def test_range_is_inclusive(self):
        assert matches_date_range("2024-03-01", "2024-03-01", "2024-03-31")
        assert matches_date_range("2024-03-31", "2024-03-01", "2024-03-31")
        assert not matches_date_range("2024-04-01", "2024-03-01", "2024-03-31")

    def test_undated_row_never_matches_bounded_range(self):
        assert not matches_date_range(None, "2024-01-01")

    def test_unparsable_bound_is_ignored(self):
        assert matches_date_range("2024-03-15", "someday", "2024-12-31")


class _PgError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


class TestErrorClassification:
    """Schema drift must be told apart from genuine faults."""

    def test_postgres_codes(self):
        assert is_missing_relation_error(_PgError("boom", "42P01"))
        assert is_missing_column_error(_PgError("boom", "42703"))
        assert not is_missing_relation_error(_PgError("column x does not exist", "42703"))

    def test_messages(self):
        assert is_missing_relation_error(Exception('relation "v_sales_invoices_enriched" does not exist'))
        assert is_missing_column_error(Exception("column sales_invoices.invoice_date does not exist"))

    def test_sqlalchemy_wrapped_sqlite_errors(self):
        table_error = OperationalError("SELECT 1", {}, sqlite3.OperationalError("no such table: om_rates"))
        column_error = OperationalError("SELECT 1", {}, sqlite3.OperationalError("no such column: created_at"))
        assert is_missing_relation_error(table_error)
        assert not is_missing_column_error(table_error)
        assert is_missing_column_error(column_error)
        assert not is_missing_relation_error(column_error)

    def test_genuine_faults_are_not_schema_drift(self):
        syntax = ProgrammingError("SELECT", {}, Exception('syntax error at or near "FROM"'))
        assert not is_missing_table_error(syntax)
        assert not is_missing_table_error(ValueError("invalid input syntax for type date"))
        assert not is_missing_table_error(None)

    def test_undefined_operator_or_function_is_a_fault(self):
        operator = ProgrammingError("SELECT", {}, _PgError("operator does not exist: date >= integer", "42883"))
        function = _PgError("function lower(integer) does not exist", "42883")
        assert not is_missing_table_error(operator)
        assert not is_missing_table_error(function)


class TestWarnings:
    def test_summarize(self):
        assert summarize_warning("Tables manquantes") == "Tables manquantes"
        assert summarize_warning("TVA", "absente") == "TVA: absente"

    def test_combine_dedupes_and_skips_empty(self):
        assert combine_warnings(None, "a", "", "b", "a") == "a | b"
        assert combine_warnings(None, "") is None
