"""
Tests for SQL Server to PostgreSQL Type Mapping Module

These tests validate type mappings and the per-category value normalizers,
including temporal, hierarchical-path and binary edge cases.
"""

import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from catalog_migration.entities import CATEGORY, PRODUCT, PRODUCT_TAG
from catalog_migration.exceptions import UnsupportedConversion
from catalog_migration.type_mapping import (
    BINARY,
    BOOLEAN,
    DATE,
    DECIMAL,
    FLOAT,
    GEOGRAPHY,
    GEOMETRY,
    HIERARCHY_PATH,
    IDENTIFIER,
    INTEGER,
    TEXT,
    TIME,
    TIMESTAMP_INSTANT,
    TIMESTAMP_NAIVE,
    VERSION_STAMP,
    XML,
    ensure_unspecified_kind,
    ensure_utc_offset,
    get_supported_categories,
    get_type_mapping_summary,
    map_type,
    normalize_row,
    normalize_value,
    transform_geography,
    transform_geometry,
    transform_hierarchy_id,
    validate_type_mapping,
)


def _product_row(**overrides):
    values = {
        "Id": 1,
        "SmallIntField": 12,
        "BigIntField": 9_000_000_000,
        "TinyIntField": 255,
        "DecimalPrice": Decimal("199.99"),
        "MoneyField": Decimal("1234.5678"),
        "SmallMoneyField": Decimal("12.3400"),
        "FloatField": 3.14159,
        "RealField": 2.5,
        "VarcharField": "varchar",
        "NvarcharField": "Ünïcödé",
        "CharField": "CHAR      ",
        "NcharField": "NC   ",
        "TextField": None,
        "NtextField": "",
        "DateTimeField": datetime(2024, 1, 15, 10, 30, 0),
        "DateTime2Field": datetime(2024, 1, 15, 10, 30, 0, 123456),
        "DateField": date(2024, 1, 15),
        "TimeField": time(10, 30, 15),
        "DateTimeOffsetField": datetime(2024, 1, 15, 10, 0, tzinfo=timezone(timedelta(hours=5))),
        "SmallDateTimeField": datetime(2024, 1, 15, 10, 30),
        "BinaryField": bytes(range(16)),
        "VarbinaryField": bytes(range(37)),
        "BooleanField": True,
        "GuidField": uuid.UUID("6F9619FF-8B86-D011-B42D-00C04FC964FF"),
        "XmlField": "<root><a>1</a></root>",
        "HierarchyIdField": "/1/2/3/",
        "GeographyField": "POINT (-122.34 47.65)",
        "GeometryField": "",
        "RowVersion": b"\x00\x00\x00\x00\x00\x00\x07\xd1",
        "CategoryId": 3,
    }
    values.update(overrides)
    return tuple(values[column] for column in PRODUCT.column_names)


class TestMapType:
    """Test SQL Server to PostgreSQL type mapping."""

    def test_numeric_types(self):
        """Test numeric type mappings."""
        assert map_type("int") == "INTEGER"
        assert map_type("bigint") == "BIGINT"
        assert map_type("tinyint") == "SMALLINT"
        assert map_type("bit") == "BOOLEAN"

    def test_money_types_keep_four_decimals(self):
        """Test money types keep four decimal places."""
        assert map_type("money") == "NUMERIC(19,4)"
        assert map_type("smallmoney") == "NUMERIC(10,4)"

    def test_decimal_precision(self):
        """Test decimal precision and scale are carried over."""
        assert map_type("decimal", precision=18, scale=2) == "NUMERIC(18,2)"
        assert map_type("decimal") == "NUMERIC(18,0)"

    def test_character_lengths(self):
        """Test character lengths are carried over."""
        assert map_type("varchar", max_length=100) == "VARCHAR(100)"
        assert map_type("nchar", max_length=5) == "CHAR(5)"
        assert map_type("nvarchar") == "VARCHAR"

    def test_max_types(self):
        """Test MAX types map to unbounded types."""
        assert map_type("nvarchar(max)") == "TEXT"
        assert map_type("varbinary(max)") == "BYTEA"

    def test_temporal_types(self):
        """Test temporal type mappings."""
        assert map_type("datetime2") == "TIMESTAMP WITHOUT TIME ZONE"
        assert map_type("datetimeoffset") == "TIMESTAMP WITH TIME ZONE"
        assert map_type("DATE") == "DATE"

    def test_extension_types_map_to_text(self):
        """Test extension types map to TEXT."""
        assert map_type("hierarchyid") == "TEXT"
        assert map_type("geography") == "TEXT"
        assert map_type("geometry") == "TEXT"
        assert map_type("rowversion") == "BYTEA"

    def test_unknown_type_raises(self):
        """Test an unknown type raises UnsupportedConversion."""
        with pytest.raises(UnsupportedConversion):
            map_type("sql_variant")

    def test_validate_type_mapping(self):
        """Test type support checks."""
        assert validate_type_mapping("uniqueidentifier") is True
        assert validate_type_mapping("varchar(max)") is True
        assert validate_type_mapping("cursor") is False

    def test_summary_includes_notes(self):
        """Test the summary carries the mapping notes."""
        summary = {source: (target, note) for source, target, note in get_type_mapping_summary()}
        assert summary["hierarchyid"][0] == "TEXT"
        assert "ltree" in summary["hierarchyid"][1]
        assert summary["int"][1] == ""


class TestTemporalNormalization:
    """Test naive and instant timestamp handling."""

    def test_naive_wall_clock_preserved(self):
        """Test naive wall-clock values are preserved."""
        value = datetime(2024, 3, 10, 8, 45, 12, 500)
        assert ensure_unspecified_kind(value) == value
        assert ensure_unspecified_kind(value).tzinfo is None

    def test_naive_strips_zone_keeps_wall_clock(self):
        """Test a zone is dropped and the wall clock kept."""
        value = datetime(2024, 3, 10, 8, 45, tzinfo=timezone(timedelta(hours=-7)))
        result = ensure_unspecified_kind(value)
        assert result.tzinfo is None
        assert (result.hour, result.minute) == (8, 45)

    def test_instant_converted_to_utc(self):
        """Test instants are converted to UTC."""
        value = datetime(2024, 1, 15, 10, 0, tzinfo=timezone(timedelta(hours=5)))
        result = ensure_utc_offset(value)
        assert result.utcoffset() == timedelta(0)
        assert result == value
        assert result.hour == 5

    def test_instant_rejects_naive_value(self):
        """Test a naive value is rejected for an instant."""
        with pytest.raises(UnsupportedConversion):
            ensure_utc_offset(datetime(2024, 1, 15, 10, 0))

    def test_none_passes_through(self):
        """Test None passes through."""
        assert ensure_unspecified_kind(None) is None
        assert ensure_utc_offset(None) is None

    def test_non_datetime_rejected(self):
        """Test non-datetime values are rejected."""
        with pytest.raises(UnsupportedConversion):
            ensure_unspecified_kind("2024-01-01")


class TestHierarchyId:
    """Test hierarchyid path to ltree conversion."""

    @pytest.mark.parametrize("path, expected", [
        ("/1/2/3/", "1.2.3"),
        ("/5/", "5"),
        ("/1/", "1"),
        ("", None),
        ("/", None),
        (None, None),
    ])
    def test_transform(self, path, expected):
        """Test hierarchy path transformation."""
        assert transform_hierarchy_id(path) == expected

    def test_non_string_rejected(self):
        """Test non-string paths are rejected."""
        with pytest.raises(UnsupportedConversion):
            transform_hierarchy_id(123)


class TestSpatialPassThrough:
    """Geography/geometry WKT is carried as text."""

    def test_wkt_unchanged(self):
        """Test spatial text passes through unchanged."""
        wkt = "POLYGON ((0 0, 10 0, 10 10, 0 10, 0 0))"
        assert transform_geometry(wkt) == wkt
        assert transform_geography("POINT (1 2)") == "POINT (1 2)"

    def test_empty_becomes_none(self):
        """Test empty spatial text becomes None."""
        assert transform_geography("") is None
        assert transform_geometry(None) is None


class TestNormalizeValue:
    """Test per-category dispatch."""

    def test_decimal_keeps_all_digits(self):
        """Test decimals keep every digit."""
        value = Decimal("1234567890123456.78")
        assert normalize_value(DECIMAL, value) == value
        assert normalize_value(DECIMAL, Decimal("12.3400")) == Decimal("12.3400")

    def test_decimal_rejects_float(self):
        """Test floats are rejected for decimals."""
        with pytest.raises(UnsupportedConversion):
            normalize_value(DECIMAL, 1.5)

    def test_binary_exact(self):
        """Test binary values are copied byte for byte."""
        for length in (16, 37):
            value = bytes(range(length))
            result = normalize_value(BINARY, bytearray(value))
            assert isinstance(result, bytes)
            assert result == value
            assert len(result) == length

    def test_version_stamp_copied_verbatim(self):
        """Test version stamps are copied verbatim."""
        stamp = b"\x00\x00\x00\x00\x00\x00\x07\xd1"
        assert normalize_value(VERSION_STAMP, stamp) == stamp

    def test_identifier_canonical(self):
        """Test GUIDs are canonicalized."""
        guid = uuid.UUID("6F9619FF-8B86-D011-B42D-00C04FC964FF")
        assert normalize_value(IDENTIFIER, guid) == "6f9619ff-8b86-d011-b42d-00c04fc964ff"
        assert normalize_value(IDENTIFIER, "6F9619FF-8B86-D011-B42D-00C04FC964FF") == str(guid)

    def test_identifier_rejects_garbage(self):
        """Test malformed GUIDs are rejected."""
        with pytest.raises(UnsupportedConversion):
            normalize_value(IDENTIFIER, "not-a-guid")

    def test_boolean(self):
        """Test boolean normalization."""
        assert normalize_value(BOOLEAN, True) is True
        assert normalize_value(BOOLEAN, 0) is False
        with pytest.raises(UnsupportedConversion):
            normalize_value(BOOLEAN, 2)

    def test_integer_and_float(self):
        """Test integer and float normalization."""
        assert normalize_value(INTEGER, 255) == 255
        assert normalize_value(INTEGER, Decimal("42")) == 42
        assert normalize_value(FLOAT, 2.5) == 2.5
        assert isinstance(normalize_value(FLOAT, 3), float)

    def test_text_and_xml(self):
        """Test text and XML normalization."""
        assert normalize_value(TEXT, "") == ""
        assert normalize_value(XML, "<a/>") == "<a/>"
        with pytest.raises(UnsupportedConversion):
            normalize_value(TEXT, b"bytes")

    def test_date_and_time(self):
        """Test date and time normalization."""
        assert normalize_value(DATE, date(2024, 2, 29)) == date(2024, 2, 29)
        assert normalize_value(DATE, datetime(2024, 2, 29, 13, 0)) == date(2024, 2, 29)
        assert normalize_value(TIME, time(23, 59, 59)) == time(23, 59, 59)

    def test_nulls_pass_through_every_category(self):
        """Test None passes through every category."""
        for category in get_supported_categories():
            assert normalize_value(category, None) is None

    def test_unknown_category(self):
        """Test an unknown category raises UnsupportedConversion."""
        with pytest.raises(UnsupportedConversion) as exc_info:
            normalize_value("spatial_index", "x", column="Foo")
        assert exc_info.value.category == "spatial_index"
        assert exc_info.value.column == "Foo"

    def test_error_names_column(self):
        """Test conversion errors name the column."""
        with pytest.raises(UnsupportedConversion) as exc_info:
            normalize_value(HIERARCHY_PATH, 5, column="HierarchyIdField")
        assert "HierarchyIdField" in str(exc_info.value)

    def test_spatial_categories(self):
        """Test spatial categories."""
        assert normalize_value(GEOGRAPHY, "POINT (1 2)") == "POINT (1 2)"
        assert normalize_value(GEOMETRY, "") is None

    def test_naive_and_instant_categories(self):
        """Test naive and instant timestamp categories."""
        naive = datetime(2024, 1, 1, 12, 0)
        assert normalize_value(TIMESTAMP_NAIVE, naive) == naive
        aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=-3)))
        assert normalize_value(TIMESTAMP_INSTANT, aware).tzinfo == timezone.utc


class TestNormalizeRow:
    """Test whole-row normalization."""

    def test_product_row(self):
        """Test normalizing a full Product row."""
        result = normalize_row(PRODUCT, _product_row())
        row = dict(zip(PRODUCT.column_names, result))

        assert row["HierarchyIdField"] == "1.2.3"
        assert row["GeometryField"] is None
        assert row["GeographyField"] == "POINT (-122.34 47.65)"
        assert row["DateTimeOffsetField"].utcoffset() == timedelta(0)
        assert row["DateTimeOffsetField"].hour == 5
        assert row["GuidField"] == "6f9619ff-8b86-d011-b42d-00c04fc964ff"
        assert row["BinaryField"] == bytes(range(16))
        assert len(row["VarbinaryField"]) == 37
        assert row["MoneyField"] == Decimal("1234.5678")
        assert row["NtextField"] == ""
        assert row["TextField"] is None

    def test_row_order_preserved(self):
        """Test column order is preserved."""
        row = (7, "Garden", None, datetime(2024, 5, 1), True)
        assert normalize_row(CATEGORY, row) == row

    def test_independent_of_other_fields(self):
        """Test each field is normalized independently."""
        first = normalize_row(PRODUCT, _product_row(HierarchyIdField="/9/"))
        second = normalize_row(PRODUCT, _product_row(HierarchyIdField="/9/", TextField="changed"))
        index = PRODUCT.column_names.index("HierarchyIdField")
        assert first[index] == second[index] == "9"

    def test_wrong_arity_rejected(self):
        """Test rows of the wrong width are rejected."""
        with pytest.raises(ValueError):
            normalize_row(PRODUCT_TAG, (1, 2))
