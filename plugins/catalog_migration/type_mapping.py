"""
SQL Server to PostgreSQL Type Mapping Module

This module maps SQL Server column types to their PostgreSQL equivalents and
normalizes individual values read from SQL Server into the representation
the PostgreSQL target expects. All functions here are pure: no I/O, and
normalizing one field never depends on another.
"""

from datetime import date, datetime, time as dt_time, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import uuid

from catalog_migration.exceptions import UnsupportedConversion

logger = logging.getLogger(__name__)


# Field categories
INTEGER = "integer"
DECIMAL = "decimal"
FLOAT = "float"
BOOLEAN = "boolean"
IDENTIFIER = "identifier"
TEXT = "text"
XML = "xml"
TIMESTAMP_NAIVE = "timestamp_naive"
TIMESTAMP_INSTANT = "timestamp_instant"
DATE = "date"
TIME = "time"
BINARY = "binary"
VERSION_STAMP = "version_stamp"
HIERARCHY_PATH = "hierarchy_path"
GEOGRAPHY = "geography"
GEOMETRY = "geometry"


# SQL Server data types used by the catalog and their PostgreSQL targets
TYPE_MAPPING = {
    # Exact Numeric Types
    "bit": "BOOLEAN",
    "tinyint": "SMALLINT",
    "smallint": "SMALLINT",
    "int": "INTEGER",
    "bigint": "BIGINT",
    "decimal": "NUMERIC({precision},{scale})",
    "money": "NUMERIC(19,4)",
    "smallmoney": "NUMERIC(10,4)",

    # Approximate Numeric Types
    "float": "DOUBLE PRECISION",
    "real": "REAL",

    # Character String Types
    "char": "CHAR({length})",
    "varchar": "VARCHAR({length})",
    "text": "TEXT",
    "nchar": "CHAR({length})",
    "nvarchar": "VARCHAR({length})",
    "ntext": "TEXT",

    # Binary String Types
    "binary": "BYTEA",
    "varbinary": "BYTEA",

    # Date and Time Types
    "date": "DATE",
    "time": "TIME",
    "datetime": "TIMESTAMP WITHOUT TIME ZONE",
    "datetime2": "TIMESTAMP WITHOUT TIME ZONE",
    "smalldatetime": "TIMESTAMP WITHOUT TIME ZONE",
    "datetimeoffset": "TIMESTAMP WITH TIME ZONE",

    # Other Data Types
    "uniqueidentifier": "UUID",
    "xml": "XML",
    "hierarchyid": "TEXT",  # dot-delimited, ltree compatible
    "geography": "TEXT",  # well-known text
    "geometry": "TEXT",  # well-known text
    "rowversion": "BYTEA",
}

# Notes printed next to the mapping in the migration report
TYPE_MAPPING_NOTES = {
    "hierarchyid": "'/1/2/' path converted to '1.2' (ltree format)",
    "geography": "WKT text pass-through, no spatial codec",
    "geometry": "WKT text pass-through, no spatial codec",
    "rowversion": "opaque stamp copied verbatim",
    "datetimeoffset": "normalized to UTC",
    "datetime": "zone annotation stripped",
}


def map_type(
    sql_server_type: str,
    max_length: Optional[int] = None,
    precision: Optional[int] = None,
    scale: Optional[int] = None,
) -> str:
    """
    Map a SQL Server data type to its PostgreSQL equivalent.

    Args:
        sql_server_type: The SQL Server data type name
        max_length: Maximum length in characters for character types
        precision: Precision for decimal types
        scale: Scale for decimal types

    Returns:
        The PostgreSQL equivalent data type

    Raises:
        UnsupportedConversion: If the type has no defined mapping
    """
    sql_type = sql_server_type.lower().strip()

    if sql_type.endswith('(max)'):
        if 'char' in sql_type:
            return "TEXT"
        if 'binary' in sql_type:
            return "BYTEA"

    if sql_type not in TYPE_MAPPING:
        raise UnsupportedConversion(sql_server_type, None)

    pg_type = TYPE_MAPPING[sql_type]

    if "{length}" in pg_type:
        if max_length:
            pg_type = pg_type.replace("{length}", str(max_length))
        else:
            pg_type = pg_type.replace("({length})", "")

    if "{precision}" in pg_type:
        pg_type = pg_type.replace("{precision}", str(precision if precision is not None else 18))
        pg_type = pg_type.replace("{scale}", str(scale if scale is not None else 0))

    return pg_type


def get_type_mapping_summary() -> List[Tuple[str, str, str]]:
    """
    Get the (sql_server_type, postgres_type, note) rows for reporting.
    """
    return [
        (source, target, TYPE_MAPPING_NOTES.get(source, ""))
        for source, target in TYPE_MAPPING.items()
    ]


# Value normalizers

def ensure_unspecified_kind(value: Optional[datetime]) -> Optional[datetime]:
    """
    Strip any zone annotation from a timestamp, keeping its wall clock.

    Target: TIMESTAMP WITHOUT TIME ZONE.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise UnsupportedConversion(TIMESTAMP_NAIVE, value)
    return value.replace(tzinfo=None)


def ensure_utc_offset(value: Optional[datetime]) -> Optional[datetime]:
    """
    Express a zoned timestamp as the same instant at offset zero.

    Target: TIMESTAMP WITH TIME ZONE. A naive value has no defined instant
    and is rejected.
    """
    if value is None:
        return None
    if not isinstance(value, datetime) or value.utcoffset() is None:
        raise UnsupportedConversion(TIMESTAMP_INSTANT, value)
    return value.astimezone(timezone.utc)


def transform_hierarchy_id(value: Optional[str]) -> Optional[str]:
    """
    Convert a SQL Server hierarchyid path to ltree format.

    "/1/2/3/" -> "1.2.3"; empty or None -> None. The root path "/" has no
    labels and also becomes None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise UnsupportedConversion(HIERARCHY_PATH, value)
    trimmed = value.strip().strip('/')
    if not trimmed:
        return None
    return trimmed.replace('/', '.')


def transform_geography(value: Optional[str]) -> Optional[str]:
    """Geography well-known text, passed through unchanged."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise UnsupportedConversion(GEOGRAPHY, value)
    return value or None


def transform_geometry(value: Optional[str]) -> Optional[str]:
    """Geometry well-known text, passed through unchanged."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise UnsupportedConversion(GEOMETRY, value)
    return value or None


def _normalize_integer(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return int(value)
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return int(value)
    raise UnsupportedConversion(INTEGER, value)


def _normalize_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    # floats would silently lose digits
    raise UnsupportedConversion(DECIMAL, value)


def _normalize_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (float, int, Decimal)) and not isinstance(value, bool):
        return float(value)
    raise UnsupportedConversion(FLOAT, value)


def _normalize_boolean(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise UnsupportedConversion(BOOLEAN, value)


def _normalize_identifier(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, str):
        try:
            return str(uuid.UUID(value))
        except ValueError:
            raise UnsupportedConversion(IDENTIFIER, value) from None
    raise UnsupportedConversion(IDENTIFIER, value)


def _normalize_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    raise UnsupportedConversion(TEXT, value)


def _normalize_xml(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    raise UnsupportedConversion(XML, value)


def _normalize_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise UnsupportedConversion(DATE, value)


def _normalize_time(value: Any) -> Optional[dt_time]:
    if value is None:
        return None
    if isinstance(value, dt_time):
        return value.replace(tzinfo=None)
    raise UnsupportedConversion(TIME, value)


def _normalize_binary(value: Any) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise UnsupportedConversion(BINARY, value)


def _normalize_version_stamp(value: Any) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise UnsupportedConversion(VERSION_STAMP, value)


NORMALIZERS: Dict[str, Callable[[Any], Any]] = {
    INTEGER: _normalize_integer,
    DECIMAL: _normalize_decimal,
    FLOAT: _normalize_float,
    BOOLEAN: _normalize_boolean,
    IDENTIFIER: _normalize_identifier,
    TEXT: _normalize_text,
    XML: _normalize_xml,
    TIMESTAMP_NAIVE: ensure_unspecified_kind,
    TIMESTAMP_INSTANT: ensure_utc_offset,
    DATE: _normalize_date,
    TIME: _normalize_time,
    BINARY: _normalize_binary,
    VERSION_STAMP: _normalize_version_stamp,
    HIERARCHY_PATH: transform_hierarchy_id,
    GEOGRAPHY: transform_geography,
    GEOMETRY: transform_geometry,
}


def normalize_value(category: str, value: Any, column: Optional[str] = None) -> Any:
    """
    Convert one SQL Server value to its PostgreSQL representation.

    Args:
        category: Field category of the column
        value: Value as returned by the SQL Server driver
        column: Column name, used in error messages

    Returns:
        The normalized value

    Raises:
        UnsupportedConversion: If the category is unknown or the value's
            type has no mapping within the category
    """
    normalizer = NORMALIZERS.get(category)
    if normalizer is None:
        raise UnsupportedConversion(category, value, column)

    try:
        return normalizer(value)
    except UnsupportedConversion as e:
        if column and e.column is None:
            raise UnsupportedConversion(category, value, column) from None
        raise


def normalize_row(entity_kind, row) -> Tuple[Any, ...]:
    """
    Normalize every field of a source row for the target.

    Args:
        entity_kind: EntityKind describing the row's columns
        row: Sequence of values in the entity's column order

    Returns:
        Tuple of normalized values in the same order
    """
    columns = entity_kind.columns
    if len(row) != len(columns):
        raise ValueError(
            f"{entity_kind.name} row has {len(row)} values, expected {len(columns)}"
        )
    return tuple(
        normalize_value(category, value, column)
        for (column, category), value in zip(columns, row)
    )


def validate_type_mapping(sql_server_type: str) -> bool:
    """
    Check if a SQL Server type has a known mapping.
    """
    normalized = sql_server_type.lower().strip()
    if normalized.endswith('(max)'):
        normalized = normalized[:-5].strip()
    return normalized in TYPE_MAPPING


def get_supported_categories() -> list:
    """List all field categories the normalizer accepts."""
    return list(NORMALIZERS.keys())
