"""
Catalog Entity Definitions

This module describes the fixed entity graph that is migrated: table names,
column order, primary keys and the field category of every column. Table
and column names are identical on SQL Server and PostgreSQL; only the
identifier quoting differs per dialect.
"""

from typing import Any, Dict, List, Optional, Tuple

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
)

SQLSERVER = "mssql"
POSTGRES = "postgres"


def quote_identifier(identifier: str, dialect: str) -> str:
    """
    Quote an identifier for the given dialect.

    SQL Server uses [brackets] (closing brackets doubled), PostgreSQL uses
    "double quotes" (embedded quotes doubled). Quoting is always applied
    so PascalCase names survive on PostgreSQL.
    """
    if dialect == SQLSERVER:
        return f"[{identifier.replace(']', ']]')}]"
    if dialect == POSTGRES:
        return f'"{identifier.replace(chr(34), chr(34) * 2)}"'
    raise ValueError(f"Unknown dialect '{dialect}'")


class EntityKind:
    """One of the five migrated record types."""

    def __init__(
        self,
        name: str,
        table: str,
        columns: List[Tuple[str, str]],
        primary_key: List[str],
        identity_column: Optional[str] = None,
        source_expressions: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            name: Entity kind name (e.g. "Product")
            table: Table name on both engines
            columns: (column_name, field_category) pairs in transfer order
            primary_key: Primary key columns, used for ordering pages
            identity_column: Column backed by an identity sequence on the target
            source_expressions: Column -> SQL Server expression used instead of
                the plain column when reading (extension types coerced to text)
        """
        self.name = name
        self.table = table
        self.columns = list(columns)
        self.primary_key = list(primary_key)
        self.identity_column = identity_column
        self.source_expressions = dict(source_expressions or {})

    @property
    def column_names(self) -> List[str]:
        return [col for col, _ in self.columns]

    @property
    def categories(self) -> Dict[str, str]:
        return dict(self.columns)

    def table_ref(self, dialect: str, schema: Optional[str] = None) -> str:
        """Quoted (optionally schema-qualified) table reference."""
        table = quote_identifier(self.table, dialect)
        if schema:
            return f"{quote_identifier(schema, dialect)}.{table}"
        return table

    def row_as_dict(self, row) -> Dict[str, Any]:
        return dict(zip(self.column_names, row))

    def __repr__(self) -> str:
        return f"EntityKind({self.name!r})"


CATEGORY = EntityKind(
    name="Category",
    table="Categories",
    columns=[
        ("Id", INTEGER),
        ("Name", TEXT),
        ("Description", TEXT),
        ("CreatedAt", TIMESTAMP_NAIVE),
        ("IsActive", BOOLEAN),
    ],
    primary_key=["Id"],
    identity_column="Id",
)

TAG = EntityKind(
    name="Tag",
    table="Tags",
    columns=[
        ("Id", INTEGER),
        ("Name", TEXT),
        ("Description", TEXT),
        ("CreatedAt", TIMESTAMP_NAIVE),
    ],
    primary_key=["Id"],
    identity_column="Id",
)

PRODUCT = EntityKind(
    name="Product",
    table="Products",
    columns=[
        ("Id", INTEGER),
        ("SmallIntField", INTEGER),
        ("BigIntField", INTEGER),
        ("TinyIntField", INTEGER),
        ("DecimalPrice", DECIMAL),
        ("MoneyField", DECIMAL),
        ("SmallMoneyField", DECIMAL),
        ("FloatField", FLOAT),
        ("RealField", FLOAT),
        ("VarcharField", TEXT),
        ("NvarcharField", TEXT),
        ("CharField", TEXT),
        ("NcharField", TEXT),
        ("TextField", TEXT),
        ("NtextField", TEXT),
        ("DateTimeField", TIMESTAMP_NAIVE),
        ("DateTime2Field", TIMESTAMP_NAIVE),
        ("DateField", DATE),
        ("TimeField", TIME),
        ("DateTimeOffsetField", TIMESTAMP_INSTANT),
        ("SmallDateTimeField", TIMESTAMP_NAIVE),
        ("BinaryField", BINARY),
        ("VarbinaryField", BINARY),
        ("BooleanField", BOOLEAN),
        ("GuidField", IDENTIFIER),
        ("XmlField", XML),
        ("HierarchyIdField", HIERARCHY_PATH),
        ("GeographyField", GEOGRAPHY),
        ("GeometryField", GEOMETRY),
        ("RowVersion", VERSION_STAMP),
        ("CategoryId", INTEGER),
    ],
    primary_key=["Id"],
    identity_column="Id",
    # The driver cannot surface these CLR types; read their text form instead
    source_expressions={
        "HierarchyIdField": "CAST([HierarchyIdField] AS NVARCHAR(MAX))",
        "GeographyField": "CAST([GeographyField] AS NVARCHAR(MAX))",
        "GeometryField": "CAST([GeometryField] AS NVARCHAR(MAX))",
    },
)

PRODUCT_DETAIL = EntityKind(
    name="ProductDetail",
    table="ProductDetails",
    columns=[
        ("Id", INTEGER),
        ("ProductId", INTEGER),
        ("DetailedDescription", TEXT),
        ("Specifications", TEXT),
        ("ManufacturerInfo", TEXT),
        ("CreatedAt", TIMESTAMP_NAIVE),
        ("UpdatedAt", TIMESTAMP_NAIVE),
    ],
    primary_key=["Id"],
    identity_column="Id",
)

PRODUCT_TAG = EntityKind(
    name="ProductTag",
    table="ProductTags",
    columns=[
        ("ProductId", INTEGER),
        ("TagId", INTEGER),
        ("AssignedAt", TIMESTAMP_NAIVE),
    ],
    primary_key=["ProductId", "TagId"],
)

# Insert order: later kinds reference earlier ones by foreign key
MIGRATION_ORDER = [CATEGORY, TAG, PRODUCT, PRODUCT_DETAIL, PRODUCT_TAG]

ENTITY_KINDS = {kind.name: kind for kind in MIGRATION_ORDER}

# (child kind, child column, parent kind) pairs checked for orphans
FOREIGN_KEYS = [
    (PRODUCT, "CategoryId", CATEGORY),
    (PRODUCT_DETAIL, "ProductId", PRODUCT),
    (PRODUCT_TAG, "ProductId", PRODUCT),
    (PRODUCT_TAG, "TagId", TAG),
]


def get_entity_kind(name: str) -> EntityKind:
    """
    Look up an entity kind by name (case-insensitive) or table name.

    Raises:
        KeyError: If no such entity kind exists
    """
    for kind in MIGRATION_ORDER:
        if name.lower() in (kind.name.lower(), kind.table.lower()):
            return kind
    raise KeyError(f"Unknown entity kind '{name}'")
