"""
PostgreSQL Target Schema

DDL the target store must satisfy before a load, and an idempotent
operation that creates whatever is missing. Column types follow the
TYPE_MAPPING table in type_mapping.
"""

from typing import List
import logging

from catalog_migration.entities import POSTGRES, quote_identifier
from catalog_migration.exceptions import StoreFailure

logger = logging.getLogger(__name__)


CATEGORIES_DDL = """
CREATE TABLE IF NOT EXISTS {schema}."Categories" (
    "Id" INTEGER GENERATED BY DEFAULT AS IDENTITY,
    "Name" VARCHAR(100) NOT NULL,
    "Description" VARCHAR(500),
    "CreatedAt" TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    "IsActive" BOOLEAN NOT NULL,
    CONSTRAINT "PK_Categories" PRIMARY KEY ("Id")
)
"""

TAGS_DDL = """
CREATE TABLE IF NOT EXISTS {schema}."Tags" (
    "Id" INTEGER GENERATED BY DEFAULT AS IDENTITY,
    "Name" VARCHAR(50) NOT NULL,
    "Description" VARCHAR(200),
    "CreatedAt" TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    CONSTRAINT "PK_Tags" PRIMARY KEY ("Id")
)
"""

PRODUCTS_DDL = """
CREATE TABLE IF NOT EXISTS {schema}."Products" (
    "Id" INTEGER GENERATED BY DEFAULT AS IDENTITY,
    "SmallIntField" SMALLINT NOT NULL,
    "BigIntField" BIGINT NOT NULL,
    "TinyIntField" SMALLINT NOT NULL,
    "DecimalPrice" NUMERIC(18,2) NOT NULL,
    "MoneyField" NUMERIC(19,4) NOT NULL,
    "SmallMoneyField" NUMERIC(10,4) NOT NULL,
    "FloatField" DOUBLE PRECISION NOT NULL,
    "RealField" REAL NOT NULL,
    "VarcharField" VARCHAR(100) NOT NULL,
    "NvarcharField" VARCHAR(200) NOT NULL,
    "CharField" CHAR(10) NOT NULL,
    "NcharField" CHAR(5) NOT NULL,
    "TextField" TEXT,
    "NtextField" TEXT,
    "DateTimeField" TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    "DateTime2Field" TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    "DateField" DATE NOT NULL,
    "TimeField" TIME NOT NULL,
    "DateTimeOffsetField" TIMESTAMP WITH TIME ZONE NOT NULL,
    "SmallDateTimeField" TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    "BinaryField" BYTEA,
    "VarbinaryField" BYTEA,
    "BooleanField" BOOLEAN NOT NULL,
    "GuidField" UUID NOT NULL,
    "XmlField" XML,
    "HierarchyIdField" TEXT,
    "GeographyField" TEXT,
    "GeometryField" TEXT,
    "RowVersion" BYTEA,
    "CategoryId" INTEGER NOT NULL,
    CONSTRAINT "PK_Products" PRIMARY KEY ("Id"),
    CONSTRAINT "FK_Products_Categories_CategoryId" FOREIGN KEY ("CategoryId")
        REFERENCES {schema}."Categories" ("Id") ON DELETE RESTRICT
)
"""

PRODUCT_DETAILS_DDL = """
CREATE TABLE IF NOT EXISTS {schema}."ProductDetails" (
    "Id" INTEGER GENERATED BY DEFAULT AS IDENTITY,
    "ProductId" INTEGER NOT NULL,
    "DetailedDescription" TEXT,
    "Specifications" TEXT,
    "ManufacturerInfo" TEXT,
    "CreatedAt" TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    "UpdatedAt" TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    CONSTRAINT "PK_ProductDetails" PRIMARY KEY ("Id"),
    CONSTRAINT "FK_ProductDetails_Products_ProductId" FOREIGN KEY ("ProductId")
        REFERENCES {schema}."Products" ("Id") ON DELETE CASCADE
)
"""

PRODUCT_TAGS_DDL = """
CREATE TABLE IF NOT EXISTS {schema}."ProductTags" (
    "ProductId" INTEGER NOT NULL,
    "TagId" INTEGER NOT NULL,
    "AssignedAt" TIMESTAMP WITHOUT TIME ZONE NOT NULL,
    CONSTRAINT "PK_ProductTags" PRIMARY KEY ("ProductId", "TagId"),
    CONSTRAINT "FK_ProductTags_Products_ProductId" FOREIGN KEY ("ProductId")
        REFERENCES {schema}."Products" ("Id") ON DELETE CASCADE,
    CONSTRAINT "FK_ProductTags_Tags_TagId" FOREIGN KEY ("TagId")
        REFERENCES {schema}."Tags" ("Id") ON DELETE CASCADE
)
"""

INDEX_DDL = [
    'CREATE UNIQUE INDEX IF NOT EXISTS "IX_Tags_Name" ON {schema}."Tags" ("Name")',
    'CREATE UNIQUE INDEX IF NOT EXISTS "IX_ProductDetails_ProductId" ON {schema}."ProductDetails" ("ProductId")',
    'CREATE INDEX IF NOT EXISTS "IX_Products_CategoryId" ON {schema}."Products" ("CategoryId")',
    'CREATE INDEX IF NOT EXISTS "IX_ProductTags_TagId" ON {schema}."ProductTags" ("TagId")',
]

# Creation order: referenced tables first
TABLE_DDL = [CATEGORIES_DDL, TAGS_DDL, PRODUCTS_DDL, PRODUCT_DETAILS_DDL, PRODUCT_TAGS_DDL]


def get_schema_statements(schema: str = 'public') -> List[str]:
    """
    Get the DDL statements for the target schema, in execution order.

    Every statement is idempotent (IF NOT EXISTS).
    """
    quoted_schema = quote_identifier(schema, POSTGRES)
    statements = [f"CREATE SCHEMA IF NOT EXISTS {quoted_schema}"]
    statements.extend(ddl.strip().format(schema=quoted_schema) for ddl in TABLE_DDL)
    statements.extend(ddl.format(schema=quoted_schema) for ddl in INDEX_DDL)
    return statements


def ensure_target_schema(target_hook, schema: str = 'public') -> int:
    """
    Create the target tables, constraints and indexes if they are missing.

    Args:
        target_hook: PostgresHook for the target database
        schema: Target schema name

    Returns:
        Number of statements executed

    Raises:
        StoreFailure: If any DDL statement fails
    """
    statements = get_schema_statements(schema)
    try:
        target_hook.run(statements)
    except Exception as e:
        logger.error(f"Error ensuring target schema {schema}: {e}")
        raise StoreFailure(f"Failed to ensure target schema: {e}", store='target') from e

    logger.info(f"Target schema {schema} is ready ({len(statements)} statements)")
    return len(statements)
