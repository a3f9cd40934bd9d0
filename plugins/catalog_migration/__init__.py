"""
Product Catalog SQL Server to PostgreSQL Migration

This package migrates the product catalog (Categories, Tags, Products,
ProductDetails, ProductTags) from Microsoft SQL Server to PostgreSQL using
Apache Airflow, normalizing every value across the type-system boundary.

Modules:
- type_mapping: Map SQL Server types and normalize values for PostgreSQL
- entities: The fixed entity graph and its column categories
- batch_reader: Page entity records out of SQL Server
- batch_writer: COPY batches into PostgreSQL, clear and resync the target
- data_transfer: Drive reader -> normalizer -> writer per entity kind
- validation: Integrity, cross-consistency and binary checks
- report: Plain-text migration report
- orchestrator: Run state machine tying the stages together
- target_schema: PostgreSQL DDL the target must satisfy

Configuration:
- MIGRATION_BATCH_SIZE=N: Rows per page (default 1000)
- PRODUCT_BATCH_SIZE=N: Rows per Product page
- BATCH_TIMEOUT_SECONDS=N: Per-statement timeout, 0 disables (default 300)
- STRICT_CONSISTENCY=true: Fail the run on cross-consistency mismatches
"""

__version__ = "1.0.0"

# Core modules
from catalog_migration import exceptions
from catalog_migration import config
from catalog_migration import type_mapping
from catalog_migration import entities
from catalog_migration import report

# Store-bound modules (need psycopg2 / pyodbc / airflow, loaded on demand)
# from catalog_migration import batch_reader, batch_writer, data_transfer
# from catalog_migration import validation, orchestrator, target_schema
# from catalog_migration import odbc_helper

__all__ = [
    "exceptions",
    "config",
    "type_mapping",
    "entities",
    "report",
    "batch_reader",
    "batch_writer",
    "data_transfer",
    "validation",
    "orchestrator",
    "target_schema",
    "odbc_helper",
]
