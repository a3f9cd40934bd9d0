"""
Data Migration Validation Module

This module provides the checks that bracket a migration run:

- IntegrityValidator: row counts and orphan-reference checks on one store
- CrossConsistencyChecker: source vs target counts and sampled Product fields
- BinaryIntegrityChecker: byte-exact spot check of Product binary columns

Validators collect problems into lists instead of raising; store faults
are still raised as StoreFailure.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

from catalog_migration.entities import (
    FOREIGN_KEYS,
    MIGRATION_ORDER,
    POSTGRES,
    PRODUCT,
    PRODUCT_DETAIL,
    SQLSERVER,
    EntityKind,
    quote_identifier,
)
from catalog_migration.exceptions import CrossConsistencyMismatch, StoreFailure

logger = logging.getLogger(__name__)

# Orphans of these relations make a store invalid; the others are reported only
BLOCKING_RELATIONS = {(PRODUCT.name, "CategoryId"), (PRODUCT_DETAIL.name, "ProductId")}

_STORE_NAMES = {SQLSERVER: 'source', POSTGRES: 'target'}


def _run_query(hook, dialect: str, query: str, parameters=None, first: bool = False):
    """Run a read query through a hook, wrapping driver faults as StoreFailure."""
    try:
        if first:
            return hook.get_first(query, parameters=parameters)
        return hook.get_records(query, parameters=parameters)
    except StoreFailure:
        raise
    except Exception as e:
        logger.error(f"Error executing query: {e}")
        logger.error(f"Query: {query}")
        raise StoreFailure(f"Validation query failed: {e}", store=_STORE_NAMES.get(dialect, dialect)) from e


class TimedQueryHook:
    """
    PostgreSQL read hook that applies statement_timeout to every query.

    Exposes get_first/get_records like PostgresHook, on a fresh connection
    per query with the session timeout set before the query runs.
    """

    def __init__(self, hook, timeout_seconds: int = 0):
        self.hook = hook
        self.timeout_seconds = timeout_seconds

    def _query(self, sql: str, parameters=None, first: bool = False):
        conn = self.hook.get_conn()
        try:
            with conn.cursor() as cursor:
                cursor.execute("SET statement_timeout = %s", (self.timeout_seconds * 1000,))
                cursor.execute(sql, parameters)
                return cursor.fetchone() if first else cursor.fetchall()
        finally:
            conn.close()

    def get_first(self, sql: str, parameters=None):
        return self._query(sql, parameters, first=True)

    def get_records(self, sql: str, parameters=None):
        return self._query(sql, parameters)


class IntegrityValidator:
    """Row counts and orphan-reference checks against one store."""

    def __init__(self, hook, dialect: str, schema: Optional[str] = None):
        """
        Args:
            hook: Hook exposing get_first/get_records for the store
            dialect: SQLSERVER or POSTGRES
            schema: Schema holding the catalog tables
        """
        self.hook = hook
        self.dialect = dialect
        self.schema = schema or ('dbo' if dialect == SQLSERVER else 'public')

    def _q(self, identifier: str) -> str:
        return quote_identifier(identifier, self.dialect)

    def count(self, entity_kind: EntityKind) -> int:
        query = f"SELECT COUNT(*) FROM {entity_kind.table_ref(self.dialect, self.schema)}"
        row = _run_query(self.hook, self.dialect, query, first=True)
        return (row[0] or 0) if row else 0

    def count_orphans(self, child: EntityKind, column: str, parent: EntityKind) -> int:
        """Count child rows whose reference column points at a missing parent."""
        parent_key = self._q(parent.primary_key[0])
        query = (
            f"SELECT COUNT(*) FROM {child.table_ref(self.dialect, self.schema)} c "
            f"LEFT JOIN {parent.table_ref(self.dialect, self.schema)} p "
            f"ON c.{self._q(column)} = p.{parent_key} "
            f"WHERE p.{parent_key} IS NULL"
        )
        row = _run_query(self.hook, self.dialect, query, first=True)
        return (row[0] or 0) if row else 0

    def validate(self) -> Dict[str, Any]:
        """
        Validate one store.

        Returns:
            Dictionary with counts, orphan_counts, is_valid, errors, warnings
        """
        counts = {kind.name: self.count(kind) for kind in MIGRATION_ORDER}
        orphan_counts: Dict[str, int] = {}
        errors: List[str] = []
        warnings: List[str] = []

        for child, column, parent in FOREIGN_KEYS:
            orphans = self.count_orphans(child, column, parent)
            orphan_counts[f"{child.name}.{column}"] = orphans
            if not orphans:
                continue
            message = f"Found {orphans} {child.name} rows with invalid {column} (no matching {parent.name})"
            if (child.name, column) in BLOCKING_RELATIONS:
                errors.append(message)
            else:
                warnings.append(message)

        result = {
            'store': _STORE_NAMES.get(self.dialect, self.dialect),
            'counts': counts,
            'orphan_counts': orphan_counts,
            'is_valid': not errors,
            'errors': errors,
            'warnings': warnings,
            'validation_time': datetime.now().isoformat(),
        }

        if result['is_valid']:
            logger.info(f"✓ {result['store'].capitalize()} integrity validation passed: {counts}")
        else:
            for error in errors:
                logger.warning(f"✗ {result['store'].capitalize()} integrity: {error}")
        for warning in warnings:
            logger.warning(f"{result['store'].capitalize()} integrity: {warning}")

        return result


class CrossConsistencyChecker:
    """Compare the source and target stores after a migration."""

    def __init__(
        self,
        source_hook,
        target_hook,
        source_schema: str = 'dbo',
        target_schema: str = 'public',
        sample_size: int = 100,
    ):
        self.source = IntegrityValidator(source_hook, SQLSERVER, source_schema)
        self.target = IntegrityValidator(target_hook, POSTGRES, target_schema)
        self.sample_size = sample_size

    def _sample_query(self, dialect: str, schema: str, where_ids: bool) -> str:
        q = lambda name: quote_identifier(name, dialect)
        columns = ', '.join(q(c) for c in ("Id", "DecimalPrice", "CategoryId"))
        table = PRODUCT.table_ref(dialect, schema)
        if where_ids:
            return f"SELECT {columns} FROM {table} WHERE {q('Id')} = ANY(%s)"
        return f"SELECT TOP (?) {columns} FROM {table} ORDER BY {q('Id')}"

    def compare_counts(self) -> Tuple[Dict[str, int], Dict[str, int], List[str]]:
        source_counts = {kind.name: self.source.count(kind) for kind in MIGRATION_ORDER}
        target_counts = {kind.name: self.target.count(kind) for kind in MIGRATION_ORDER}
        errors = [
            f"{name} count mismatch: source={source_counts[name]}, target={target_counts[name]}"
            for name in source_counts
            if source_counts[name] != target_counts[name]
        ]
        return source_counts, target_counts, errors

    def compare_product_sample(self) -> Tuple[int, List[str]]:
        """
        Compare DecimalPrice and CategoryId of the first N Products by id.

        Returns:
            Tuple of (products sampled, error messages)
        """
        source_rows = _run_query(
            self.source.hook, SQLSERVER,
            self._sample_query(SQLSERVER, self.source.schema, where_ids=False),
            [self.sample_size],
        ) or []
        if not source_rows:
            return 0, []

        ids = [row[0] for row in source_rows]
        target_rows = _run_query(
            self.target.hook, POSTGRES,
            self._sample_query(POSTGRES, self.target.schema, where_ids=True),
            (ids,),
        ) or []
        target_by_id = {row[0]: row for row in target_rows}

        errors = []
        for product_id, price, category_id in source_rows:
            target_row = target_by_id.get(product_id)
            if target_row is None:
                errors.append(f"Product {product_id}: not found in target")
                continue
            if target_row[1] != price:
                errors.append(
                    f"Product {product_id}: DecimalPrice mismatch "
                    f"(source={price}, target={target_row[1]})"
                )
            if target_row[2] != category_id:
                errors.append(
                    f"Product {product_id}: CategoryId mismatch "
                    f"(source={category_id}, target={target_row[2]})"
                )

        return len(source_rows), errors

    def compare(self) -> Dict[str, Any]:
        """
        Run the cross-consistency check.

        Returns:
            Dictionary with is_consistent, errors, source_counts,
            target_counts and products_sampled
        """
        logger.info(f"Cross-validating source and target (sample size: {self.sample_size})")

        source_counts, target_counts, errors = self.compare_counts()
        products_sampled, sample_errors = self.compare_product_sample()
        errors.extend(sample_errors)

        result = {
            'is_consistent': not errors,
            'errors': errors,
            'source_counts': source_counts,
            'target_counts': target_counts,
            'products_sampled': products_sampled,
            'validation_time': datetime.now().isoformat(),
        }

        if result['is_consistent']:
            logger.info(f"✓ Cross-consistency check passed ({products_sampled} products sampled)")
        else:
            logger.warning(f"✗ Cross-consistency check found {len(errors)} discrepancies")
            for error in errors[:10]:
                logger.warning(f"  {error}")

        return result


def ensure_consistent(result: Dict[str, Any]) -> None:
    """
    Raise CrossConsistencyMismatch if a compare() result has discrepancies.
    """
    if not result.get('is_consistent', False):
        raise CrossConsistencyMismatch(result.get('errors', []))


class BinaryIntegrityChecker:
    """Byte-exact comparison of Product binary columns across stores."""

    def __init__(self, source_hook, target_hook, source_schema: str = 'dbo', target_schema: str = 'public'):
        self.source_hook = source_hook
        self.target_hook = target_hook
        self.source_schema = source_schema
        self.target_schema = target_schema

    def _stats(self, hook, dialect: str, schema: str) -> Dict[str, int]:
        q = lambda name: quote_identifier(name, dialect)
        query = (
            f"SELECT COUNT(*), COUNT({q('BinaryField')}), COUNT({q('VarbinaryField')}) "
            f"FROM {PRODUCT.table_ref(dialect, schema)}"
        )
        row = _run_query(hook, dialect, query, first=True) or (0, 0, 0)
        return {
            'total': row[0] or 0,
            'with_binary': row[1] or 0,
            'with_varbinary': row[2] or 0,
        }

    def _compare_field(self, product_id, column: str, source_value, target_value) -> Optional[str]:
        if source_value is None and target_value is None:
            return None
        if source_value is None or target_value is None:
            return (
                f"Product {product_id}: {column} null mismatch "
                f"(source={'NULL' if source_value is None else 'set'}, "
                f"target={'NULL' if target_value is None else 'set'})"
            )
        source_bytes = bytes(source_value)
        target_bytes = bytes(target_value)
        if len(source_bytes) != len(target_bytes):
            return (
                f"Product {product_id}: {column} length mismatch "
                f"(source={len(source_bytes)}, target={len(target_bytes)})"
            )
        if source_bytes != target_bytes:
            return f"Product {product_id}: {column} content mismatch"
        return None

    def check(self, sample_size: int = 10) -> Dict[str, Any]:
        """
        Compare binary columns of the first N Products that carry binary data.

        Args:
            sample_size: Number of Products to compare

        Returns:
            Dictionary with success, records_checked, errors, source_stats
            and target_stats
        """
        logger.info(f"Verifying binary data integrity (sample size: {sample_size})")

        sq = lambda name: quote_identifier(name, SQLSERVER)
        pq = lambda name: quote_identifier(name, POSTGRES)
        source_query = (
            f"SELECT TOP (?) {sq('Id')}, {sq('BinaryField')}, {sq('VarbinaryField')} "
            f"FROM {PRODUCT.table_ref(SQLSERVER, self.source_schema)} "
            f"WHERE {sq('BinaryField')} IS NOT NULL OR {sq('VarbinaryField')} IS NOT NULL "
            f"ORDER BY {sq('Id')}"
        )
        source_rows = _run_query(self.source_hook, SQLSERVER, source_query, [sample_size]) or []

        errors: List[str] = []
        if source_rows:
            target_query = (
                f"SELECT {pq('Id')}, {pq('BinaryField')}, {pq('VarbinaryField')} "
                f"FROM {PRODUCT.table_ref(POSTGRES, self.target_schema)} "
                f"WHERE {pq('Id')} = ANY(%s)"
            )
            ids = [row[0] for row in source_rows]
            target_rows = _run_query(self.target_hook, POSTGRES, target_query, (ids,)) or []
            target_by_id = {row[0]: row for row in target_rows}

            for product_id, binary_value, varbinary_value in source_rows:
                target_row = target_by_id.get(product_id)
                if target_row is None:
                    errors.append(f"Product {product_id}: not found in target")
                    continue
                for column, source_value, target_value in (
                    ("BinaryField", binary_value, target_row[1]),
                    ("VarbinaryField", varbinary_value, target_row[2]),
                ):
                    error = self._compare_field(product_id, column, source_value, target_value)
                    if error:
                        errors.append(error)

        source_stats = self._stats(self.source_hook, SQLSERVER, self.source_schema)
        target_stats = self._stats(self.target_hook, POSTGRES, self.target_schema)
        for key in ('total', 'with_binary', 'with_varbinary'):
            if source_stats[key] != target_stats[key]:
                errors.append(
                    f"Binary statistics mismatch for {key}: "
                    f"source={source_stats[key]}, target={target_stats[key]}"
                )

        result = {
            'success': not errors,
            'records_checked': len(source_rows),
            'errors': errors,
            'source_stats': source_stats,
            'target_stats': target_stats,
            'validation_time': datetime.now().isoformat(),
        }

        if result['success']:
            logger.info(f"✓ Binary integrity verified for {len(source_rows)} products")
        else:
            logger.warning(f"✗ Binary integrity check found {len(errors)} problems")

        return result
