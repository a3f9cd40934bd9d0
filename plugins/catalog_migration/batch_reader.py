"""
Source Batch Reader

Reads entity records from SQL Server in fixed-size pages ordered by primary
key. Reading is side-effect free.
"""

from typing import Any, Iterator, List, Optional, Tuple
import logging

from catalog_migration.entities import SQLSERVER, EntityKind, quote_identifier
from catalog_migration.exceptions import StoreFailure

logger = logging.getLogger(__name__)


def build_page_query(entity_kind: EntityKind, schema: Optional[str] = None) -> str:
    """
    Build the OFFSET/FETCH page query for an entity kind.

    Columns come back in the entity's transfer order. Columns with a source
    expression (CLR types) are selected through it and aliased back to the
    column name.

    Args:
        entity_kind: Entity kind to read
        schema: Source schema name

    Returns:
        T-SQL query taking two parameters: offset and limit
    """
    select_list = []
    for column in entity_kind.column_names:
        quoted = quote_identifier(column, SQLSERVER)
        expression = entity_kind.source_expressions.get(column)
        select_list.append(f"{expression} AS {quoted}" if expression else quoted)

    order_by = ', '.join(quote_identifier(col, SQLSERVER) for col in entity_kind.primary_key)

    return (
        f"SELECT {', '.join(select_list)} "
        f"FROM {entity_kind.table_ref(SQLSERVER, schema)} "
        f"ORDER BY {order_by} "
        f"OFFSET ? ROWS FETCH NEXT ? ROWS ONLY"
    )


class BatchReader:
    """Pull entity records from the source store one page at a time."""

    def __init__(self, source_hook, schema: str = 'dbo'):
        """
        Args:
            source_hook: Object exposing get_records(sql, parameters), usually
                an OdbcConnectionHelper
            schema: Source schema name
        """
        self.source_hook = source_hook
        self.schema = schema

    def read(self, entity_kind: EntityKind, offset: int, limit: int) -> List[Tuple[Any, ...]]:
        """
        Read one page of records.

        Args:
            entity_kind: Entity kind to read
            offset: Number of rows to skip (non-negative)
            limit: Maximum rows to return (positive)

        Returns:
            Rows in the entity's column order, ordered by primary key. Fewer
            than limit rows means this was the last page; an empty list means
            the table is exhausted.

        Raises:
            ValueError: For a negative offset or non-positive limit
            StoreFailure: If the source query fails
        """
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")

        query = build_page_query(entity_kind, self.schema)
        try:
            rows = self.source_hook.get_records(query, [offset, limit])
        except StoreFailure as e:
            e.entity = e.entity or entity_kind.name
            raise
        except Exception as e:
            logger.error(f"Error reading {entity_kind.name} rows {offset}-{offset + limit}: {e}")
            raise StoreFailure(
                f"Failed to read {entity_kind.name} page at offset {offset}: {e}",
                store='source',
                entity=entity_kind.name,
            ) from e

        return [tuple(row) for row in rows or []]

    def iter_batches(self, entity_kind: EntityKind, batch_size: int) -> Iterator[List[Tuple[Any, ...]]]:
        """Yield successive pages until the source returns an empty page."""
        offset = 0
        while True:
            page = self.read(entity_kind, offset, batch_size)
            if not page:
                return
            yield page
            offset += len(page)
