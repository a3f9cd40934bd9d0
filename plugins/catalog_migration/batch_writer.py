"""
Target Batch Writer

Writes normalized records into PostgreSQL with COPY, one scoped transaction
per batch. Also owns the target-clearing and identity-sequence operations
that bracket a load.
"""

from datetime import datetime, date, time as dt_time
from decimal import Decimal
from io import TextIOBase
from typing import Any, Iterable, List, Optional, Tuple
import logging
import math

from psycopg2 import sql

from catalog_migration.entities import MIGRATION_ORDER, POSTGRES, EntityKind
from catalog_migration.exceptions import StoreFailure

logger = logging.getLogger(__name__)


# NULL marker declared in the COPY statement
COPY_NULL = '\\N'

# Characters that force a CSV field to be quoted
_QUOTE_CHARS = ('\t', '"', '\n', '\r')


def format_copy_value(value: Any) -> Any:
    """
    Format a normalized value for COPY consumption.

    Returns None for NULL; _CSVRowStream writes it as the unquoted COPY_NULL
    marker. bytea is emitted in PostgreSQL hex format.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.isoformat(sep=' ')
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dt_time):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bool):
        return 't' if value else 'f'
    if isinstance(value, (bytes, bytearray, memoryview)):
        return '\\x' + bytes(value).hex()
    if isinstance(value, float) and not math.isfinite(value):
        return None

    return value


def format_copy_field(value: Any) -> str:
    """
    Render one formatted value as a COPY CSV field.

    Only NULL is written as the bare marker. Text equal to the marker is
    quoted, and COPY reads quoted fields as values, never as NULL.
    """
    if value is None:
        return COPY_NULL
    text = str(value)
    if text == COPY_NULL or any(char in text for char in _QUOTE_CHARS):
        return '"' + text.replace('"', '""') + '"'
    return text


class _CSVRowStream(TextIOBase):
    """Lazy text stream that feeds COPY FROM without large buffers."""

    def __init__(self, rows: Iterable[Tuple[Any, ...]], formatter=format_copy_value):
        self._iterator = iter(rows)
        self._formatter = formatter
        self._buffer = ''
        self._exhausted = False

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> str:
        while (size < 0 or len(self._buffer) < size) and not self._exhausted:
            try:
                row = next(self._iterator)
            except StopIteration:
                self._exhausted = True
                break
            self._buffer += self._format_row(row)

        if size < 0:
            data = self._buffer
            self._buffer = ''
            return data

        data = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return data

    def _format_row(self, row: Tuple[Any, ...]) -> str:
        return '\t'.join(format_copy_field(self._formatter(value)) for value in row) + '\n'


class BatchWriter:
    """Insert normalized records into the target store batch by batch."""

    def __init__(self, target_hook, schema: str = 'public', timeout_seconds: int = 0):
        """
        Args:
            target_hook: PostgresHook (or any object exposing get_conn())
            schema: Target schema name
            timeout_seconds: statement_timeout applied to the session, 0 disables
        """
        self.target_hook = target_hook
        self.schema = schema
        self.timeout_seconds = timeout_seconds
        self._conn = None
        # Rows of the batch currently in flight; emptied after every commit
        self._pending: List[Tuple[Any, ...]] = []

    @property
    def tracked_count(self) -> int:
        """Number of rows currently buffered and not yet committed."""
        return len(self._pending)

    def _get_conn(self):
        if self._conn is None:
            try:
                conn = self.target_hook.get_conn()
                with conn.cursor() as cursor:
                    cursor.execute(
                        "SET statement_timeout = %s", (self.timeout_seconds * 1000,)
                    )
                conn.commit()
            except Exception as e:
                logger.error(f"Could not connect to PostgreSQL: {e}")
                raise StoreFailure(f"Connection failed: {e}", store='target') from e
            self._conn = conn
        return self._conn

    def close(self) -> None:
        """Close the underlying connection, if open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _table(self, entity_kind: EntityKind) -> sql.Composed:
        return sql.SQL('{}.{}').format(
            sql.Identifier(self.schema),
            sql.Identifier(entity_kind.table)
        )

    def _execute(self, statement, parameters=None, entity: Optional[str] = None, fetch: bool = False):
        """Run one statement in its own transaction, wrapping faults as StoreFailure."""
        conn = self._get_conn()
        try:
            with conn.cursor() as cursor:
                cursor.execute(statement, parameters)
                result = cursor.fetchone() if fetch else None
            conn.commit()
            return result
        except Exception as e:
            conn.rollback()
            logger.error(f"Error executing statement: {e}")
            raise StoreFailure(f"Target statement failed: {e}", store='target', entity=entity) from e

    def write_batch(self, entity_kind: EntityKind, rows: List[Tuple[Any, ...]]) -> int:
        """
        Stream one batch to PostgreSQL using COPY and commit it.

        Args:
            entity_kind: Entity kind of the rows
            rows: Normalized rows in the entity's column order

        Returns:
            Number of rows written

        Raises:
            StoreFailure: On any write fault; the batch is rolled back
        """
        if not rows:
            return 0

        quoted_columns = sql.SQL(', ').join([sql.Identifier(col) for col in entity_kind.column_names])
        copy_sql = sql.SQL('COPY {} ({}) FROM STDIN WITH (FORMAT CSV, DELIMITER E\'\\t\', QUOTE \'"\', NULL \'\\N\')').format(
            self._table(entity_kind),
            quoted_columns
        )

        conn = self._get_conn()
        self._pending = list(rows)
        try:
            with conn.cursor() as cursor:
                cursor.copy_expert(copy_sql, _CSVRowStream(self._pending))
            conn.commit()
            return len(self._pending)
        except Exception as e:
            conn.rollback()
            logger.error(f"Error writing {len(self._pending)} {entity_kind.name} rows: {e}")
            raise StoreFailure(
                f"Failed to write {entity_kind.name} batch: {e}",
                store='target',
                entity=entity_kind.name,
            ) from e
        finally:
            self._pending.clear()

    def clear_target(self, entity_kinds: Optional[List[EntityKind]] = None) -> None:
        """
        Empty the target tables and restart their identity sequences at 1.

        Tables are truncated in reverse dependency order inside a single
        transaction.
        """
        kinds = list(entity_kinds or MIGRATION_ORDER)
        conn = self._get_conn()
        try:
            with conn.cursor() as cursor:
                for kind in reversed(kinds):
                    cursor.execute(
                        sql.SQL('TRUNCATE TABLE {} RESTART IDENTITY CASCADE').format(self._table(kind))
                    )
                    logger.info(f"Cleared target table {self.schema}.{kind.table}")
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Error clearing target tables: {e}")
            raise StoreFailure(f"Failed to clear target: {e}", store='target') from e

    def sync_identity_sequences(self, entity_kinds: Optional[List[EntityKind]] = None) -> int:
        """
        Advance identity sequences to MAX(id) after loading explicit ids.

        Returns:
            Number of sequences synchronized
        """
        synced = 0
        for kind in entity_kinds or MIGRATION_ORDER:
            if not kind.identity_column:
                continue
            column = kind.identity_column
            statement = sql.SQL(
                'SELECT setval(pg_get_serial_sequence(%s, %s), '
                'COALESCE((SELECT MAX({col}) FROM {table}), 1), '
                '(SELECT MAX({col}) FROM {table}) IS NOT NULL)'
            ).format(col=sql.Identifier(column), table=self._table(kind))
            result = self._execute(
                statement,
                (kind.table_ref(POSTGRES, self.schema), column),
                entity=kind.name,
                fetch=True,
            )
            if result and result[0] is not None:
                logger.info(f"Synchronized identity sequence for {kind.table}.{column} to {result[0]}")
                synced += 1
            else:
                logger.warning(f"No identity sequence found for {kind.table}.{column}")
        return synced

    def count(self, entity_kind: EntityKind) -> int:
        """Count rows in a target table."""
        result = self._execute(
            sql.SQL('SELECT COUNT(*) FROM {}').format(self._table(entity_kind)),
            entity=entity_kind.name,
            fetch=True,
        )
        return result[0] if result else 0
