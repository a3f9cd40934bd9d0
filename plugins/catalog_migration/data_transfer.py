"""
Entity Migration Pipeline

This module drives the batched transfer of the catalog from SQL Server to
PostgreSQL: for each entity kind, in dependency order, it pages the source,
normalizes every row and writes the batch to the target. Pages are
processed synchronously, one at a time, so memory stays bounded by a single
batch.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import time

from catalog_migration.batch_reader import BatchReader
from catalog_migration.batch_writer import BatchWriter
from catalog_migration.config import DEFAULT_BATCH_SIZE, get_migration_config
from catalog_migration.entities import MIGRATION_ORDER, PRODUCT, EntityKind
from catalog_migration.type_mapping import normalize_row

logger = logging.getLogger(__name__)


class EntityMigrationPipeline:
    """Move every entity kind from the source reader to the target writer."""

    def __init__(
        self,
        reader,
        writer,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_sizes: Optional[Dict[str, int]] = None,
        entity_kinds: Optional[List[EntityKind]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            reader: BatchReader (or any object with iter_batches(kind, size))
            writer: BatchWriter (or any object with clear_target, write_batch
                and sync_identity_sequences)
            batch_size: Rows per page for every entity kind
            batch_sizes: Optional per-kind page size overrides, keyed by kind name
            entity_kinds: Kinds to migrate, in insert order
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.reader = reader
        self.writer = writer
        self.batch_size = batch_size
        self.batch_sizes = dict(batch_sizes or {})
        self.entity_kinds = list(entity_kinds or MIGRATION_ORDER)
        self.result: Optional[Dict[str, Any]] = None

    def batch_size_for(self, entity_kind: EntityKind) -> int:
        return self.batch_sizes.get(entity_kind.name, self.batch_size)

    def transfer_entity(self, entity_kind: EntityKind) -> int:
        """
        Transfer all rows of one entity kind.

        Args:
            entity_kind: Entity kind to transfer

        Returns:
            Number of rows written
        """
        batch_size = self.batch_size_for(entity_kind)
        logger.info(f"Migrating {entity_kind.name} ({entity_kind.table}) in batches of {batch_size:,}")

        start_time = time.time()
        rows_transferred = 0
        batches_processed = 0

        for page in self.reader.iter_batches(entity_kind, batch_size):
            batch_start_time = time.time()
            normalized = [normalize_row(entity_kind, row) for row in page]
            rows_written = self.writer.write_batch(entity_kind, normalized)

            rows_transferred += rows_written
            batches_processed += 1

            batch_time = time.time() - batch_start_time
            rows_per_second = rows_written / batch_time if batch_time > 0 else 0
            logger.info(
                f"{entity_kind.name} batch {batches_processed}: wrote {rows_written:,} rows "
                f"({rows_transferred:,} total) at {rows_per_second:,.0f} rows/sec"
            )

        elapsed_time = time.time() - start_time
        avg_rows_per_second = rows_transferred / elapsed_time if elapsed_time > 0 else 0
        logger.info(
            f"Migrated {rows_transferred:,} {entity_kind.name} rows in {elapsed_time:.2f} seconds "
            f"({avg_rows_per_second:,.0f} rows/sec average)"
        )
        return rows_transferred

    def run(self) -> Dict[str, Any]:
        """
        Clear the target and migrate every entity kind in dependency order.

        Returns:
            Result dictionary with success, counts, total_records,
            elapsed_time_seconds, entity_timings and error_message

        Raises:
            Any error from the reader, normalizer or writer. The result is
            still recorded on self.result with success False.
        """
        start_time = time.time()
        counts = {kind.name: 0 for kind in self.entity_kinds}
        entity_timings: Dict[str, float] = {}
        self.result = {
            'success': False,
            'counts': counts,
            'total_records': 0,
            'elapsed_time_seconds': 0.0,
            'entity_timings': entity_timings,
            'error_message': None,
            'timestamp': datetime.now().isoformat(),
        }

        try:
            self.writer.clear_target(self.entity_kinds)

            for kind in self.entity_kinds:
                kind_start = time.time()
                counts[kind.name] = self.transfer_entity(kind)
                entity_timings[kind.name] = time.time() - kind_start

            self.writer.sync_identity_sequences(self.entity_kinds)
            self.result['success'] = True
        except Exception as e:
            self.result['error_message'] = str(e)
            logger.error(f"Migration failed: {e}")
            raise
        finally:
            self.result['total_records'] = sum(counts.values())
            self.result['elapsed_time_seconds'] = time.time() - start_time

        elapsed = self.result['elapsed_time_seconds']
        rate = self.result['total_records'] / elapsed if elapsed > 0 else 0
        logger.info(
            f"Migration completed: {self.result['total_records']:,} records in {elapsed:.2f} seconds "
            f"({rate:,.0f} records/sec)"
        )
        return self.result


def build_pipeline(source_hook, target_hook, config: Optional[Dict[str, Any]] = None):
    """
    Build a reader/writer pipeline from hooks and migration config.

    Returns:
        Tuple of (pipeline, writer); the caller closes the writer
    """
    config = config or get_migration_config()
    reader = BatchReader(source_hook, schema=config['source_schema'])
    writer = BatchWriter(
        target_hook,
        schema=config['target_schema'],
        timeout_seconds=config['batch_timeout_seconds'],
    )
    pipeline = EntityMigrationPipeline(
        reader,
        writer,
        batch_size=config['batch_size'],
        batch_sizes={PRODUCT.name: config['product_batch_size']},
    )
    return pipeline, writer
