"""
Product Catalog Migration DAG

This DAG migrates the product catalog from SQL Server to PostgreSQL in one
sequential run:
1. Validate the source (no orphaned references, at least one Product)
2. Ensure the target schema, clear the target tables
3. Transfer Categories, Tags, Products, ProductDetails and ProductTags in batches
4. Validate the target and cross-check it against the source
5. Write a plain-text migration report

With mode=verify_binary the DAG only runs the binary integrity spot check
against an already-migrated target.
"""

from airflow.sdk import dag, task
from airflow.models.param import Param
from pendulum import datetime
from typing import Any, Dict
import logging

from catalog_migration.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CROSS_CHECK_SAMPLE_SIZE,
    get_migration_config,
)
from catalog_migration.exceptions import MigrationError

logger = logging.getLogger(__name__)


@dag(
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually or trigger via API
    catchup=False,
    max_active_runs=1,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        # A failed run is re-run from scratch, never retried mid-way
        "retries": 0,
    },
    params={
        "source_conn_id": Param(
            default="mssql_source",
            type="string",
            description="SQL Server connection ID"
        ),
        "target_conn_id": Param(
            default="postgres_target",
            type="string",
            description="PostgreSQL connection ID"
        ),
        "mode": Param(
            default="migrate",
            type="string",
            enum=["migrate", "verify_binary"],
            description="Full migration or binary integrity check only"
        ),
        "batch_size": Param(
            default=DEFAULT_BATCH_SIZE,
            type="integer",
            minimum=1,
            description="Number of rows to transfer per batch"
        ),
        "sample_size": Param(
            default=DEFAULT_CROSS_CHECK_SAMPLE_SIZE,
            type="integer",
            minimum=1,
            description="Number of Products compared in the cross-consistency check"
        ),
        "report_dir": Param(
            default=".",
            type="string",
            description="Directory the migration report is written to"
        ),
    },
    tags=["migration", "mssql", "postgres", "catalog"],
)
def catalog_migration():
    """
    Product catalog migration DAG.
    """

    @task
    def run_migration(**context) -> Dict[str, Any]:
        """
        Run the migration (or the binary check) and summarize the outcome.

        Returns:
            JSON-serializable run summary
        """
        from catalog_migration.orchestrator import SUCCESS, MigrationOrchestrator

        params = context["params"]
        config = get_migration_config({
            'source_conn_id': params.get("source_conn_id"),
            'target_conn_id': params.get("target_conn_id"),
            'batch_size': params.get("batch_size"),
            'sample_size': params.get("sample_size"),
            'report_dir': params.get("report_dir"),
        })
        orchestrator = MigrationOrchestrator.from_config(config)

        if params.get("mode") == "verify_binary":
            result = orchestrator.verify_binary_integrity()
            if not result['success']:
                raise MigrationError(
                    f"Binary integrity check failed with {len(result['errors'])} errors",
                    details={'errors': result['errors']},
                )
            return result

        run = orchestrator.run(raise_on_failure=True)
        logger.info("\n" + run['report'])

        if run['status'] != SUCCESS:
            raise MigrationError(
                "Migration finished but validation did not pass",
                details={'report_path': run['report_path']},
            )

        migration = run['migration'] or {}
        return {
            'status': run['status'],
            'counts': migration.get('counts', {}),
            'total_records': migration.get('total_records', 0),
            'elapsed_time_seconds': migration.get('elapsed_time_seconds', 0.0),
            'report_path': run['report_path'],
        }

    run_migration()


# Instantiate the DAG
catalog_migration()
