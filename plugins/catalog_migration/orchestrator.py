"""
Migration Orchestrator

Runs one migration end to end as a strictly sequential state machine:

    NotStarted -> ValidatingSource -> Migrating -> ValidatingTarget
               -> CrossValidating -> Done (Success | Failed)

A fault in any stage moves the run straight to Failed and skips the
remaining stages. The report is produced either way.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import time

from catalog_migration.config import get_migration_config
from catalog_migration.data_transfer import build_pipeline
from catalog_migration.entities import POSTGRES, PRODUCT, SQLSERVER
from catalog_migration.exceptions import SourceValidationFailure
from catalog_migration.report import generate_migration_report, write_report_file
from catalog_migration.target_schema import ensure_target_schema
from catalog_migration.validation import (
    BinaryIntegrityChecker,
    CrossConsistencyChecker,
    IntegrityValidator,
    TimedQueryHook,
    ensure_consistent,
)

logger = logging.getLogger(__name__)


# Run states
NOT_STARTED = "NotStarted"
VALIDATING_SOURCE = "ValidatingSource"
MIGRATING = "Migrating"
VALIDATING_TARGET = "ValidatingTarget"
CROSS_VALIDATING = "CrossValidating"
DONE = "Done"

# Terminal outcomes
SUCCESS = "Success"
FAILED = "Failed"


def create_hooks(config: Dict[str, Any]):
    """
    Create the source and target hooks named in the config.

    Returns:
        Tuple of (OdbcConnectionHelper, PostgresHook)
    """
    from airflow.providers.postgres.hooks.postgres import PostgresHook
    from catalog_migration.odbc_helper import OdbcConnectionHelper

    source_hook = OdbcConnectionHelper(
        config['source_conn_id'],
        timeout_seconds=config['batch_timeout_seconds'],
    )
    target_hook = PostgresHook(postgres_conn_id=config['target_conn_id'])
    return source_hook, target_hook


class MigrationOrchestrator:
    """Run the validate -> migrate -> validate -> cross-check sequence."""

    def __init__(self, source_hook, target_hook, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            source_hook: SQL Server hook (OdbcConnectionHelper)
            target_hook: PostgreSQL hook (PostgresHook)
            config: Migration config, defaults to get_migration_config()
        """
        self.source_hook = source_hook
        self.target_hook = target_hook
        self.config = config or get_migration_config()
        # Validation reads on the target run under the same statement timeout as writes
        timeout_seconds = self.config.get('batch_timeout_seconds', 0)
        self.target_queries = TimedQueryHook(target_hook, timeout_seconds) if timeout_seconds else target_hook
        self.state = NOT_STARTED
        self.history: List[str] = [NOT_STARTED]
        self.error: Optional[BaseException] = None

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "MigrationOrchestrator":
        config = config or get_migration_config()
        source_hook, target_hook = create_hooks(config)
        return cls(source_hook, target_hook, config)

    def _transition(self, state: str) -> None:
        logger.info(f"Migration state: {self.state} -> {state}")
        self.state = state
        self.history.append(state)

    def validate_source(self) -> Dict[str, Any]:
        """
        Pre-migration gate on the source store.

        Raises:
            SourceValidationFailure: If the source has orphans or no Products
        """
        result = IntegrityValidator(self.source_hook, SQLSERVER, self.config['source_schema']).validate()
        if not result['is_valid']:
            raise SourceValidationFailure("Source data validation failed", result['errors'])
        if result['counts'].get(PRODUCT.name, 0) == 0:
            raise SourceValidationFailure("No products found in source database", ["Product count is 0"])
        return result

    def migrate(self, run: Dict[str, Any]) -> Dict[str, Any]:
        ensure_target_schema(self.target_hook, self.config['target_schema'])
        pipeline, writer = build_pipeline(self.source_hook, self.target_hook, self.config)
        try:
            return pipeline.run()
        finally:
            run['migration'] = pipeline.result
            writer.close()

    def validate_target(self) -> Dict[str, Any]:
        return IntegrityValidator(self.target_queries, POSTGRES, self.config['target_schema']).validate()

    def cross_validate(self) -> Dict[str, Any]:
        checker = CrossConsistencyChecker(
            self.source_hook,
            self.target_queries,
            source_schema=self.config['source_schema'],
            target_schema=self.config['target_schema'],
            sample_size=self.config['sample_size'],
        )
        result = checker.compare()
        if self.config.get('strict_consistency'):
            ensure_consistent(result)
        return result

    def run(self, raise_on_failure: bool = False) -> Dict[str, Any]:
        """
        Execute one complete migration run.

        Args:
            raise_on_failure: Re-raise the stage error after the report is written

        Returns:
            Run dictionary with status, stage results, stage_timings,
            report and report_path
        """
        self.state = NOT_STARTED
        self.history = [NOT_STARTED]
        self.error = None

        run: Dict[str, Any] = {
            'status': None,
            'start_time': datetime.now(),
            'end_time': None,
            'stage_timings': {},
            'source_validation': None,
            'migration': None,
            'target_validation': None,
            'cross_validation': None,
            'error_message': None,
        }
        stages = [
            (VALIDATING_SOURCE, 'source_validation', self.validate_source),
            (MIGRATING, 'migration', lambda: self.migrate(run)),
            (VALIDATING_TARGET, 'target_validation', self.validate_target),
            (CROSS_VALIDATING, 'cross_validation', self.cross_validate),
        ]

        logger.info(
            f"Starting catalog migration: {self.config['source_conn_id']} -> {self.config['target_conn_id']}"
        )

        try:
            for state, key, stage in stages:
                self._transition(state)
                stage_start = time.time()
                try:
                    run[key] = stage()
                finally:
                    run['stage_timings'][state] = time.time() - stage_start
        except Exception as e:
            self.error = e
            run['error_message'] = str(e)
            if isinstance(e, SourceValidationFailure):
                run['source_validation'] = run['source_validation'] or {
                    'is_valid': False, 'errors': e.errors, 'counts': {},
                }
            logger.error(f"Migration failed during {self.state}: {e}")

        run['status'] = SUCCESS if self.error is None and self._succeeded(run) else FAILED
        self._transition(DONE)
        run['end_time'] = datetime.now()

        run['report'] = generate_migration_report(run)
        run['report_path'] = write_report_file(run['report'], self.config['report_dir'], run['end_time'])

        duration = (run['end_time'] - run['start_time']).total_seconds()
        if run['status'] == SUCCESS:
            logger.info(f"Migration {run['status']} in {duration:.2f} seconds")
        else:
            logger.error(
                f"Migration {run['status']} in {duration:.2f} seconds: "
                f"{run['error_message'] or 'validation did not pass'}"
            )

        if raise_on_failure and self.error is not None:
            raise self.error
        return run

    @staticmethod
    def _succeeded(run: Dict[str, Any]) -> bool:
        migration = run.get('migration') or {}
        target = run.get('target_validation') or {}
        cross = run.get('cross_validation') or {}
        return bool(
            migration.get('success')
            and target.get('is_valid')
            and cross.get('is_consistent')
        )

    def verify_binary_integrity(self) -> Dict[str, Any]:
        """Run the binary spot check against already-migrated stores."""
        checker = BinaryIntegrityChecker(
            self.source_hook,
            self.target_queries,
            source_schema=self.config['source_schema'],
            target_schema=self.config['target_schema'],
        )
        return checker.check(self.config['binary_sample_size'])
