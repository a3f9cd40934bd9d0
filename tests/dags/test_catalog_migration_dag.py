"""
Tests for the Product Catalog Migration DAG

These tests load the DAG folder and check the DAG's parameters, its task
and its no-retry policy.
"""

import os
import sys
import pytest

# Add parent directories to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..', 'plugins')))

from airflow.models import DagBag

DAG_FOLDER = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..', 'dags'))


class TestCatalogMigrationDAG:
    """Test the catalog_migration DAG definition."""

    @pytest.fixture(scope="class")
    def dag_bag(self):
        """Create a DagBag for testing."""
        return DagBag(dag_folder=DAG_FOLDER, include_examples=False)

    @pytest.fixture
    def dag(self, dag_bag):
        dag = dag_bag.get_dag("catalog_migration")
        assert dag is not None
        return dag

    def test_dag_loads_without_errors(self, dag_bag):
        """Test the DAG file imports cleanly."""
        assert not any("catalog_migration" in path for path in dag_bag.import_errors)

    def test_dag_has_expected_params(self, dag):
        """Test the DAG has the expected parameters."""
        expected_params = [
            "source_conn_id",
            "target_conn_id",
            "mode",
            "batch_size",
            "sample_size",
            "report_dir",
        ]

        for param in expected_params:
            assert param in dag.params, f"Missing expected parameter: {param}"

    def test_param_defaults(self, dag):
        """Test parameter defaults."""
        assert dag.params["source_conn_id"] == "mssql_source"
        assert dag.params["target_conn_id"] == "postgres_target"
        assert dag.params["mode"] == "migrate"
        assert dag.params["batch_size"] == 1000
        assert dag.params["sample_size"] == 100

    def test_single_run_migration_task(self, dag):
        """Test the DAG has a single run_migration task."""
        assert [task.task_id for task in dag.tasks] == ["run_migration"]

    def test_runs_are_not_retried(self, dag):
        """Test failed runs are not retried."""
        assert dag.default_args["retries"] == 0
        assert dag.get_task("run_migration").retries == 0

    def test_manual_schedule(self, dag):
        """Test the DAG runs manually, one run at a time."""
        assert dag.max_active_runs == 1
        assert not dag.catchup
