"""
Tests for Migration Configuration Module

These tests validate environment parsing, defaults and per-run overrides.
"""

import pytest
from unittest.mock import patch

from catalog_migration.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_BATCH_TIMEOUT_SECONDS,
    get_migration_config,
    parse_int_setting,
)


class TestParseIntSetting:
    """Test integer setting parsing with fallback."""

    def test_valid_value(self):
        """Test a valid integer string is parsed."""
        assert parse_int_setting("500", 1000) == 500
        assert parse_int_setting(250, 1000) == 250

    def test_empty_uses_default(self):
        """Test empty input falls back to the default."""
        assert parse_int_setting("", 1000) == 1000
        assert parse_int_setting("   ", 1000) == 1000
        assert parse_int_setting(None, 1000) == 1000

    def test_malformed_uses_default(self):
        """Test malformed input falls back to the default."""
        assert parse_int_setting("abc", 1000) == 1000
        assert parse_int_setting("12.5", 1000) == 1000

    def test_below_minimum_uses_default(self):
        """Test values below the minimum fall back to the default."""
        assert parse_int_setting("0", 1000, minimum=1) == 1000
        assert parse_int_setting("-5", 300, minimum=0) == 300

    def test_zero_allowed_when_minimum_zero(self):
        """Test zero is accepted when the minimum is zero."""
        assert parse_int_setting("0", 300, minimum=0) == 0


class TestGetMigrationConfig:
    """Test configuration assembly."""

    def test_defaults(self):
        """Test the configuration defaults."""
        with patch.dict('os.environ', {}, clear=True):
            config = get_migration_config()

        assert config['source_conn_id'] == 'mssql_source'
        assert config['target_conn_id'] == 'postgres_target'
        assert config['source_schema'] == 'dbo'
        assert config['target_schema'] == 'public'
        assert config['batch_size'] == DEFAULT_BATCH_SIZE
        assert config['product_batch_size'] == DEFAULT_BATCH_SIZE
        assert config['batch_timeout_seconds'] == DEFAULT_BATCH_TIMEOUT_SECONDS
        assert config['sample_size'] == 100
        assert config['binary_sample_size'] == 10
        assert config['report_dir'] == '.'
        assert config['strict_consistency'] is False

    def test_environment_values(self):
        """Test values are read from the environment."""
        env = {
            'CATALOG_SOURCE_CONN_ID': 'legacy_sql',
            'MIGRATION_BATCH_SIZE': '2000',
            'PRODUCT_BATCH_SIZE': '250',
            'BATCH_TIMEOUT_SECONDS': '0',
            'STRICT_CONSISTENCY': 'true',
        }
        with patch.dict('os.environ', env, clear=True):
            config = get_migration_config()

        assert config['source_conn_id'] == 'legacy_sql'
        assert config['batch_size'] == 2000
        assert config['product_batch_size'] == 250
        assert config['batch_timeout_seconds'] == 0
        assert config['strict_consistency'] is True

    def test_product_batch_follows_batch_size(self):
        """Test the Product batch size follows the batch size."""
        with patch.dict('os.environ', {'MIGRATION_BATCH_SIZE': '3000'}, clear=True):
            config = get_migration_config()
        assert config['product_batch_size'] == 3000

    def test_malformed_environment_falls_back(self):
        """Test malformed environment values fall back to defaults."""
        with patch.dict('os.environ', {'MIGRATION_BATCH_SIZE': 'lots'}, clear=True):
            config = get_migration_config()
        assert config['batch_size'] == DEFAULT_BATCH_SIZE

    def test_overrides_take_precedence(self):
        """Test overrides win over the environment."""
        with patch.dict('os.environ', {'MIGRATION_BATCH_SIZE': '2000'}, clear=True):
            config = get_migration_config({
                'batch_size': 50,
                'target_conn_id': 'pg_other',
                'report_dir': None,
            })

        assert config['batch_size'] == 50
        assert config['product_batch_size'] == 50
        assert config['target_conn_id'] == 'pg_other'
        assert config['report_dir'] == '.'

    def test_explicit_product_batch_size_kept(self):
        """Test an explicit Product batch size is kept."""
        with patch.dict('os.environ', {'PRODUCT_BATCH_SIZE': '100'}, clear=True):
            config = get_migration_config({'batch_size': 50})
        assert config['product_batch_size'] == 100

    def test_invalid_override_keeps_environment_value(self):
        """Test an invalid override keeps the environment value."""
        with patch.dict('os.environ', {'MIGRATION_BATCH_SIZE': '2000'}, clear=True):
            config = get_migration_config({'batch_size': 'many'})
        assert config['batch_size'] == 2000
