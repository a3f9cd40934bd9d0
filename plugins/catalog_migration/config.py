"""
Migration Configuration

Reads run settings from environment variables. Connection credentials live
in Airflow connections; only the connection IDs are configured here.
"""

from typing import Any, Dict, Optional
import logging
import os

logger = logging.getLogger(__name__)


DEFAULT_SOURCE_CONN_ID = "mssql_source"
DEFAULT_TARGET_CONN_ID = "postgres_target"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_BATCH_TIMEOUT_SECONDS = 300
DEFAULT_CROSS_CHECK_SAMPLE_SIZE = 100
DEFAULT_BINARY_CHECK_SAMPLE_SIZE = 10


def parse_int_setting(
    value: Any,
    default: int,
    minimum: Optional[int] = None,
    name: str = "setting"
) -> int:
    """
    Parse an integer setting, falling back to the default on bad input.

    Empty, non-numeric and below-minimum values never fail; they log a
    warning and return the default.

    Args:
        value: Raw value (string from the environment, int from DAG params)
        default: Value used when the input is missing or malformed
        minimum: Smallest accepted value (inclusive)
        name: Setting name for log messages

    Returns:
        The parsed integer or the default
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return default

    try:
        parsed = int(str(value).strip())
    except ValueError:
        logger.warning(f"Invalid value {value!r} for {name}, using default {default}")
        return default

    if minimum is not None and parsed < minimum:
        logger.warning(f"Value {parsed} for {name} is below {minimum}, using default {default}")
        return default

    return parsed


def _env_flag(name: str) -> bool:
    val = os.environ.get(name, '').lower()
    return val in ('true', '1', 'yes', 'on')


def get_migration_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the migration configuration from the environment.

    Args:
        overrides: Optional values (e.g. DAG params) that take precedence
            over environment variables. None values are ignored.

    Returns:
        Configuration dictionary
    """
    batch_size = parse_int_setting(
        os.environ.get('MIGRATION_BATCH_SIZE'), DEFAULT_BATCH_SIZE, minimum=1,
        name='MIGRATION_BATCH_SIZE'
    )

    config = {
        'source_conn_id': os.environ.get('CATALOG_SOURCE_CONN_ID', DEFAULT_SOURCE_CONN_ID),
        'target_conn_id': os.environ.get('CATALOG_TARGET_CONN_ID', DEFAULT_TARGET_CONN_ID),
        'source_schema': os.environ.get('SOURCE_SCHEMA', 'dbo'),
        'target_schema': os.environ.get('TARGET_SCHEMA', 'public'),
        'batch_size': batch_size,
        'product_batch_size': parse_int_setting(
            os.environ.get('PRODUCT_BATCH_SIZE'), batch_size, minimum=1,
            name='PRODUCT_BATCH_SIZE'
        ),
        'batch_timeout_seconds': parse_int_setting(
            os.environ.get('BATCH_TIMEOUT_SECONDS'), DEFAULT_BATCH_TIMEOUT_SECONDS, minimum=0,
            name='BATCH_TIMEOUT_SECONDS'
        ),
        'sample_size': parse_int_setting(
            os.environ.get('CROSS_CHECK_SAMPLE_SIZE'), DEFAULT_CROSS_CHECK_SAMPLE_SIZE, minimum=1,
            name='CROSS_CHECK_SAMPLE_SIZE'
        ),
        'binary_sample_size': parse_int_setting(
            os.environ.get('BINARY_CHECK_SAMPLE_SIZE'), DEFAULT_BINARY_CHECK_SAMPLE_SIZE, minimum=1,
            name='BINARY_CHECK_SAMPLE_SIZE'
        ),
        'report_dir': os.environ.get('MIGRATION_REPORT_DIR', '.'),
        'strict_consistency': _env_flag('STRICT_CONSISTENCY'),
    }

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key in ('batch_size', 'product_batch_size', 'sample_size', 'binary_sample_size'):
            config[key] = parse_int_setting(value, config[key], minimum=1, name=key)
        elif key == 'batch_timeout_seconds':
            config[key] = parse_int_setting(value, config[key], minimum=0, name=key)
        else:
            config[key] = value

    # Product pages follow the general batch size unless set explicitly
    overrides = overrides or {}
    if (
        overrides.get('batch_size') is not None
        and overrides.get('product_batch_size') is None
        and not os.environ.get('PRODUCT_BATCH_SIZE')
    ):
        config['product_batch_size'] = config['batch_size']

    return config
