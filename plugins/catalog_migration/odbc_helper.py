"""
ODBC Connection Helper

This module provides a lightweight SQL Server hook built on pyodbc and
BaseHook, so the source store can be reached without the Microsoft SQL
Server Airflow provider.

Connections opened here decode datetimeoffset columns into timezone-aware
datetimes and apply the configured per-statement timeout.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple
from airflow.hooks.base import BaseHook
import pyodbc
import logging
import struct

from catalog_migration.exceptions import StoreFailure

logger = logging.getLogger(__name__)

# ODBC type code the SQL Server driver reports for datetimeoffset
SQL_SS_TIMESTAMPOFFSET = -155


def decode_datetimeoffset(raw: Optional[bytes]) -> Optional[datetime]:
    """
    Decode the driver's binary datetimeoffset structure.

    Layout: year, month, day, hour, minute, second (shorts), fraction in
    nanoseconds (unsigned int), offset hours and minutes (shorts).
    """
    if raw is None:
        return None
    year, month, day, hour, minute, second, fraction, tz_hour, tz_minute = struct.unpack(
        '<6hI2h', raw
    )
    offset = timezone(timedelta(hours=tz_hour, minutes=tz_minute))
    return datetime(year, month, day, hour, minute, second, fraction // 1000, tzinfo=offset)


class OdbcConnectionHelper:
    """
    Helper class for ODBC connections that mimics the MsSqlHook interface.

    Provides get_records, get_first and run. Every driver error is logged
    with its statement and parameters and re-raised as StoreFailure.
    """

    def __init__(self, odbc_conn_id: str, timeout_seconds: int = 0):
        """
        Initialize the ODBC connection helper.

        Args:
            odbc_conn_id: Airflow connection ID for the database
            timeout_seconds: Per-statement timeout, 0 disables it
        """
        self.conn_id = odbc_conn_id
        self.timeout_seconds = timeout_seconds
        self._conn_config = None

    def _get_connection_config(self) -> dict:
        """
        Get connection configuration from Airflow connection.

        Returns:
            Dictionary with ODBC connection parameters
        """
        if self._conn_config is None:
            conn = BaseHook.get_connection(self.conn_id)

            port = conn.port or 1433
            server = f"{conn.host},{port}" if port != 1433 else conn.host

            self._conn_config = {
                'DRIVER': '{ODBC Driver 18 for SQL Server}',
                'SERVER': server,
                'DATABASE': conn.schema,
                'TrustServerCertificate': 'yes',
            }

            # SQL Server Authentication when a login is set, Windows otherwise
            if conn.login:
                self._conn_config['UID'] = conn.login
                self._conn_config['PWD'] = conn.password or ''
                self._conn_config['Trusted_Connection'] = 'no'
            else:
                self._conn_config['Trusted_Connection'] = 'yes'

        return self._conn_config

    def _build_connection_string(self) -> str:
        config = self._get_connection_config()
        return ';'.join([f"{k}={v}" for k, v in config.items() if v])

    def get_conn(self) -> pyodbc.Connection:
        """
        Open a pyodbc connection to the database.

        Raises:
            StoreFailure: If the connection cannot be established
        """
        try:
            conn = pyodbc.connect(self._build_connection_string())
        except pyodbc.Error as e:
            logger.error(f"Could not connect to SQL Server ({self.conn_id}): {e}")
            raise StoreFailure(f"Connection failed: {e}", store='source') from e

        conn.add_output_converter(SQL_SS_TIMESTAMPOFFSET, decode_datetimeoffset)
        if self.timeout_seconds:
            conn.timeout = self.timeout_seconds
        return conn

    def _fail(self, e: Exception, sql: str, parameters: Optional[List[Any]]) -> StoreFailure:
        logger.error(f"Error executing query: {e}")
        logger.error(f"Query: {sql}")
        if parameters:
            logger.error(f"Parameters: {parameters}")
        return StoreFailure(f"Source query failed: {e}", store='source')

    def get_records(
        self,
        sql: str,
        parameters: Optional[List[Any]] = None
    ) -> List[Tuple[Any, ...]]:
        """
        Execute a query and return all rows as a list of tuples.

        Args:
            sql: SQL query to execute
            parameters: Optional list of parameters for the query

        Returns:
            List of tuples, one per row
        """
        conn = self.get_conn()
        try:
            cursor = conn.cursor()

            if parameters:
                cursor.execute(sql, parameters)
            else:
                cursor.execute(sql)

            return [tuple(row) for row in cursor.fetchall()]
        except pyodbc.Error as e:
            raise self._fail(e, sql, parameters) from e
        finally:
            conn.close()

    def get_first(
        self,
        sql: str,
        parameters: Optional[List[Any]] = None
    ) -> Optional[Tuple[Any, ...]]:
        """
        Execute a query and return the first row as a tuple.

        Returns:
            First row as a tuple, or None if no rows
        """
        conn = self.get_conn()
        try:
            cursor = conn.cursor()

            if parameters:
                cursor.execute(sql, parameters)
            else:
                cursor.execute(sql)

            row = cursor.fetchone()
            return tuple(row) if row is not None else None
        except pyodbc.Error as e:
            raise self._fail(e, sql, parameters) from e
        finally:
            conn.close()

    def run(
        self,
        sql: str,
        parameters: Optional[List[Any]] = None,
        autocommit: bool = False
    ) -> None:
        """
        Execute a SQL statement (typically DDL or DML).

        Args:
            sql: SQL statement to execute
            parameters: Optional list of parameters for the query
            autocommit: Whether to commit automatically
        """
        conn = self.get_conn()
        try:
            if autocommit:
                conn.autocommit = True

            cursor = conn.cursor()

            if parameters:
                cursor.execute(sql, parameters)
            else:
                cursor.execute(sql)

            if not autocommit:
                conn.commit()
        except pyodbc.Error as e:
            if not autocommit:
                conn.rollback()
            raise self._fail(e, sql, parameters) from e
        finally:
            conn.close()
