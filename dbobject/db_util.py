"""
PostgreSQL connection, statement and transaction handling.

This module provides :class:`DbUtil` for managing a psycopg2 connection and
:class:`DbStatement` for the prepare/execute/fetch cycle used by records and
record sets. Connection parameters can be passed explicitly or read from
environment variables (e.g. ``DATABASE_HOST``, ``DATABASE_NAME``).

Connections run in autocommit mode; :meth:`DbUtil.begin_transaction` turns
autocommit off until the next :meth:`DbUtil.commit` or :meth:`DbUtil.rollback`.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Union

import psycopg2 as psycopg

logger = logging.getLogger("dbobject.db_util")


class DbStatement:
    """
    One SQL statement on its own cursor.

    SQL is expected in the driver's ``%s`` format with literal ``%`` escaped,
    as rendered by :mod:`dbobject.sql`.
    """

    def __init__(self, connection: Any, sql: str):
        self.sql = sql
        self._cursor = connection.cursor()
        self._columns: Optional[List[str]] = None

    def execute(self, bindings: Union[list, tuple, dict, None] = None) -> None:
        logger.debug("Query: %s", self.sql)
        try:
            if bindings:
                params = dict(bindings) if isinstance(bindings, dict) else tuple(bindings)
                self._cursor.execute(self.sql, params)
            else:
                self._cursor.execute(self.sql.replace("%%", "%"))
        except Exception:
            logger.error("DB: Error executing statement", exc_info=True)
            raise

        if self._cursor.description is not None:
            self._columns = [desc[0] for desc in self._cursor.description]

    def fetch_row(self) -> Optional[Dict[str, Any]]:
        if self._columns is None:
            return None
        row = self._cursor.fetchone()
        if row is None:
            return None
        return dict(zip(self._columns, row))

    def fetch_all(self) -> List[Dict[str, Any]]:
        if self._columns is None:
            return []
        return [dict(zip(self._columns, row)) for row in self._cursor.fetchall()]

    def row_count(self) -> int:
        return self._cursor.rowcount

    def close(self) -> None:
        self._cursor.close()


class DbUtil:
    """
    PostgreSQL connection manager and query executor.

    Uses psycopg2 under the hood. Parameters not provided in ``params``
    fall back to environment variables: ``DATABASE_HOST``, ``DATABASE_NAME``,
    ``DATABASE_USER``, ``DATABASE_PASS``, ``DATABASE_PORT``.

    On success, methods return the result (or None); on failure they log
    and raise (e.g. :exc:`RuntimeError`).
    """

    dialect = "postgresql"

    def __init__(self, params: Dict = None):
        """
        Build connection params from ``params`` and env (e.g. DATABASE_*).
        """
        params = params or {}
        self.connection_params = {
            "host": params.get("host") or os.getenv("DATABASE_HOST"),
            "database": params.get("database") or os.getenv("DATABASE_NAME"),
            "user": params.get("user") or os.getenv("DATABASE_USER"),
            "password": params.get("password") or os.getenv("DATABASE_PASS"),
            "port": params.get("port") or os.getenv("DATABASE_PORT"),
        }
        self.connection = None

    def connect(self, default_schema: str = None) -> None:
        """
        Open a connection in autocommit mode. If ``default_schema`` is set,
        create the schema if needed and set the connection's search_path.
        Raises on failure.
        """
        try:
            if default_schema:
                self.create_schema(default_schema)
                self.disconnect()
                self.connection_params["options"] = f"-c search_path={default_schema}"

            self.connection = psycopg.connect(**self.connection_params)
            self.connection.autocommit = True
        except Exception as error:
            logger.error("DB: Error creating connection", exc_info=True)
            raise RuntimeError("Failed to create DB Connection") from error

    def disconnect(self, do_commit: bool = False) -> None:
        """
        Close the connection. If ``do_commit`` is True, commit before closing.
        """
        try:
            if self.connection:
                if do_commit:
                    self.commit()
                self.connection.close()
        except Exception:
            logger.warning("DB: Error closing connection", exc_info=True)
        finally:
            self.connection = None

    def begin_transaction(self) -> None:
        """
        Start a transaction; statements run inside it until commit/rollback.
        """
        if not self.connection:
            self.connect()
        self.connection.autocommit = False
        logger.debug("DB: Transaction started")

    def in_transaction(self) -> bool:
        return bool(self.connection) and not self.connection.autocommit

    def commit(self) -> None:
        """
        Commit the current transaction. Raises if there is no connection or commit fails.
        """
        if not self.connection:
            raise RuntimeError("No connection found to commit")
        try:
            self.connection.commit()
            self.connection.autocommit = True
        except Exception:
            logger.error("DB: Error committing", exc_info=True)
            raise

    def rollback(self) -> None:
        if not self.connection:
            raise RuntimeError("No connection found to roll back")
        try:
            self.connection.rollback()
            self.connection.autocommit = True
        except Exception:
            logger.error("DB: Error rolling back", exc_info=True)
            raise

    def prepare(self, sql: str) -> DbStatement:
        """Return a statement for ``sql``, connecting first if needed."""
        if not self.connection:
            self.connect()
        return DbStatement(self.connection, sql)

    def create_schema(self, schema: str) -> None:
        """
        Create schema ``schema`` (IF NOT EXISTS). Connects first if needed. Raises on failure.
        """
        try:
            if not self.connection:
                self.connect()

            with self.connection.cursor() as cursor:
                cursor.execute(f"CREATE SCHEMA IF NOT EXISTS {schema}")

            self.connection.commit()
        except Exception as error:
            if self.connection:
                self.connection.rollback()
            logger.error("DB: Failed to create schema %s", schema, exc_info=True)
            raise RuntimeError(f"Failed to create Schema: {schema}") from error

    def execute_query(self, query: str, data: tuple = None) -> List[Dict[str, Any]]:
        """
        Run a one-off query on a short-lived cursor and return every row as a
        dict keyed by column name. Used for catalog lookups.

        Args:
            query: SQL string; use ``%s`` placeholders when passing ``data``.
            data: Tuple of values for placeholders (parameterized execution).

        Raises:
            Exception: On execution failure.
        """
        if not self.connection:
            self.connect()

        try:
            with self.connection.cursor() as cursor:
                if data is not None:
                    cursor.execute(query, data)
                else:
                    cursor.execute(query)

                column_names = [desc[0] for desc in cursor.description]
                return [dict(zip(column_names, row)) for row in cursor.fetchall()]

        except Exception:
            logger.error("DB: Error executing query", exc_info=True)
            raise
