"""
Base Database Service Module

Shared SQLite connection handling, query helpers and UTC timestamp
conversion for the news desk database services.
"""

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

# Configure logger for this module
logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/news.db"
# Stored timestamps are UTC, in SQLite's native text format
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class BaseDatabaseService:
    """
    Base class for services backed by one SQLite file.

    Subclasses create their tables in ``__init__`` and use the
    ``execute_*`` helpers, which log failures and return a neutral value
    (None or False) instead of raising.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """
        Args:
            db_path (str): Path to the SQLite database file; its directory is
                          created if missing
        """
        self.db_path = db_path
        data_dir = os.path.dirname(self.db_path)
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection with rows addressable by column name.

        The transaction is committed when the block exits normally and
        rolled back on error; the connection is always closed.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def execute_query(
        self,
        query: str,
        params: tuple = (),
        fetch_one: bool = False,
        fetch_all: bool = False,
    ) -> Any:
        """
        Run a query and return one row, all rows, or the last row ID.

        Returns:
            Any: The requested result, or None if the query failed
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(query, params)
                if fetch_one:
                    return cursor.fetchone()
                if fetch_all:
                    return cursor.fetchall()
                return cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"Database query error: {e}")
            return None

    def execute_insert(self, query: str, params: tuple) -> Optional[int]:
        """
        Run an INSERT and return the new row ID.

        Constraint violations (such as a duplicate link) are logged at
        WARNING and return None.
        """
        try:
            with self.get_connection() as conn:
                return conn.execute(query, params).lastrowid
        except sqlite3.IntegrityError as e:
            logger.warning(f"Insert rejected: {e}")
            return None
        except sqlite3.Error as e:
            logger.error(f"Database insert error: {e}")
            return None

    def execute_update_delete(self, query: str, params: tuple) -> bool:
        """
        Run an UPDATE or DELETE.

        Returns:
            bool: True if any row was affected
        """
        try:
            with self.get_connection() as conn:
                return conn.execute(query, params).rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Database update/delete error: {e}")
            return False

    def get_current_timestamp(self) -> str:
        return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)

    def normalize_timestamp(self, value: str | datetime | None) -> str:
        """
        Convert an ISO 8601 string or datetime to the stored UTC format.

        Naive values are taken to be UTC already. None means now.

        Raises:
            ValueError: If a string is not ISO 8601
        """
        if value is None:
            return self.get_current_timestamp()
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(TIMESTAMP_FORMAT)

    def format_timestamp_iso(self, timestamp_str: str | None) -> str | None:
        """
        Convert a stored timestamp to ISO 8601 with a UTC designator.

        "2025-12-11 11:08:40" -> "2025-12-11T11:08:40Z"
        """
        if not timestamp_str:
            return timestamp_str
        return timestamp_str.replace(" ", "T") + "Z"
