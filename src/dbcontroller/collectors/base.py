"""
DB Controller - Collector Base

DatabaseCollector defines the read-only introspection contract shared by
every engine variant:

- collect_parameters() -> JSON text of configuration knobs
- collect_metrics()    -> JSON text of runtime metrics
- collect_version()    -> engine version string

Each call opens its own connection and closes it before returning, on
success and failure alike. Instances hold no connection state.
"""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import closing, contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..errors import CollectionError, DatabaseConnectionError
from ..models import DatabaseTarget, DatabaseType, parse_database_url

logger = logging.getLogger(__name__)


def stringify(value: Any) -> Optional[str]:
    """Render a column value the way collector documents store it."""
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def rows_to_dict(columns: Sequence[str], rows: Sequence[Sequence[Any]], key_column: str) -> Dict[str, Dict[str, Optional[str]]]:
    """
    Key a result set by one of its columns.

    Returns:
        {row[key_column]: {column: value, ...}, ...}
    """
    try:
        key_index = list(columns).index(key_column)
    except ValueError as e:
        raise CollectionError(f"Result set has no column '{key_column}'") from e

    keyed = {}
    for row in rows:
        keyed[stringify(row[key_index])] = {
            column: stringify(value) for column, value in zip(columns, row)
        }
    return keyed


def single_row_to_dict(columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> Dict[str, Optional[str]]:
    if not rows:
        return {}
    return {column: stringify(value) for column, value in zip(columns, rows[0])}


class DatabaseCollector(ABC):
    """
    Read-only introspection of one target database.

    Subclasses provide the driver connection and the engine-specific queries;
    this class owns connection scoping and error translation.
    """

    database_type: DatabaseType
    default_port: int

    def __init__(self, database_url: str, username: str, password: str, connect_timeout: int = 10):
        self.database_url = database_url
        self.username = username
        self.password = password
        self.connect_timeout = connect_timeout

    @property
    def target(self) -> DatabaseTarget:
        try:
            return parse_database_url(self.database_url, self.default_port)
        except ValueError as e:
            raise CollectionError(str(e)) from e

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _connect(self, target: DatabaseTarget):
        """Open a DB-API connection to the target."""

    def _prepare(self, conn):
        """Configure a freshly opened connection. Runs after close is guaranteed."""

    @property
    @abstractmethod
    def _driver_error(self) -> Tuple[type, ...]:
        """Exception classes raised by the driver."""

    @abstractmethod
    def _read_parameters(self, conn) -> Dict[str, Any]:
        """Return the knobs document as a dictionary."""

    @abstractmethod
    def _read_metrics(self, conn) -> Dict[str, Any]:
        """Return the metrics document as a dictionary."""

    @abstractmethod
    def _read_version(self, conn) -> str:
        """Return the engine version string."""

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def collect_parameters(self) -> str:
        return self._collect("parameters", self._read_parameters)

    def collect_metrics(self) -> str:
        return self._collect("metrics", self._read_metrics)

    def collect_version(self) -> str:
        version = self._collect_raw("version", self._read_version)
        if not version:
            raise CollectionError(f"{self.database_type.value} returned an empty version string")
        return version.strip()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _collect(self, what: str, reader) -> str:
        document = self._collect_raw(what, reader)
        try:
            return json.dumps(document)
        except (TypeError, ValueError) as e:
            raise CollectionError(f"Cannot serialize {what} document: {e}") from e

    def _collect_raw(self, what: str, reader):
        with self._connection() as conn:
            try:
                result = reader(conn)
            except self._driver_error as e:
                raise CollectionError(
                    f"{self.database_type.value} {what} query failed: {e}"
                ) from e
        logger.debug(f"Collected {what} from {self.database_type.value}")
        return result

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        target = self.target
        try:
            conn = self._connect(target)
        except self._driver_error + (OSError,) as e:
            raise DatabaseConnectionError(
                f"Cannot connect to {self.database_type.value} at {target.host}:{target.port}: {e}"
            ) from e

        with closing(conn):
            try:
                self._prepare(conn)
            except self._driver_error as e:
                raise DatabaseConnectionError(
                    f"Cannot set up {self.database_type.value} session at {target.host}:{target.port}: {e}"
                ) from e
            yield conn

    @staticmethod
    def _query(conn, sql: str) -> Tuple[List[str], List[Sequence[Any]]]:
        """
        Run a query and return (column names, rows).

        Column names are lower-cased so documents look alike across engines.
        """
        cursor = conn.cursor()
        try:
            cursor.execute(sql)
            columns = [str(d[0]).lower() for d in (cursor.description or [])]
            rows = list(cursor.fetchall())
        finally:
            cursor.close()
        return columns, rows

    @classmethod
    def _query_pairs(cls, conn, sql: str) -> Dict[str, Optional[str]]:
        """Run a two-column name/value query and return it as a dictionary."""
        columns, rows = cls._query(conn, sql)
        if rows and len(rows[0]) < 2:
            raise CollectionError(f"Expected name/value pairs from: {sql}")
        return {stringify(row[0]): stringify(row[1]) for row in rows}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.database_url!r}, user={self.username!r})"
