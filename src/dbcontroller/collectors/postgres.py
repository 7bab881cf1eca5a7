"""
Postgres collector (psycopg2).

Knobs come from SHOW ALL; metrics from the pg_stat* statistics views.
"""

from typing import Any, Dict, Tuple

import psycopg2

from ..models import DatabaseType
from .base import DatabaseCollector, DatabaseTarget, rows_to_dict, single_row_to_dict

# Single-row, cluster-wide views
GLOBAL_VIEWS = ("pg_stat_archiver", "pg_stat_bgwriter")

# Per-object views grouped by scope: {scope: [(view, key column), ...]}
LOCAL_VIEWS = {
    "database": [
        ("pg_stat_database", "datname"),
        ("pg_stat_database_conflicts", "datname"),
    ],
    "table": [
        ("pg_stat_user_tables", "relname"),
        ("pg_statio_user_tables", "relname"),
    ],
    "indexes": [
        ("pg_stat_user_indexes", "indexrelname"),
        ("pg_statio_user_indexes", "indexrelname"),
    ],
}


class PostgresCollector(DatabaseCollector):
    database_type = DatabaseType.POSTGRES
    default_port = 5432

    def _connect(self, target: DatabaseTarget):
        return psycopg2.connect(
            host=target.host,
            port=target.port,
            dbname=target.database or "postgres",
            user=self.username,
            password=self.password,
            connect_timeout=self.connect_timeout,
        )

    def _prepare(self, conn):
        # Introspection only; never hold a write transaction open
        conn.set_session(readonly=True, autocommit=True)

    @property
    def _driver_error(self) -> Tuple[type, ...]:
        return (psycopg2.Error,)

    def _read_parameters(self, conn) -> Dict[str, Any]:
        _, rows = self._query(conn, "SHOW ALL")
        knobs = {row[0]: (None if row[1] is None else str(row[1])) for row in rows}
        return {"global": {"global": knobs}, "local": None}

    def _read_metrics(self, conn) -> Dict[str, Any]:
        global_metrics = {}
        for view in GLOBAL_VIEWS:
            columns, rows = self._query(conn, f"SELECT * FROM {view}")
            global_metrics[view] = single_row_to_dict(columns, rows)

        local_metrics = {}
        for scope, views in LOCAL_VIEWS.items():
            local_metrics[scope] = {}
            for view, key_column in views:
                columns, rows = self._query(conn, f"SELECT * FROM {view}")
                local_metrics[scope][view] = rows_to_dict(columns, rows, key_column)

        return {"global": global_metrics, "local": local_metrics}

    def _read_version(self, conn) -> str:
        _, rows = self._query(conn, "SHOW server_version")
        return str(rows[0][0]) if rows else ""
