"""
MySQL collector (PyMySQL).

Knobs come from SHOW GLOBAL VARIABLES; metrics from SHOW GLOBAL STATUS and
the InnoDB metrics table. MySQL exposes no per-object metrics here, so the
local section is null.
"""

from typing import Any, Dict, Tuple

import pymysql

from ..models import DatabaseType
from .base import DatabaseCollector, DatabaseTarget


class MySQLCollector(DatabaseCollector):
    database_type = DatabaseType.MYSQL
    default_port = 3306

    def _connect(self, target: DatabaseTarget):
        return pymysql.connect(
            host=target.host,
            port=target.port,
            user=self.username,
            password=self.password,
            database=target.database,
            connect_timeout=self.connect_timeout,
            autocommit=True,
        )

    @property
    def _driver_error(self) -> Tuple[type, ...]:
        return (pymysql.MySQLError,)

    def _read_parameters(self, conn) -> Dict[str, Any]:
        knobs = self._query_pairs(conn, "SHOW GLOBAL VARIABLES")
        return {"global": {"global": knobs}, "local": None}

    def _read_metrics(self, conn) -> Dict[str, Any]:
        status = self._query_pairs(conn, "SHOW GLOBAL STATUS")
        innodb = self._query_pairs(
            conn,
            "SELECT name, count FROM information_schema.innodb_metrics WHERE status = 'enabled'",
        )
        return {"global": {"global": status, "innodb_metrics": innodb}, "local": None}

    def _read_version(self, conn) -> str:
        _, rows = self._query(conn, "SELECT VERSION()")
        return str(rows[0][0]) if rows else ""
