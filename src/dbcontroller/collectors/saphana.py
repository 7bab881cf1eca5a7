"""
SAP HANA collector (hdbcli).

Knobs come from the SYSTEM layer of M_INIFILE_CONTENTS; metrics from the
system overview plus per-host and per-service monitoring views.
"""

from typing import Any, Dict, Tuple

from hdbcli import dbapi

from ..models import DatabaseType
from .base import DatabaseCollector, DatabaseTarget, rows_to_dict, stringify

PARAMETERS_QUERY = (
    "SELECT FILE_NAME, SECTION, KEY, VALUE FROM SYS.M_INIFILE_CONTENTS "
    "WHERE LAYER_NAME = 'SYSTEM'"
)

OVERVIEW_QUERY = "SELECT SECTION, NAME, VALUE FROM SYS.M_SYSTEM_OVERVIEW"

HOST_QUERY = "SELECT * FROM SYS.M_HOST_RESOURCE_UTILIZATION"

SERVICE_QUERY = (
    "SELECT HOST || ':' || TO_VARCHAR(PORT) AS SERVICE_KEY, * FROM SYS.M_SERVICE_STATISTICS"
)


class SAPHanaCollector(DatabaseCollector):
    database_type = DatabaseType.SAPHANA
    default_port = 30015

    def _connect(self, target: DatabaseTarget):
        kwargs = {}
        if target.database:
            kwargs["databaseName"] = target.database
        return dbapi.connect(
            address=target.host,
            port=target.port,
            user=self.username,
            password=self.password,
            connectTimeout=self.connect_timeout * 1000,
            **kwargs,
        )

    @property
    def _driver_error(self) -> Tuple[type, ...]:
        return (dbapi.Error,)

    def _read_parameters(self, conn) -> Dict[str, Any]:
        _, rows = self._query(conn, PARAMETERS_QUERY)
        knobs = {
            f"{file_name}.{section}.{key}": stringify(value)
            for file_name, section, key, value in rows
        }
        return {"global": {"global": knobs}, "local": None}

    def _read_metrics(self, conn) -> Dict[str, Any]:
        _, rows = self._query(conn, OVERVIEW_QUERY)
        overview = {f"{section}.{name}": stringify(value) for section, name, value in rows}

        host_columns, host_rows = self._query(conn, HOST_QUERY)
        service_columns, service_rows = self._query(conn, SERVICE_QUERY)

        return {
            "global": {"m_system_overview": overview},
            "local": {
                "host": {
                    "m_host_resource_utilization": rows_to_dict(host_columns, host_rows, "host"),
                },
                "service": {
                    "m_service_statistics": rows_to_dict(service_columns, service_rows, "service_key"),
                },
            },
        }

    def _read_version(self, conn) -> str:
        _, rows = self._query(conn, "SELECT VERSION FROM SYS.M_DATABASE")
        return str(rows[0][0]) if rows else ""
