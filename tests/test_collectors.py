"""
Tests for dbcontroller.collectors package

Tests cover:
- Database URL parsing (JDBC and plain forms)
- CollectorFactory dispatch and rejection of unsupported types
- Postgres, MySQL and SAP HANA document shapes against the output schema
- Connection scoping: one connection per call, closed on every path
- Driver error translation (connection vs. collection failures)

Drivers are patched at their connect() functions; no live database is used.
"""

import json
import sys
from pathlib import Path
from unittest.mock import patch

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import psycopg2
import pymysql
import pytest
from hdbcli import dbapi

from dbcontroller.collectors import (
    CollectorFactory,
    MySQLCollector,
    PostgresCollector,
    SAPHanaCollector,
    parse_database_url,
)
from dbcontroller.collectors import postgres as postgres_module
from dbcontroller.config import ConfigLoader
from dbcontroller.errors import CollectionError, DatabaseConnectionError, UnsupportedDatabaseError
from dbcontroller.models import DatabaseType
from dbcontroller.schema import JSONSchemaType, is_valid_json


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self.description = None
        self._rows = []

    def execute(self, sql):
        self.connection.queries.append(sql)
        if self.connection.error is not None:
            raise self.connection.error
        columns, rows = self.connection.results[sql]
        self.description = [(column, None, None, None, None, None, None) for column in columns]
        self._rows = rows

    def fetchall(self):
        return self._rows

    def close(self):
        pass


class FakeConnection:
    """DB-API connection answering from a {sql: (columns, rows)} table."""

    def __init__(self, results, error=None, session_error=None):
        self.results = results
        self.error = error
        self.session_error = session_error
        self.queries = []
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def set_session(self, **kwargs):
        if self.session_error is not None:
            raise self.session_error

    def close(self):
        self.closed = True


POSTGRES_RESULTS = {
    "SHOW ALL": (
        ["name", "setting", "description"],
        [("shared_buffers", "128MB", "Sets buffers."), ("work_mem", "4MB", "Sets memory.")],
    ),
    "SHOW server_version": (["server_version"], [("9.6.3",)]),
    "SELECT * FROM pg_stat_archiver": (
        ["archived_count", "last_archived_wal"], [(0, None)],
    ),
    "SELECT * FROM pg_stat_bgwriter": (
        ["checkpoints_timed", "buffers_alloc"], [(12, 2048)],
    ),
    "SELECT * FROM pg_stat_database": (
        ["datid", "datname", "xact_commit"], [(1, "tpcc", 100), (2, "postgres", 5)],
    ),
    "SELECT * FROM pg_stat_database_conflicts": (
        ["datid", "datname", "confl_lock"], [(1, "tpcc", 0)],
    ),
    "SELECT * FROM pg_stat_user_tables": (
        ["relid", "relname", "seq_scan"], [(10, "orders", 3)],
    ),
    "SELECT * FROM pg_statio_user_tables": (
        ["relid", "relname", "heap_blks_read"], [(10, "orders", 7)],
    ),
    "SELECT * FROM pg_stat_user_indexes": (
        ["indexrelid", "indexrelname", "idx_scan"], [(20, "orders_pkey", 9)],
    ),
    "SELECT * FROM pg_statio_user_indexes": (
        ["indexrelid", "indexrelname", "idx_blks_hit"], [(20, "orders_pkey", 11)],
    ),
}

MYSQL_RESULTS = {
    "SHOW GLOBAL VARIABLES": (
        ["Variable_name", "Value"], [("innodb_buffer_pool_size", "134217728"), ("max_connections", "151")],
    ),
    "SHOW GLOBAL STATUS": (
        ["Variable_name", "Value"], [("Questions", "42"), ("Uptime", "3600")],
    ),
    "SELECT name, count FROM information_schema.innodb_metrics WHERE status = 'enabled'": (
        ["NAME", "COUNT"], [("lock_deadlocks", 0), ("buffer_pool_reads", 120)],
    ),
    "SELECT VERSION()": (["VERSION()"], [("5.7.20",)]),
}


def hana_results():
    from dbcontroller.collectors import saphana
    return {
        saphana.PARAMETERS_QUERY: (
            ["FILE_NAME", "SECTION", "KEY", "VALUE"],
            [("global.ini", "memorymanager", "global_allocation_limit", "0")],
        ),
        saphana.OVERVIEW_QUERY: (
            ["SECTION", "NAME", "VALUE"],
            [("Memory", "Used Memory", "12.5 GB"), ("CPU", "CPU", "Available 16")],
        ),
        saphana.HOST_QUERY: (
            ["HOST", "FREE_PHYSICAL_MEMORY"], [("hana01", 1024)],
        ),
        saphana.SERVICE_QUERY: (
            ["SERVICE_KEY", "HOST", "PORT", "SERVICE_NAME"], [("hana01:30003", "hana01", 30003, "indexserver")],
        ),
        "SELECT VERSION FROM SYS.M_DATABASE": (["VERSION"], [("2.00.030.00.1522209842",)]),
    }


class TestParseDatabaseUrl:
    """Test database URL parsing."""

    def test_jdbc_postgres(self):
        target = parse_database_url("jdbc:postgresql://db.example.com:5433/tpcc", 5432)

        assert target.host == "db.example.com"
        assert target.port == 5433
        assert target.database == "tpcc"

    def test_plain_url_default_port(self):
        target = parse_database_url("mysql://localhost/sbtest", 3306)

        assert target.port == 3306
        assert target.database == "sbtest"

    def test_jdbc_sap_without_database(self):
        target = parse_database_url("jdbc:sap://hana01:30015/", 30015)

        assert target.host == "hana01"
        assert target.database is None

    def test_missing_host(self):
        with pytest.raises(ValueError):
            parse_database_url("not a url", 5432)

    def test_invalid_port(self):
        with pytest.raises(ValueError):
            parse_database_url("jdbc:postgresql://localhost:notaport/tpcc", 5432)


class TestCollectorFactory:
    """Test registry dispatch."""

    @pytest.mark.parametrize("name,expected_cls", [
        ("Postgres", PostgresCollector),
        ("MySQL", MySQLCollector),
        ("SAPHana", SAPHanaCollector),
    ])
    def test_variant_matches_configuration(self, tmp_path, valid_config_dict, name, expected_cls):
        """Test that the collector variant follows the configured type."""
        valid_config_dict["database_type"] = name
        path = tmp_path / "config.json"
        path.write_text(json.dumps(valid_config_dict), encoding="utf-8")
        config = ConfigLoader(path).load()

        collector = CollectorFactory().create(config)

        assert type(collector) is expected_cls
        assert collector.database_type is config.database_type
        assert collector.database_url == config.database_url
        assert collector.username == config.username

    def test_each_call_builds_a_new_instance(self, config_file):
        config = ConfigLoader(config_file).load()
        factory = CollectorFactory()

        assert factory.create(config) is not factory.create(config)

    def test_create_does_not_connect(self, config_file):
        """Test that construction performs no I/O."""
        config = ConfigLoader(config_file).load()

        with patch.object(postgres_module.psycopg2, "connect") as mock_connect:
            CollectorFactory().create(config)

        mock_connect.assert_not_called()

    def test_unregistered_type(self, config_file):
        """Test that a type outside the registry is rejected."""
        config = ConfigLoader(config_file).load()
        factory = CollectorFactory(registry={DatabaseType.MYSQL: MySQLCollector})

        with pytest.raises(UnsupportedDatabaseError):
            factory.create(config)

    def test_unknown_name(self):
        with pytest.raises(UnsupportedDatabaseError):
            CollectorFactory().resolve("Oracle")

    def test_connect_timeout_forwarded(self, config_file):
        config = ConfigLoader(config_file).load()

        collector = CollectorFactory(connect_timeout=3).create(config)

        assert collector.connect_timeout == 3


class TestPostgresCollector:
    """Test the Postgres variant."""

    def _collector(self):
        return PostgresCollector("jdbc:postgresql://localhost:5432/tpcc", "ottertune", "secret")

    def test_collect_parameters(self):
        conn = FakeConnection(POSTGRES_RESULTS)
        with patch.object(postgres_module.psycopg2, "connect", return_value=conn) as mock_connect:
            document = self._collector().collect_parameters()

        knobs = json.loads(document)
        assert knobs["global"]["global"] == {"shared_buffers": "128MB", "work_mem": "4MB"}
        assert knobs["local"] is None
        assert is_valid_json(JSONSchemaType.OUTPUT, document)
        assert conn.closed
        assert mock_connect.call_args.kwargs["dbname"] == "tpcc"
        assert mock_connect.call_args.kwargs["port"] == 5432

    def test_collect_metrics(self):
        conn = FakeConnection(POSTGRES_RESULTS)
        with patch.object(postgres_module.psycopg2, "connect", return_value=conn):
            document = self._collector().collect_metrics()

        metrics = json.loads(document)
        assert metrics["global"]["pg_stat_bgwriter"] == {"checkpoints_timed": "12", "buffers_alloc": "2048"}
        assert metrics["global"]["pg_stat_archiver"]["last_archived_wal"] is None
        assert metrics["local"]["database"]["pg_stat_database"]["tpcc"]["xact_commit"] == "100"
        assert metrics["local"]["table"]["pg_statio_user_tables"]["orders"]["heap_blks_read"] == "7"
        assert metrics["local"]["indexes"]["pg_stat_user_indexes"]["orders_pkey"]["idx_scan"] == "9"
        assert is_valid_json(JSONSchemaType.OUTPUT, document)
        assert conn.closed

    def test_collect_version(self):
        conn = FakeConnection(POSTGRES_RESULTS)
        with patch.object(postgres_module.psycopg2, "connect", return_value=conn):
            assert self._collector().collect_version() == "9.6.3"

    def test_each_call_uses_its_own_connection(self):
        """Test that no connection is shared between calls."""
        connections = [FakeConnection(POSTGRES_RESULTS), FakeConnection(POSTGRES_RESULTS)]
        collector = self._collector()

        with patch.object(postgres_module.psycopg2, "connect", side_effect=connections):
            collector.collect_version()
            collector.collect_parameters()

        assert all(conn.closed for conn in connections)
        assert connections[0].queries == ["SHOW server_version"]
        assert connections[1].queries == ["SHOW ALL"]

    def test_unreachable_target(self):
        with patch.object(
            postgres_module.psycopg2, "connect",
            side_effect=psycopg2.OperationalError("could not connect to server"),
        ):
            with pytest.raises(DatabaseConnectionError) as exc_info:
                self._collector().collect_metrics()

        assert isinstance(exc_info.value, ConnectionError)
        assert "localhost:5432" in str(exc_info.value)

    def test_query_failure_closes_connection(self):
        """Test that a failing query still releases the connection."""
        conn = FakeConnection(POSTGRES_RESULTS, error=psycopg2.ProgrammingError("permission denied"))
        with patch.object(postgres_module.psycopg2, "connect", return_value=conn):
            with pytest.raises(CollectionError):
                self._collector().collect_metrics()

        assert conn.closed

    def test_session_setup_failure_closes_connection(self):
        """Test that a connection is released when session setup fails."""
        conn = FakeConnection(
            POSTGRES_RESULTS, session_error=psycopg2.OperationalError("server closed the connection")
        )
        with patch.object(postgres_module.psycopg2, "connect", return_value=conn):
            with pytest.raises(DatabaseConnectionError):
                self._collector().collect_version()

        assert conn.closed
        assert conn.queries == []

    def test_malformed_url_is_collection_error(self):
        collector = PostgresCollector("jdbc:postgresql:///tpcc", "ottertune", "secret")

        with patch.object(postgres_module.psycopg2, "connect") as mock_connect:
            with pytest.raises(CollectionError):
                collector.collect_parameters()

        mock_connect.assert_not_called()

    def test_empty_version(self):
        results = dict(POSTGRES_RESULTS)
        results["SHOW server_version"] = (["server_version"], [])
        conn = FakeConnection(results)
        with patch.object(postgres_module.psycopg2, "connect", return_value=conn):
            with pytest.raises(CollectionError):
                self._collector().collect_version()


class TestMySQLCollector:
    """Test the MySQL variant."""

    def _collector(self):
        return MySQLCollector("jdbc:mysql://localhost:3306/tpcc", "root", "secret")

    def test_collect_parameters(self):
        conn = FakeConnection(MYSQL_RESULTS)
        with patch("dbcontroller.collectors.mysql.pymysql.connect", return_value=conn) as mock_connect:
            document = self._collector().collect_parameters()

        knobs = json.loads(document)
        assert knobs["global"]["global"]["max_connections"] == "151"
        assert is_valid_json(JSONSchemaType.OUTPUT, document)
        assert mock_connect.call_args.kwargs["database"] == "tpcc"
        assert conn.closed

    def test_collect_metrics(self):
        conn = FakeConnection(MYSQL_RESULTS)
        with patch("dbcontroller.collectors.mysql.pymysql.connect", return_value=conn):
            document = self._collector().collect_metrics()

        metrics = json.loads(document)
        assert metrics["global"]["global"]["Questions"] == "42"
        assert metrics["global"]["innodb_metrics"]["buffer_pool_reads"] == "120"
        assert metrics["local"] is None
        assert is_valid_json(JSONSchemaType.OUTPUT, document)

    def test_collect_version(self):
        conn = FakeConnection(MYSQL_RESULTS)
        with patch("dbcontroller.collectors.mysql.pymysql.connect", return_value=conn):
            assert self._collector().collect_version() == "5.7.20"

    def test_unreachable_target(self):
        with patch(
            "dbcontroller.collectors.mysql.pymysql.connect",
            side_effect=pymysql.err.OperationalError(2003, "Can't connect to MySQL server"),
        ):
            with pytest.raises(DatabaseConnectionError):
                self._collector().collect_parameters()

    def test_query_failure(self):
        conn = FakeConnection(MYSQL_RESULTS, error=pymysql.err.ProgrammingError(1064, "syntax error"))
        with patch("dbcontroller.collectors.mysql.pymysql.connect", return_value=conn):
            with pytest.raises(CollectionError):
                self._collector().collect_metrics()

        assert conn.closed


class TestSAPHanaCollector:
    """Test the SAP HANA variant."""

    def _collector(self):
        return SAPHanaCollector("jdbc:sap://hana01:30015/", "SYSTEM", "secret")

    def test_collect_parameters(self):
        conn = FakeConnection(hana_results())
        with patch("dbcontroller.collectors.saphana.dbapi.connect", return_value=conn) as mock_connect:
            document = self._collector().collect_parameters()

        knobs = json.loads(document)
        assert knobs["global"]["global"]["global.ini.memorymanager.global_allocation_limit"] == "0"
        assert is_valid_json(JSONSchemaType.OUTPUT, document)
        assert mock_connect.call_args.kwargs["address"] == "hana01"
        assert mock_connect.call_args.kwargs["port"] == 30015
        assert conn.closed

    def test_collect_metrics(self):
        conn = FakeConnection(hana_results())
        with patch("dbcontroller.collectors.saphana.dbapi.connect", return_value=conn):
            document = self._collector().collect_metrics()

        metrics = json.loads(document)
        assert metrics["global"]["m_system_overview"]["Memory.Used Memory"] == "12.5 GB"
        assert metrics["local"]["host"]["m_host_resource_utilization"]["hana01"]["free_physical_memory"] == "1024"
        assert "hana01:30003" in metrics["local"]["service"]["m_service_statistics"]
        assert is_valid_json(JSONSchemaType.OUTPUT, document)

    def test_collect_version(self):
        conn = FakeConnection(hana_results())
        with patch("dbcontroller.collectors.saphana.dbapi.connect", return_value=conn):
            assert self._collector().collect_version() == "2.00.030.00.1522209842"

    def test_unreachable_target(self):
        with patch(
            "dbcontroller.collectors.saphana.dbapi.connect",
            side_effect=OSError("connection refused"),
        ):
            with pytest.raises(DatabaseConnectionError):
                self._collector().collect_version()

    def test_query_failure(self):
        """Test that a failing query still releases the connection."""
        conn = FakeConnection(hana_results(), error=dbapi.Error("insufficient privilege"))
        with patch("dbcontroller.collectors.saphana.dbapi.connect", return_value=conn):
            with pytest.raises(CollectionError):
                self._collector().collect_metrics()

        assert conn.closed
