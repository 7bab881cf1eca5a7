"""
Shared fixtures for dbcontroller tests.

No test needs a live database or network: collectors are replaced by a
stub registered in a CollectorFactory, and uploads go to a mock.
"""

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from dbcontroller.collectors import CollectorFactory
from dbcontroller.models import DatabaseType
from dbcontroller.uploader import ResultUploader


VALID_CONFIG = {
    "database_type": "Postgres",
    "username": "ottertune",
    "password": "secret",
    "database_url": "jdbc:postgresql://localhost:5432/tpcc",
    "upload_code": "I5I10PXK3PK27FM86YYS",
    "upload_url": "http://127.0.0.1:8000/new_result/",
    "workload_name": "tpcc",
}

VALID_KNOBS = {
    "global": {"global": {"shared_buffers": "128MB", "work_mem": "4MB"}},
    "local": None,
}

VALID_METRICS = {
    "global": {"pg_stat_bgwriter": {"checkpoints_timed": "12", "buffers_alloc": "2048"}},
    "local": {"database": {"pg_stat_database": {"tpcc": {"xact_commit": "100"}}}},
}


class StubCollector:
    """
    Collector stand-in returning fixed documents.

    Class attributes control responses; an Exception instance is raised
    instead of returned. metric_responses, when set, is consumed one entry
    per collect_metrics() call across all instances.
    """

    parameters = json.dumps(VALID_KNOBS)
    metrics = json.dumps(VALID_METRICS)
    version = "9.6.3"
    metric_responses = None
    instances = []

    def __init__(self, database_url, username, password, connect_timeout=10):
        self.database_url = database_url
        self.username = username
        self.password = password
        self.connect_timeout = connect_timeout
        self.calls = []
        type(self).instances.append(self)

    @staticmethod
    def _respond(value):
        if isinstance(value, Exception):
            raise value
        return value

    def collect_parameters(self):
        self.calls.append("parameters")
        return self._respond(self.parameters)

    def collect_metrics(self):
        self.calls.append("metrics")
        if self.metric_responses:
            return self._respond(self.metric_responses.pop(0))
        return self._respond(self.metrics)

    def collect_version(self):
        self.calls.append("version")
        return self._respond(self.version)


@pytest.fixture
def valid_config_dict():
    return dict(VALID_CONFIG)


@pytest.fixture
def config_file(tmp_path, valid_config_dict):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(valid_config_dict), encoding="utf-8")
    return path


@pytest.fixture
def stub_collector_cls():
    """Fresh StubCollector subclass so class-level state never leaks between tests."""
    return type("StubCollector", (StubCollector,), {"instances": [], "metric_responses": None})


@pytest.fixture
def stub_factory(stub_collector_cls):
    return CollectorFactory(registry={DatabaseType.POSTGRES: stub_collector_cls})


@pytest.fixture
def mock_uploader():
    uploader = MagicMock(spec=ResultUploader)
    uploader.upload.return_value = "Result stored successfully!"
    return uploader


@pytest.fixture
def fake_sleep():
    return MagicMock(return_value=None)
