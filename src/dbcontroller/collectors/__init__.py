"""Database collectors, one variant per supported engine."""

from .base import DatabaseCollector, DatabaseTarget, parse_database_url
from .factory import CollectorFactory, DEFAULT_REGISTRY
from .mysql import MySQLCollector
from .postgres import PostgresCollector
from .saphana import SAPHanaCollector

__all__ = [
    "DatabaseCollector",
    "DatabaseTarget",
    "parse_database_url",
    "CollectorFactory",
    "DEFAULT_REGISTRY",
    "PostgresCollector",
    "MySQLCollector",
    "SAPHanaCollector",
]
