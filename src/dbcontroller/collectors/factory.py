"""
Collector registry keyed by database type.
"""

import logging
from typing import Dict, Optional, Type, Union

from ..config import RunConfiguration
from ..errors import UnsupportedDatabaseError
from ..models import DatabaseType
from .base import DatabaseCollector
from .mysql import MySQLCollector
from .postgres import PostgresCollector
from .saphana import SAPHanaCollector

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY: Dict[DatabaseType, Type[DatabaseCollector]] = {
    DatabaseType.POSTGRES: PostgresCollector,
    DatabaseType.MYSQL: MySQLCollector,
    DatabaseType.SAPHANA: SAPHanaCollector,
}


class CollectorFactory:
    """
    Build a fresh collector for a configured database type.

    Construction performs no I/O, so an unsupported type is rejected before
    anything touches the target database.
    """

    def __init__(
        self,
        registry: Optional[Dict[DatabaseType, Type[DatabaseCollector]]] = None,
        connect_timeout: int = 10,
    ):
        self._registry = dict(DEFAULT_REGISTRY if registry is None else registry)
        self.connect_timeout = connect_timeout

    def register(self, database_type: DatabaseType, collector_cls: Type[DatabaseCollector]):
        self._registry[database_type] = collector_cls

    def supported_types(self) -> list[DatabaseType]:
        return list(self._registry)

    def resolve(self, database_type: Union[DatabaseType, str]) -> Type[DatabaseCollector]:
        """
        Look up the collector class for a database type.

        Raises:
            UnsupportedDatabaseError: Type is unknown or not registered
        """
        if not isinstance(database_type, DatabaseType):
            database_type = DatabaseType.parse(database_type)
        try:
            return self._registry[database_type]
        except KeyError:
            raise UnsupportedDatabaseError(
                f"No collector registered for database type: {database_type.value}"
            ) from None

    def create(self, config: RunConfiguration) -> DatabaseCollector:
        """Return a new collector bound to the configuration's target and credentials."""
        collector_cls = self.resolve(config.database_type)
        collector = collector_cls(
            config.database_url,
            config.username,
            config.password,
            connect_timeout=self.connect_timeout,
        )
        logger.debug(f"Created {collector_cls.__name__} for {config.database_url}")
        return collector
