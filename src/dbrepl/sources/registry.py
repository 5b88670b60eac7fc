"""Database backend registry for plugin management."""

import logging
from typing import Dict, Type

from dbrepl.config.schema import ConnectionConfig, SourceType
from dbrepl.sources.base import DatabaseConnection

logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Registry for database backends.

    Uses decorator pattern for plugin registration:

    @SourceRegistry.register(SourceType.SQLSERVER)
    class SqlServerConnection(DatabaseConnection):
        ...
    """

    _sources: Dict[SourceType, Type[DatabaseConnection]] = {}

    @classmethod
    def register(cls, source_type: SourceType):
        """
        Decorator to register a connection class.

        Args:
            source_type: Source type enum value

        Returns:
            Decorator function
        """

        def decorator(connection_class: Type[DatabaseConnection]):
            if source_type in cls._sources:
                logger.warning(
                    f"Backend for {source_type.value} is being overridden"
                )
            cls._sources[source_type] = connection_class
            logger.debug(
                f"Registered backend: {source_type.value} -> {connection_class.__name__}"
            )
            return connection_class

        return decorator

    @classmethod
    def get_connection_class(cls, source_type: SourceType) -> Type[DatabaseConnection]:
        """
        Get connection class by type.

        Args:
            source_type: Source type enum

        Returns:
            DatabaseConnection class

        Raises:
            ValueError: If source type not registered
        """
        if source_type not in cls._sources:
            available = ", ".join([st.value for st in cls._sources.keys()])
            raise ValueError(
                f"No backend registered for type: {source_type.value}. "
                f"Available backends: {available or 'none'}"
            )
        return cls._sources[source_type]

    @classmethod
    def create_connection(cls, config: ConnectionConfig) -> DatabaseConnection:
        """
        Create an unconnected connection from configuration.

        Args:
            config: Connection configuration

        Returns:
            DatabaseConnection instance
        """
        connection_class = cls.get_connection_class(config.type)
        return connection_class(config)

    @classmethod
    def is_registered(cls, source_type: SourceType) -> bool:
        """Check if a source type is registered."""
        return source_type in cls._sources
