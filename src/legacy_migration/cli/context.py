"""
CLI context manager for Legacy Bridge.

This module provides the context object that is passed to all CLI commands,
containing configuration, the legacy store client and the target database.
"""

from dataclasses import dataclass, field
from pathlib import Path

from pymongo import MongoClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from legacy_migration.client.source_client import (
    LegacySourceClient,
    connect_source,
    open_source_database,
)
from legacy_migration.config import MigrationConfig, load_config_from_yaml
from legacy_migration.migration.coordinator import MigrationCoordinator
from legacy_migration.migration.database import create_session_factory, init_database
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class MigrationContext:
    """
    Context object for CLI commands.

    Connections are opened on first use and closed by `cleanup`.

    Attributes:
        config_path: Path to configuration file
        log_level: Logging level
        log_file: Optional log file path
        config: Loaded migration configuration
        source_client: Client for the legacy document store
        session_factory: Session factory of the target database
        coordinator: Migration coordinator wired to both
    """

    config_path: Path | None = None
    log_level: str | None = None
    log_file: Path | None = None

    # Lazy-loaded attributes
    _config: MigrationConfig | None = field(default=None, init=False, repr=False)
    _mongo_client: MongoClient | None = field(default=None, init=False, repr=False)
    _source_client: LegacySourceClient | None = field(default=None, init=False, repr=False)
    _engine: Engine | None = field(default=None, init=False, repr=False)
    _session_factory: sessionmaker[Session] | None = field(default=None, init=False, repr=False)
    _coordinator: MigrationCoordinator | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> MigrationConfig:
        """Get or load migration configuration."""
        if self._config is None:
            if self.config_path is None:
                raise ValueError(
                    "Configuration file path not provided. "
                    "Use --config option or set LEGACY_BRIDGE_CONFIG environment variable."
                )

            logger.debug("loading_configuration", config_path=str(self.config_path))
            self._config = load_config_from_yaml(self.config_path)

        return self._config

    @property
    def source_client(self) -> LegacySourceClient:
        """Get or create the legacy store client."""
        if self._source_client is None:
            self._mongo_client = connect_source(self.config.source)
            database = open_source_database(self._mongo_client, self.config.source.database)
            self._source_client = LegacySourceClient(database)
            logger.debug("source_client_created", database=database.name)

        return self._source_client

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Get or create the target database session factory."""
        if self._session_factory is None:
            state = self.config.state
            self._engine = init_database(
                state.database_url,
                pool_size=state.db_pool_size,
                max_overflow=state.db_max_overflow,
                pool_timeout=state.db_pool_timeout,
                pool_recycle=state.db_pool_recycle,
            )
            self._session_factory = create_session_factory(self._engine)

        return self._session_factory

    @property
    def coordinator(self) -> MigrationCoordinator:
        if self._coordinator is None:
            self._coordinator = MigrationCoordinator(
                source=self.source_client,
                session_factory=self.session_factory,
                import_config=self.config.imports,
            )
        return self._coordinator

    def cleanup(self) -> None:
        """Close connections opened by this context."""
        if self._mongo_client is not None:
            logger.debug("closing_source_client")
            self._mongo_client.close()
            self._mongo_client = None
            self._source_client = None

        if self._engine is not None:
            logger.debug("disposing_database_engine")
            self._engine.dispose()
            self._engine = None
            self._session_factory = None

        self._coordinator = None

    def __enter__(self) -> "MigrationContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
