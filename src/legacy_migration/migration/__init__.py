"""
Migration module for Legacy Bridge.

This module provides the target schema, session state, batch importers,
rollback and the coordinator that ties them together.
"""

from legacy_migration.migration.coordinator import MigrationCoordinator, SourceCounts

# Database utilities
from legacy_migration.migration.database import (
    create_database_engine,
    create_session_factory,
    init_database,
    session_scope,
    validate_database_connection,
)

# Import and rollback
from legacy_migration.migration.importer import (
    BatchImportOptions,
    BatchImportResult,
    OfficeImporter,
    PriceGuideBatchImportResult,
    PriceGuideImporter,
    create_importer,
)

# Database models
from legacy_migration.migration.models import (
    Base,
    EntityType,
    MigrationSession,
    SessionStatus,
)
from legacy_migration.migration.rollback import RollbackEngine, RollbackStats

__all__ = [
    # Models
    "Base",
    "EntityType",
    "MigrationSession",
    "SessionStatus",
    # Database utilities
    "create_database_engine",
    "create_session_factory",
    "init_database",
    "session_scope",
    "validate_database_connection",
    # Import and rollback
    "BatchImportOptions",
    "BatchImportResult",
    "PriceGuideBatchImportResult",
    "OfficeImporter",
    "PriceGuideImporter",
    "create_importer",
    "RollbackEngine",
    "RollbackStats",
    # Coordination
    "MigrationCoordinator",
    "SourceCounts",
]
