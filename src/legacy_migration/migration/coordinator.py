"""Migration coordinator.

Entry point used by the CLI and by callers embedding the engine: it creates
and reads migration sessions, dispatches batches to the importer of the
session's entity type and runs rollbacks. The legacy store client and the
target session factory are passed in by the caller.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from legacy_migration.client.exceptions import EtlErrorCode, EtlServiceError
from legacy_migration.client.source_client import LegacySourceClient
from legacy_migration.config import ImportConfig
from legacy_migration.migration.database import session_scope
from legacy_migration.migration.hierarchy import count_unique_category_paths, get_category_path
from legacy_migration.migration.importer import (
    BatchImporter,
    BatchImportOptions,
    BatchImportResult,
    FormulaWarning,
    PriceGuideBatchImportResult,
    create_importer,
)
from legacy_migration.migration.models import EntityType, MigrationSession, SessionStatus
from legacy_migration.migration.rollback import RollbackEngine, RollbackStats
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SourceCounts:
    """Record counts of one legacy company."""

    offices: int = 0
    categories: int = 0
    items: int = 0
    options: int = 0
    upcharges: int = 0

    @property
    def price_guide_total(self) -> int:
        return self.categories + self.items + self.options + self.upcharges


@dataclass
class ImportRunSummary:
    """Totals of a `run_import` loop."""

    session_id: str
    status: str = SessionStatus.PENDING.value
    batches: int = 0
    imported_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    formula_warnings: list[FormulaWarning] = field(default_factory=list)


class MigrationCoordinator:
    """Creates sessions, runs import batches and rolls sessions back."""

    def __init__(
        self,
        source: LegacySourceClient,
        session_factory: sessionmaker[Session],
        import_config: ImportConfig | None = None,
    ):
        """Initialize migration coordinator.

        Args:
            source: Reader of the legacy store
            session_factory: Session factory of the target database
            import_config: Import tuning (defaults apply when omitted)
        """
        self.source = source
        self.session_factory = session_factory
        self.import_config = import_config or ImportConfig()
        self.rollback_engine = RollbackEngine(session_factory)
        self._importers: dict[EntityType, BatchImporter] = {}

    def initialize_source_company(self, email: str) -> str:
        """Resolve the legacy company of a user by email.

        Raises:
            EtlServiceError: SOURCE_COMPANY_NOT_FOUND if no user matches
        """
        source_company_id = self.source.lookup_company_id_by_email(email)
        if not source_company_id:
            raise EtlServiceError(
                f"No legacy company found for {email}", EtlErrorCode.SOURCE_COMPANY_NOT_FOUND
            )
        logger.info("source_company_resolved", source_company_id=source_company_id)
        return source_company_id

    def get_source_counts(self, source_company_id: str) -> SourceCounts:
        """Count the records a session of each entity type would import."""
        return SourceCounts(
            offices=self.source.count_offices(source_company_id),
            categories=self._count_categories(source_company_id),
            items=self.source.count_items(source_company_id),
            options=self.source.count_options(source_company_id),
            upcharges=self.source.count_upcharges(source_company_id),
        )

    def _count_categories(self, source_company_id: str) -> int:
        """Nodes of the category tree: item paths plus declared roots no item uses."""
        items = list(
            self.source.iter_all_items(
                source_company_id, page_size=self.import_config.category_scan_page_size
            )
        )
        used_roots = {path[0] for path in map(get_category_path, items) if path}
        unused_configs = sum(
            1
            for config in self.source.query_categories(source_company_id)
            if config.name not in used_roots
        )
        return count_unique_category_paths(items) + unused_configs

    def create_session(
        self,
        company_id: str,
        source_company_id: str,
        entity_type: EntityType | str,
        created_by: str | None = None,
    ) -> MigrationSession:
        """Create a pending session with a snapshot of the source record count.

        Args:
            company_id: Target company
            source_company_id: Legacy company to import from
            entity_type: What the session imports
            created_by: User starting the session

        Returns:
            MigrationSession: The persisted session

        Raises:
            EtlServiceError: INVALID_MAPPING for an unknown entity type or a
                missing company
            StateError: If the session cannot be written
        """
        if not company_id or not source_company_id:
            raise EtlServiceError(
                "A migration session needs a target company and a legacy company",
                EtlErrorCode.INVALID_MAPPING,
            )
        try:
            entity_type = EntityType(entity_type)
        except ValueError as e:
            raise EtlServiceError(
                f"Unsupported entity type: {entity_type}", EtlErrorCode.INVALID_MAPPING
            ) from e

        if entity_type == EntityType.OFFICE:
            total = self.source.count_offices(source_company_id)
        else:
            total = self.get_source_counts(source_company_id).price_guide_total

        with session_scope(self.session_factory) as db:
            session = MigrationSession(
                company_id=company_id,
                created_by=created_by,
                source_company_id=source_company_id,
                entity_type=entity_type.value,
                status=SessionStatus.PENDING.value,
                total_count=total,
                imported_count=0,
                skipped_count=0,
                error_count=0,
                errors=[],
            )
            db.add(session)
            db.flush()
            db.refresh(session)

        logger.info(
            "migration_session_created",
            session_id=session.id,
            entity_type=entity_type.value,
            total=total,
        )
        return session

    def get_session(self, session_id: str, company_id: str) -> MigrationSession:
        """Return a session of the company.

        Raises:
            EtlServiceError: SESSION_NOT_FOUND
        """
        with session_scope(self.session_factory) as db:
            session = db.scalar(
                select(MigrationSession).where(
                    MigrationSession.id == session_id, MigrationSession.company_id == company_id
                )
            )
        if session is None:
            raise EtlServiceError(
                f"Migration session not found: {session_id}", EtlErrorCode.SESSION_NOT_FOUND
            )
        return session

    def list_sessions(self, company_id: str) -> list[MigrationSession]:
        with session_scope(self.session_factory) as db:
            return list(
                db.scalars(
                    select(MigrationSession)
                    .where(MigrationSession.company_id == company_id)
                    .order_by(MigrationSession.created_at.desc())
                )
            )

    def _importer_for(self, entity_type: str) -> BatchImporter:
        kind = EntityType(entity_type)
        if kind not in self._importers:
            self._importers[kind] = create_importer(
                kind, self.source, self.session_factory, self.import_config
            )
        return self._importers[kind]

    def import_batch(self, options: BatchImportOptions) -> BatchImportResult:
        """Import one batch into the session named by options."""
        session = self.get_session(options.session_id, options.company_id)
        return self._importer_for(session.entity_type).import_batch(options)

    def run_import(
        self,
        session_id: str,
        company_id: str,
        batch_size: int | None = None,
        on_batch: Callable[[BatchImportResult, MigrationSession], None] | None = None,
    ) -> ImportRunSummary:
        """Import batches until the source reports no more pages.

        Args:
            session_id: Session to import into
            company_id: Target company
            batch_size: Records per batch (defaults to imports.batch_size)
            on_batch: Called after every batch with its result and the session

        Returns:
            ImportRunSummary: Totals over all batches of this run
        """
        limit = batch_size or self.import_config.batch_size
        summary = ImportRunSummary(session_id=session_id)
        skip = 0

        while True:
            result = self.import_batch(
                BatchImportOptions(
                    session_id=session_id, company_id=company_id, skip=skip, limit=limit
                )
            )
            summary.batches += 1
            summary.imported_count += result.imported_count
            summary.skipped_count += result.skipped_count
            summary.error_count += result.error_count
            if isinstance(result, PriceGuideBatchImportResult):
                summary.formula_warnings.extend(result.formula_warnings)

            session = self.get_session(session_id, company_id)
            summary.status = session.status
            if on_batch is not None:
                on_batch(result, session)

            if not result.has_more:
                break
            skip += limit

        logger.info(
            "import_run_finished",
            session_id=session_id,
            batches=summary.batches,
            imported=summary.imported_count,
            skipped=summary.skipped_count,
            errors=summary.error_count,
            status=summary.status,
        )
        return summary

    def rollback(self, session_id: str, company_id: str) -> RollbackStats:
        return self.rollback_engine.rollback(session_id, company_id)

    def preview_rollback(self, session_id: str, company_id: str) -> RollbackStats:
        return self.rollback_engine.preview(session_id, company_id)
