"""Rollback of migration sessions.

Every row an import creates is tagged with its `migration_session_id`.
Rollback deletes those rows in one transaction, referencing rows before the
rows they reference, and then marks the session rolled back. Preview runs
the same steps as counts only.
"""

from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from legacy_migration.client.exceptions import EtlErrorCode, EtlServiceError
from legacy_migration.migration.models import (
    AdditionalDetailField,
    MeasureSheetItem,
    MeasureSheetItemAdditionalDetailField,
    MeasureSheetItemOffice,
    MeasureSheetItemOption,
    MeasureSheetItemUpCharge,
    MigrationSession,
    Office,
    OptionPrice,
    PriceGuideCategory,
    PriceGuideImage,
    PriceGuideOption,
    UpCharge,
    UpChargeAdditionalDetailField,
    UpChargeDisabledOption,
    UpChargePrice,
)
from legacy_migration.migration.state import (
    ensure_can_roll_back,
    mark_rollback_failed,
    mark_rolled_back,
)
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RollbackStats:
    """Rows removed (or that would be removed) per table."""

    item_options: int = 0
    item_upcharges: int = 0
    item_offices: int = 0
    item_additional_details: int = 0
    upcharge_additional_details: int = 0
    upcharge_disabled_options: int = 0
    option_prices: int = 0
    upcharge_prices: int = 0
    items: int = 0
    options: int = 0
    upcharges: int = 0
    additional_details: int = 0
    categories: int = 0
    images: int = 0
    offices: int = 0

    @property
    def total(self) -> int:
        return sum(asdict(self).values())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Deletion order: links, then prices, then primary entities. Categories,
# images and offices follow in `_remove_session_rows`.
_LINK_TABLES: tuple[tuple[str, type[Any]], ...] = (
    ("item_options", MeasureSheetItemOption),
    ("item_upcharges", MeasureSheetItemUpCharge),
    ("item_offices", MeasureSheetItemOffice),
    ("item_additional_details", MeasureSheetItemAdditionalDetailField),
    ("upcharge_additional_details", UpChargeAdditionalDetailField),
    ("upcharge_disabled_options", UpChargeDisabledOption),
)

_PRICE_TABLES: tuple[tuple[str, type[Any]], ...] = (
    ("option_prices", OptionPrice),
    ("upcharge_prices", UpChargePrice),
)

_ENTITY_TABLES: tuple[tuple[str, type[Any]], ...] = (
    ("items", MeasureSheetItem),
    ("options", PriceGuideOption),
    ("upcharges", UpCharge),
    ("additional_details", AdditionalDetailField),
)


class RollbackEngine:
    """Deletes or counts everything a migration session created."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def rollback(self, session_id: str, company_id: str | None = None) -> RollbackStats:
        """Delete all rows of a session and mark it rolled back.

        Args:
            session_id: Migration session to roll back
            company_id: When given, the session must belong to this company

        Returns:
            RollbackStats: Rows deleted per table

        Raises:
            EtlServiceError: SESSION_NOT_FOUND, or SESSION_INVALID_STATE for a
                session already rolled back or failed
            Exception: Any deletion failure, after the session is marked
                rollback_failed
        """
        try:
            with self.session_factory.begin() as db:
                session = self._load_session(db, session_id, company_id)
                ensure_can_roll_back(session)
                logger.info("rollback_started", session_id=session_id, status=session.status)
                stats = self._remove_session_rows(db, session_id, dry_run=False)
        except EtlServiceError:
            raise
        except Exception as e:
            logger.error("rollback_failed", session_id=session_id, error=str(e))
            self._mark_failed(session_id, str(e))
            raise

        with self.session_factory.begin() as db:
            mark_rolled_back(self._load_session(db, session_id, company_id))

        logger.info("rollback_completed", session_id=session_id, deleted=stats.total)
        return stats

    def preview(self, session_id: str, company_id: str | None = None) -> RollbackStats:
        """Count what `rollback` would delete, without changing anything."""
        with self.session_factory() as db:
            self._load_session(db, session_id, company_id)
            stats = self._remove_session_rows(db, session_id, dry_run=True)
        logger.debug("rollback_previewed", session_id=session_id, rows=stats.total)
        return stats

    @staticmethod
    def _load_session(db: Session, session_id: str, company_id: str | None) -> MigrationSession:
        session = db.get(MigrationSession, session_id)
        if session is None or (company_id is not None and session.company_id != company_id):
            raise EtlServiceError(
                f"Migration session not found: {session_id}", EtlErrorCode.SESSION_NOT_FOUND
            )
        return session

    def _mark_failed(self, session_id: str, error: str) -> None:
        with self.session_factory.begin() as db:
            session = db.get(MigrationSession, session_id)
            if session is not None:
                mark_rollback_failed(session, error)

    def _remove_session_rows(self, db: Session, session_id: str, dry_run: bool) -> RollbackStats:
        """Delete (or count) the rows of a session in dependency-safe order."""
        stats = RollbackStats()

        for tables in (_LINK_TABLES, _PRICE_TABLES, _ENTITY_TABLES):
            for name, model in tables:
                removed = self._remove(db, model, session_id, dry_run)
                setattr(stats, name, removed)

        # Deeper categories reference shallower ones as parent
        depths = db.scalars(
            select(PriceGuideCategory.depth)
            .where(PriceGuideCategory.migration_session_id == session_id)
            .distinct()
            .order_by(PriceGuideCategory.depth.desc())
        ).all()
        for depth in depths:
            stats.categories += self._remove(
                db, PriceGuideCategory, session_id, dry_run, PriceGuideCategory.depth == depth
            )

        stats.images = self._remove(db, PriceGuideImage, session_id, dry_run)
        stats.offices = self._remove(db, Office, session_id, dry_run)
        return stats

    @staticmethod
    def _remove(
        db: Session, model: type[Any], session_id: str, dry_run: bool, *criteria: Any
    ) -> int:
        conditions = (model.migration_session_id == session_id, *criteria)
        if dry_run:
            return db.scalar(select(func.count()).select_from(model).where(*conditions)) or 0
        result = db.execute(
            delete(model).where(*conditions).execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
