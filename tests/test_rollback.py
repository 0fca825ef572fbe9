"""
Tests for session rollback and rollback preview.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from legacy_migration.client.exceptions import EtlErrorCode, EtlServiceError
from legacy_migration.client.records import (
    LegacyAdditionalDetailObject,
    LegacyCategoryConfig,
    LegacyFileReference,
    LegacyItemPrice,
    RawSourceItem,
    RawSourceOffice,
    RawSourcePriceGuideItem,
)
from legacy_migration.config import ImportConfig
from legacy_migration.migration.coordinator import MigrationCoordinator
from legacy_migration.migration.models import (
    MeasureSheetItem,
    MigrationSession,
    Office,
    PriceGuideCategory,
    PriceObjectType,
    SessionStatus,
)
from legacy_migration.migration.rollback import RollbackEngine, RollbackStats


@pytest.fixture
def imported_price_guide(source, session_factory, company_id, source_company_id):
    """A completed price guide session with images, prices and links."""
    with session_factory.begin() as db:
        db.add(Office(company_id=company_id, name="Main", source_id="o1"))
        db.add(PriceObjectType(company_id=company_id, name="List"))

    source.categories = [LegacyCategoryConfig(name="Roofing", order=1)]
    source.options = [
        RawSourcePriceGuideItem(
            object_id="op1", name="30 Year", item_prices=[LegacyItemPrice("o1", 100)]
        )
    ]
    source.upcharges = [RawSourcePriceGuideItem(object_id="u1", is_accessory=True, name="Tear Off")]
    source.items = [
        RawSourceItem(
            object_id="i1",
            category="Roofing",
            sub_category="Shingles",
            sub_sub_categories="Premium",
            option_ids=["op1"],
            upcharge_ids=["u1"],
            office_ids=["o1"],
            image=LegacyFileReference(name="roof.png"),
            additional_details=[LegacyAdditionalDetailObject(object_id="d1", title="Color")],
        )
    ]

    coordinator = MigrationCoordinator(
        source, session_factory, import_config=ImportConfig(include_images=True)
    )
    session = coordinator.create_session(company_id, source_company_id, "price_guide")
    coordinator.run_import(session.id, company_id, batch_size=10)
    return session


def load_session(session_factory, session_id) -> MigrationSession:
    with session_factory() as db:
        return db.get(MigrationSession, session_id)


# =============================================================================
# Preview
# =============================================================================


class TestPreview:
    def test_counts_every_table(self, session_factory, imported_price_guide, company_id):
        stats = RollbackEngine(session_factory).preview(imported_price_guide.id, company_id)

        assert stats.categories == 3
        assert stats.items == 1
        assert stats.options == 1
        assert stats.upcharges == 1
        assert stats.additional_details == 1
        assert stats.images == 1
        assert stats.option_prices == 1
        assert stats.item_options == 1
        assert stats.item_upcharges == 1
        assert stats.item_offices == 1
        assert stats.item_additional_details == 1
        assert stats.offices == 0
        assert stats.total == 13

    def test_preview_changes_nothing(self, session_factory, imported_price_guide, company_id):
        engine = RollbackEngine(session_factory)

        assert engine.preview(imported_price_guide.id, company_id) == engine.preview(
            imported_price_guide.id, company_id
        )
        assert load_session(session_factory, imported_price_guide.id).status == "completed"

    def test_preview_unknown_session(self, session_factory, company_id):
        with pytest.raises(EtlServiceError) as exc_info:
            RollbackEngine(session_factory).preview("missing", company_id)
        assert exc_info.value.code == EtlErrorCode.SESSION_NOT_FOUND


# =============================================================================
# Rollback
# =============================================================================


class TestRollback:
    def test_rollback_matches_preview(self, session_factory, imported_price_guide, company_id):
        engine = RollbackEngine(session_factory)
        preview = engine.preview(imported_price_guide.id, company_id)

        deleted = engine.rollback(imported_price_guide.id, company_id)

        assert deleted == preview
        assert engine.preview(imported_price_guide.id, company_id) == RollbackStats()

    def test_session_is_marked_rolled_back(
        self, session_factory, imported_price_guide, company_id
    ):
        RollbackEngine(session_factory).rollback(imported_price_guide.id, company_id)

        session = load_session(session_factory, imported_price_guide.id)
        assert session.status == SessionStatus.ROLLED_BACK.value
        assert session.completed_at is not None

    def test_native_rows_survive(self, session_factory, imported_price_guide, company_id):
        RollbackEngine(session_factory).rollback(imported_price_guide.id, company_id)

        with session_factory() as db:
            assert db.scalar(select(func.count()).select_from(PriceGuideCategory)) == 0
            assert db.scalar(select(Office.source_id)) == "o1"

    def test_second_rollback_is_rejected(
        self, session_factory, imported_price_guide, company_id
    ):
        engine = RollbackEngine(session_factory)
        engine.rollback(imported_price_guide.id, company_id)

        with pytest.raises(EtlServiceError) as exc_info:
            engine.rollback(imported_price_guide.id, company_id)

        assert exc_info.value.code == EtlErrorCode.SESSION_INVALID_STATE

    def test_rollback_of_another_company(self, session_factory, imported_price_guide):
        with pytest.raises(EtlServiceError) as exc_info:
            RollbackEngine(session_factory).rollback(imported_price_guide.id, "company-2")
        assert exc_info.value.code == EtlErrorCode.SESSION_NOT_FOUND

    def test_pending_session_can_be_rolled_back(
        self, coordinator, session_factory, company_id, source_company_id
    ):
        session = coordinator.create_session(company_id, source_company_id, "office")

        stats = coordinator.rollback(session.id, company_id)

        assert stats.total == 0
        assert load_session(session_factory, session.id).status == "rolled_back"

    def test_office_session(self, coordinator, source, session_factory, company_id):
        source.offices = [RawSourceOffice(object_id=f"o{n}") for n in range(3)]
        session = coordinator.create_session(company_id, source.source_company_id, "office")
        coordinator.run_import(session.id, company_id)

        stats = coordinator.rollback(session.id, company_id)

        assert stats.offices == 3
        with session_factory() as db:
            assert db.scalar(select(func.count()).select_from(Office)) == 0

    def test_rolled_back_session_can_be_imported_again(
        self, coordinator, source, session_factory, company_id
    ):
        source.offices = [RawSourceOffice(object_id="o1")]
        first = coordinator.create_session(company_id, source.source_company_id, "office")
        coordinator.run_import(first.id, company_id)
        coordinator.rollback(first.id, company_id)

        second = coordinator.create_session(company_id, source.source_company_id, "office")
        summary = coordinator.run_import(second.id, company_id)

        assert summary.imported_count == 1


class TestRollbackFailure:
    def test_failure_keeps_rows_and_marks_session(
        self, session_factory, imported_price_guide, company_id
    ):
        engine = RollbackEngine(session_factory)

        # A row created outside the session still points at one of its categories
        with session_factory.begin() as db:
            category_id = db.scalar(
                select(PriceGuideCategory.id).where(PriceGuideCategory.name == "Premium")
            )
            db.add(
                MeasureSheetItem(
                    company_id=company_id,
                    category_id=category_id,
                    name="Native item",
                    sort_order="a5",
                )
            )
        before = engine.preview(imported_price_guide.id, company_id)

        with pytest.raises(IntegrityError):
            engine.rollback(imported_price_guide.id, company_id)

        session = load_session(session_factory, imported_price_guide.id)
        assert session.status == SessionStatus.ROLLBACK_FAILED.value
        assert session.errors[-1]["sourceId"] == "rollback"
        assert engine.preview(imported_price_guide.id, company_id) == before

        with pytest.raises(EtlServiceError) as exc_info:
            engine.rollback(imported_price_guide.id, company_id)
        assert exc_info.value.code == EtlErrorCode.SESSION_INVALID_STATE
