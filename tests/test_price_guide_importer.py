"""
Tests for price guide imports: categories, options, up-charges, items and formulas.
"""

import pytest
from sqlalchemy import func, select

from legacy_migration.client.records import (
    LegacyAccessoryPrice,
    LegacyAdditionalDetailObject,
    LegacyCategoryConfig,
    LegacyFileReference,
    LegacyItemPrice,
    RawSourceItem,
    RawSourcePriceGuideItem,
)
from legacy_migration.config import ImportConfig
from legacy_migration.migration.coordinator import MigrationCoordinator
from legacy_migration.migration.importer import BatchImportOptions
from legacy_migration.migration.models import (
    AdditionalDetailField,
    EntityType,
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
    PriceObjectType,
    QuantityMode,
    UpCharge,
    UpChargeAdditionalDetailField,
    UpChargeDisabledOption,
    UpChargePrice,
)

COLOR_DETAIL = LegacyAdditionalDetailObject(
    object_id="d1", title="Color", input_type="picker", picker_values=["Red", "Blue"]
)


@pytest.fixture
def catalog(source):
    """Three items over two declared roots plus one declared root no item uses."""
    source.categories = [
        LegacyCategoryConfig(name="Roofing", order=1, object_id="cfg-roofing"),
        LegacyCategoryConfig(name="Windows", order=2, type="detail", object_id="cfg-windows"),
        LegacyCategoryConfig(name="Unused", order=3),
    ]
    source.items = [
        RawSourceItem(
            object_id="i1",
            item_name="Architectural Shingles",
            category="Roofing",
            sub_category="Shingles",
            formula_id="F1",
            qty_formula="[F2]*2",
            option_ids=["op1", "op-missing"],
            upcharge_ids=["u1"],
            office_ids=["o1", "o-missing"],
            additional_details=[COLOR_DETAIL],
            image=LegacyFileReference(name="roof.png", url="https://files/roof.png"),
        ),
        RawSourceItem(
            object_id="i2",
            item_name="Premium Shingles",
            category="Roofing",
            sub_category="Shingles",
            sub_sub_categories="Premium",
        ),
        RawSourceItem(
            object_id="i3",
            item_name="Vinyl Window",
            category="Windows",
            sub_category="Vinyl",
            qty_formula="[i1] + 1",
            default_qty=2,
        ),
    ]
    source.options = [
        RawSourcePriceGuideItem(
            object_id="op1",
            display_title="30 Year",
            item_codes={"o1": "SH-30"},
            item_prices=[LegacyItemPrice(office_id="o1", total=100)],
        )
    ]
    source.upcharges = [
        RawSourcePriceGuideItem(
            object_id="u1",
            is_accessory=True,
            name="Tear Off",
            identifier="TO",
            accessory_prices=[
                LegacyAccessoryPrice(None, [LegacyItemPrice("o1", 10)]),
                LegacyAccessoryPrice("op1", [LegacyItemPrice("o1", 15)]),
                LegacyAccessoryPrice("op-missing", [LegacyItemPrice("o1", 99)]),
            ],
            percentage_price=True,
            disabled_parents=["op1", "op-ghost"],
            additional_details=[COLOR_DETAIL],
        )
    ]
    return source


@pytest.fixture
def target_office(session_factory, company_id):
    """An office and a price type that already exist in the target company."""
    with session_factory.begin() as db:
        office = Office(company_id=company_id, name="Main", source_id="o1")
        db.add(office)
        db.add(PriceObjectType(company_id=company_id, name="List", is_active=True))
        db.flush()
        return office.id


@pytest.fixture
def price_guide_session(coordinator, catalog, target_office, company_id, source_company_id):
    return coordinator.create_session(company_id, source_company_id, EntityType.PRICE_GUIDE)


def count(session_factory, model) -> int:
    with session_factory() as db:
        return db.scalar(select(func.count()).select_from(model))


def item_by_source(session_factory, source_id) -> MeasureSheetItem:
    with session_factory() as db:
        return db.scalar(select(MeasureSheetItem).where(MeasureSheetItem.source_id == source_id))


# =============================================================================
# Single batch
# =============================================================================


class TestSingleBatch:
    def test_total_counts_every_category_node(self, price_guide_session):
        # 6 categories + 3 items + 1 option + 1 up-charge
        assert price_guide_session.total_count == 11

    def test_batch_completes_session(
        self, coordinator, session_factory, price_guide_session, company_id
    ):
        result = coordinator.import_batch(
            BatchImportOptions(price_guide_session.id, company_id, limit=10)
        )

        assert result.categories_imported == 6
        assert result.options_imported == 1
        assert result.upcharges_imported == 1
        assert result.items_imported == 3
        assert result.additional_details_imported == 1
        assert result.imported_count == 11
        assert result.has_more is False

        with session_factory() as db:
            session = db.get(MigrationSession, price_guide_session.id)
        assert session.status == "completed"
        assert session.processed_count == session.total_count

    def test_category_tree(self, coordinator, session_factory, price_guide_session, company_id):
        coordinator.run_import(price_guide_session.id, company_id, batch_size=10)

        with session_factory() as db:
            categories = {c.name: c for c in db.scalars(select(PriceGuideCategory))}

        assert set(categories) == {"Roofing", "Shingles", "Premium", "Windows", "Vinyl", "Unused"}
        assert categories["Shingles"].parent_id == categories["Roofing"].id
        assert categories["Premium"].parent_id == categories["Shingles"].id
        assert categories["Premium"].depth == 2
        assert categories["Windows"].category_type == "detail"
        assert categories["Roofing"].source_id == "cfg-roofing"
        assert categories["Vinyl"].source_id is None
        roots = sorted(
            (c for c in categories.values() if c.parent_id is None), key=lambda c: c.sort_order
        )
        assert [c.name for c in roots] == ["Roofing", "Windows", "Unused"]

    def test_items_are_linked(self, coordinator, session_factory, price_guide_session, company_id):
        coordinator.run_import(price_guide_session.id, company_id, batch_size=10)

        item = item_by_source(session_factory, "i1")
        assert item.name == "Architectural Shingles"
        assert item.measurement_type == "each"
        assert item.image_id is None

        with session_factory() as db:
            category = db.get(PriceGuideCategory, item.category_id)
            assert category.name == "Shingles"
            # Links to records that were never imported are dropped
            assert count(session_factory, MeasureSheetItemOption) == 1
            assert count(session_factory, MeasureSheetItemUpCharge) == 1
            assert count(session_factory, MeasureSheetItemOffice) == 1
            assert count(session_factory, MeasureSheetItemAdditionalDetailField) == 1
            option = db.scalar(select(PriceGuideOption))
            assert option.name == "30 Year"
            assert option.item_code == "SH-30"

    def test_prices_and_upcharge_settings(
        self, coordinator, session_factory, price_guide_session, company_id, target_office
    ):
        coordinator.run_import(price_guide_session.id, company_id, batch_size=10)

        with session_factory() as db:
            option_price = db.scalar(select(OptionPrice))
            assert option_price.amount == 100
            assert option_price.office_id == target_office

            upcharge_prices = db.scalars(select(UpChargePrice).order_by(UpChargePrice.amount)).all()
            assert [price.amount for price in upcharge_prices] == [10, 15]
            assert upcharge_prices[0].option_id is None
            assert upcharge_prices[1].option_id == db.scalar(select(PriceGuideOption.id))
            assert all(price.is_percentage for price in upcharge_prices)

            upcharge = db.scalar(select(UpCharge))
            assert upcharge.identifier == "TO"
        assert count(session_factory, UpChargeDisabledOption) == 1
        assert count(session_factory, UpChargeAdditionalDetailField) == 1
        # The item and the up-charge share one field
        assert count(session_factory, AdditionalDetailField) == 1

    def test_prices_need_a_price_type(
        self, coordinator, session_factory, catalog, company_id, source_company_id
    ):
        with session_factory.begin() as db:
            db.add(Office(company_id=company_id, name="Main", source_id="o1"))
        session = coordinator.create_session(company_id, source_company_id, "price_guide")

        coordinator.run_import(session.id, company_id, batch_size=10)

        assert count(session_factory, PriceGuideOption) == 1
        assert count(session_factory, OptionPrice) == 0
        assert count(session_factory, UpChargePrice) == 0

    def test_images_are_optional(
        self, catalog, session_factory, target_office, company_id, source_company_id
    ):
        coordinator = MigrationCoordinator(
            catalog, session_factory, import_config=ImportConfig(include_images=True)
        )
        session = coordinator.create_session(company_id, source_company_id, "price_guide")

        coordinator.run_import(session.id, company_id, batch_size=10)

        item = item_by_source(session_factory, "i1")
        with session_factory() as db:
            image = db.get(PriceGuideImage, item.image_id)
        assert image.name == "roof.png"
        assert image.migration_session_id == session.id


# =============================================================================
# Formulas
# =============================================================================


class TestFormulas:
    def test_references_resolve_after_last_batch(
        self, coordinator, session_factory, price_guide_session, company_id
    ):
        summary = coordinator.run_import(price_guide_session.id, company_id, batch_size=10)

        first = item_by_source(session_factory, "i1")
        third = item_by_source(session_factory, "i3")
        assert third.qty_formula == f"[{first.id}] + 1"
        assert third.legacy_qty_formula == "[i1] + 1"
        assert third.quantity_mode == QuantityMode.FORMULA.value
        assert third.default_qty == 2

        # F2 exists nowhere
        assert first.qty_formula == "[F2]*2"
        assert len(summary.formula_warnings) == 1
        warning = summary.formula_warnings[0]
        assert warning.source_id == "i1"
        assert warning.message == "Unresolved formula references"
        assert warning.references == ["F2"]

    def test_items_without_formula_are_manual(
        self, coordinator, session_factory, price_guide_session, company_id
    ):
        coordinator.run_import(price_guide_session.id, company_id, batch_size=10)

        second = item_by_source(session_factory, "i2")
        assert second.quantity_mode == QuantityMode.MANUAL.value
        assert second.qty_formula is None
        assert second.default_qty == 1

    def test_warnings_are_not_errors(
        self, coordinator, session_factory, price_guide_session, company_id
    ):
        summary = coordinator.run_import(price_guide_session.id, company_id, batch_size=10)

        assert summary.error_count == 0
        with session_factory() as db:
            assert db.get(MigrationSession, price_guide_session.id).errors == []

    def test_cycles_are_reported(
        self, coordinator, source, session_factory, target_office, company_id, source_company_id
    ):
        source.items = [
            RawSourceItem(object_id="a", category="Roofing", formula_id="A", qty_formula="[B]"),
            RawSourceItem(object_id="b", category="Roofing", formula_id="B", qty_formula="[A]"),
        ]
        session = coordinator.create_session(company_id, source_company_id, "price_guide")

        summary = coordinator.run_import(session.id, company_id, batch_size=10)

        cycles = [w for w in summary.formula_warnings if w.message == "Circular formula reference"]
        assert len(cycles) == 1
        references = cycles[0].references
        assert sorted(references[:-1]) == ["a", "b"]
        assert references[0] == references[-1]


# =============================================================================
# Pagination and errors
# =============================================================================


class TestPagination:
    def test_categories_are_imported_once(
        self, coordinator, session_factory, price_guide_session, company_id
    ):
        summary = coordinator.run_import(price_guide_session.id, company_id, batch_size=1)

        # Three non-empty item pages, then one empty page
        assert summary.batches == 4
        assert summary.imported_count == 11
        assert summary.status == "completed"
        assert count(session_factory, PriceGuideCategory) == 6
        assert count(session_factory, MeasureSheetItem) == 3

    def test_items_keep_discovery_order_within_a_category(
        self, coordinator, source, session_factory, target_office, company_id, source_company_id
    ):
        source.items = [
            RawSourceItem(object_id=f"s{n}", item_name=f"Shingle {n}", category="Roofing")
            for n in range(5)
        ]
        session = coordinator.create_session(company_id, source_company_id, "price_guide")

        coordinator.run_import(session.id, company_id, batch_size=2)

        with session_factory() as db:
            names = db.scalars(select(MeasureSheetItem.name).order_by(MeasureSheetItem.sort_order))
            assert list(names) == [f"Shingle {n}" for n in range(5)]

    def test_selected_items(self, coordinator, session_factory, price_guide_session, company_id):
        result = coordinator.import_batch(
            BatchImportOptions(price_guide_session.id, company_id, source_ids=["i2"])
        )

        assert result.categories_imported == 6
        assert result.items_imported == 1
        assert result.options_imported == 0
        assert result.has_more is False
        assert count(session_factory, MeasureSheetItem) == 1

    def test_item_without_category_is_an_error(
        self, coordinator, source, session_factory, catalog, target_office, company_id
    ):
        source.items.append(RawSourceItem(object_id="i4", item_name="Orphan"))
        session = coordinator.create_session(company_id, source.source_company_id, "price_guide")

        summary = coordinator.run_import(session.id, company_id, batch_size=10)

        assert summary.error_count == 1
        assert summary.imported_count == 11
        assert summary.status == "completed"
        with session_factory() as db:
            errors = db.get(MigrationSession, session.id).errors
        assert errors[0]["sourceId"] == "i4"
        assert errors[0]["error"] == "Category not found: "
        assert item_by_source(session_factory, "i4") is None


# =============================================================================
# Later sessions for the same company
# =============================================================================


class TestRepeatedSessions:
    def test_second_session_counts_each_record_once(
        self,
        coordinator,
        catalog,
        session_factory,
        price_guide_session,
        company_id,
        source_company_id,
    ):
        coordinator.run_import(price_guide_session.id, company_id, batch_size=10)
        second = coordinator.create_session(company_id, source_company_id, EntityType.PRICE_GUIDE)
        catalog.queries.clear()

        summary = coordinator.run_import(second.id, company_id, batch_size=1)

        assert summary.imported_count == 0
        assert summary.skipped_count == 11
        assert summary.status == "completed"
        with session_factory() as db:
            session = db.get(MigrationSession, second.id)
        assert session.processed_count == session.total_count == 11
        # The category pass runs on the first batch only
        assert catalog.queries.count("fetch categories") == 1
        assert count(session_factory, PriceGuideCategory) == 6

    def test_new_categories_follow_stored_siblings(
        self, coordinator, source, session_factory, target_office, company_id, source_company_id
    ):
        source.items = [
            RawSourceItem(object_id="d1", category="Doors", sub_category="Steel"),
            RawSourceItem(object_id="w1", category="Windows"),
        ]
        first = coordinator.create_session(company_id, source_company_id, "price_guide")
        coordinator.run_import(first.id, company_id, batch_size=10)

        source.items = [
            RawSourceItem(object_id="s1", category="Siding"),
            RawSourceItem(object_id="d2", category="Doors", sub_category="Wood"),
            *source.items,
        ]
        second = coordinator.create_session(company_id, source_company_id, "price_guide")
        coordinator.run_import(second.id, company_id, batch_size=10)

        with session_factory() as db:
            categories = db.scalars(select(PriceGuideCategory)).all()
        roots = sorted((c for c in categories if c.parent_id is None), key=lambda c: c.sort_order)
        assert [c.name for c in roots] == ["Doors", "Windows", "Siding"]
        assert len({c.sort_order for c in roots}) == 3

        doors = roots[0]
        children = sorted(
            (c for c in categories if c.parent_id == doors.id), key=lambda c: c.sort_order
        )
        assert [c.name for c in children] == ["Steel", "Wood"]
        assert children[0].sort_order < children[1].sort_order
