"""Batch importers for migration sessions.

This module provides a base importer that runs one batch of a migration
session as a single transaction, and entity-specific importers for offices
and price guides. Each record is persisted inside its own savepoint so one
bad record is captured in the session error log without aborting the batch.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from legacy_migration.client.exceptions import (
    EtlErrorCode,
    EtlServiceError,
    TransformationError,
)
from legacy_migration.client.records import (
    LegacyAdditionalDetailObject,
    LegacyFileReference,
    RawSourceItem,
    RawSourceOffice,
    RawSourcePriceGuideItem,
)
from legacy_migration.client.source_client import LegacySourceClient
from legacy_migration.config import ImportConfig
from legacy_migration.migration.formula import (
    FormulaItem,
    build_formula_id_mapping,
    detect_circular_dependencies,
    transform_formula,
    validate_formula_syntax,
)
from legacy_migration.migration.hierarchy import (
    PATH_SEPARATOR,
    FlattenedCategory,
    build_category_hierarchy,
    flatten_category_hierarchy,
    get_category_path,
)
from legacy_migration.migration.mappers import transform_additional_detail
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
from legacy_migration.migration.ordering import generate_key_between, last_order_key
from legacy_migration.migration.state import (
    ImportErrorEntry,
    apply_batch_result,
    begin_batch,
    record_batch_failure,
    settle_batch,
)
from legacy_migration.utils.logging import get_logger, log_migration_progress

logger = get_logger(__name__)

CategoryPath = tuple[str, ...]


@dataclass
class BatchImportOptions:
    """Parameters of one `import_batch` call.

    When `source_ids` is given, exactly those records are fetched and
    `skip`/`limit` are ignored.
    """

    session_id: str
    company_id: str
    skip: int = 0
    limit: int = 100
    source_ids: list[str] | None = None

    def __post_init__(self) -> None:
        if self.skip < 0:
            raise ValueError("skip must not be negative")
        if self.limit < 1:
            raise ValueError("limit must be at least 1")


@dataclass
class BatchImportResult:
    imported_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    errors: list[ImportErrorEntry] = field(default_factory=list)
    has_more: bool = False

    def record_error(self, source_id: str, error: str) -> None:
        self.errors.append(
            ImportErrorEntry(
                source_id=source_id, error=error, code=EtlErrorCode.TRANSFORM_FAILED
            )
        )
        self.error_count += 1


@dataclass
class FormulaWarning:
    """Problem found in an item's quantity formula. Never counted as an error."""

    source_id: str | None
    message: str
    references: list[str] = field(default_factory=list)


@dataclass
class PriceGuideBatchImportResult(BatchImportResult):
    """Batch result of a price guide session with per-kind counts."""

    categories_imported: int = 0
    options_imported: int = 0
    upcharges_imported: int = 0
    items_imported: int = 0
    additional_details_imported: int = 0
    formula_warnings: list[FormulaWarning] = field(default_factory=list)


@dataclass
class _BatchContext:
    """Lookups shared by the records of one batch."""

    session_id: str
    company_id: str
    source_company_id: str
    category_ids: dict[CategoryPath, str] = field(default_factory=dict)
    item_sort_keys: dict[str, str | None] = field(default_factory=dict)
    formula_ids: dict[str, str] = field(default_factory=dict)
    price_type_id: str | None = None


class BatchImporter(ABC):
    """Base class for importing one batch of a migration session.

    Subclasses implement `_run_batch`, which fetches records from the legacy
    store and persists them with `_import_records`. The base class loads and
    validates the session, applies the batch to the session counters and
    commits rows and counters together.
    """

    entity_type: EntityType

    def __init__(
        self,
        source: LegacySourceClient,
        session_factory: sessionmaker[Session],
        import_config: ImportConfig | None = None,
    ):
        """Initialize batch importer.

        Args:
            source: Tenant-scoped reader of the legacy store
            session_factory: Session factory of the target database
            import_config: Import tuning (defaults apply when omitted)
        """
        self.source = source
        self.session_factory = session_factory
        self.import_config = import_config or ImportConfig()
        self.stats = {
            "batch_count": 0,
            "imported_count": 0,
            "skipped_count": 0,
            "error_count": 0,
        }

    def import_batch(self, options: BatchImportOptions) -> BatchImportResult:
        """Import one batch and update the session.

        Args:
            options: Session, company and page to import

        Returns:
            BatchImportResult: Counters and errors of this batch

        Raises:
            EtlServiceError: SESSION_NOT_FOUND or SESSION_INVALID_STATE before
                any write, SOURCE_* when the legacy store fails, IMPORT_FAILED
                when the batch fails outside per-record isolation
        """
        try:
            with self.session_factory.begin() as db:
                session = self._load_session(db, options)
                first_batch = session.processed_count == 0
                begin_batch(session)
                result = self._run_batch(db, session, options, first_batch)
                apply_batch_result(
                    session, result.imported_count, result.skipped_count, result.errors
                )
                completed = settle_batch(session, result.has_more)
                if completed:
                    self._on_session_completed(db, session, result)
                db.flush()
                processed, total = session.processed_count, session.total_count
                status = session.status
        except EtlServiceError:
            raise
        except Exception as e:
            logger.error(
                "batch_import_failed",
                session_id=options.session_id,
                entity_type=self.entity_type.value,
                error=str(e),
            )
            self._record_batch_failure(options.session_id, str(e))
            raise EtlServiceError(
                f"Batch import failed: {e}", EtlErrorCode.IMPORT_FAILED
            ) from e

        self.stats["batch_count"] += 1
        self.stats["imported_count"] += result.imported_count
        self.stats["skipped_count"] += result.skipped_count
        self.stats["error_count"] += result.error_count

        log_migration_progress(
            logger,
            session_id=options.session_id,
            entity_type=self.entity_type.value,
            processed=processed,
            total=total,
            imported=result.imported_count,
            skipped=result.skipped_count,
            errors=result.error_count,
            has_more=result.has_more,
            status=status,
        )
        return result

    def _load_session(self, db: Session, options: BatchImportOptions) -> MigrationSession:
        session = db.get(MigrationSession, options.session_id)
        if session is None or session.company_id != options.company_id:
            raise EtlServiceError(
                f"Migration session not found: {options.session_id}",
                EtlErrorCode.SESSION_NOT_FOUND,
            )
        if session.entity_type != self.entity_type.value:
            raise EtlServiceError(
                f"Migration session {session.id} imports {session.entity_type}, "
                f"not {self.entity_type.value}",
                EtlErrorCode.SESSION_INVALID_STATE,
            )
        return session

    def _record_batch_failure(self, session_id: str, error: str) -> None:
        try:
            with self.session_factory.begin() as db:
                session = db.get(MigrationSession, session_id)
                if session is not None:
                    record_batch_failure(session, error)
        except SQLAlchemyError as e:
            logger.error("batch_failure_not_recorded", session_id=session_id, error=str(e))

    @abstractmethod
    def _run_batch(
        self,
        db: Session,
        session: MigrationSession,
        options: BatchImportOptions,
        first_batch: bool,
    ) -> BatchImportResult:
        """Fetch and persist the records of one batch.

        Args:
            db: Session of the batch transaction
            session: The migration session, already moved to in_progress
            options: Page or records to import
            first_batch: Whether no record of the session was processed before
        """

    def _on_session_completed(
        self, db: Session, session: MigrationSession, result: BatchImportResult
    ) -> None:
        """Hook run inside the batch transaction when the batch completes the session."""
        logger.info(
            "migration_session_completed",
            session_id=session.id,
            imported=session.imported_count,
            skipped=session.skipped_count,
            errors=session.error_count,
        )

    def _import_records(
        self,
        db: Session,
        records: Iterable[Any],
        import_one: Callable[[Any], bool],
        result: BatchImportResult,
        kind: str,
        source_id_of: Callable[[Any], str] = lambda record: record.object_id,
    ) -> int:
        """Persist records one by one, each inside its own savepoint.

        Args:
            db: Session of the batch transaction
            records: Records to import
            import_one: Persists one record; returns False when it already exists
            result: Batch result receiving counters and errors
            kind: Record kind used in log events
            source_id_of: Identifier of a record in error entries

        Returns:
            Number of records imported
        """
        imported = 0
        for record in records:
            source_id = source_id_of(record)
            try:
                with db.begin_nested():
                    created = import_one(record)
            except Exception as e:
                logger.warning(
                    "record_import_failed", kind=kind, source_id=source_id, error=str(e)
                )
                result.record_error(source_id, str(e))
                continue

            if created:
                imported += 1
                result.imported_count += 1
                logger.debug("record_imported", kind=kind, source_id=source_id)
            else:
                result.skipped_count += 1
                logger.debug("record_already_imported", kind=kind, source_id=source_id)
        return imported

    @staticmethod
    def _exists(db: Session, model: type[Any], company_id: str, source_id: str) -> bool:
        return (
            db.scalar(
                select(model.id).where(model.company_id == company_id, model.source_id == source_id)
            )
            is not None
        )

    @staticmethod
    def _source_id_map(
        db: Session, model: type[Any], company_id: str, source_ids: Iterable[str | None]
    ) -> dict[str, str]:
        """Map legacy ids to target ids for rows of model that already exist."""
        wanted = {source_id for source_id in source_ids if source_id}
        if not wanted:
            return {}
        rows = db.execute(
            select(model.source_id, model.id).where(
                model.company_id == company_id, model.source_id.in_(wanted)
            )
        )
        return {source_id: target_id for source_id, target_id in rows}


class OfficeImporter(BatchImporter):
    """Imports legacy offices."""

    entity_type = EntityType.OFFICE

    def _run_batch(
        self,
        db: Session,
        session: MigrationSession,
        options: BatchImportOptions,
        first_batch: bool,
    ) -> BatchImportResult:
        result = BatchImportResult()

        if options.source_ids is not None:
            records = self.source.query_offices_by_ids(
                session.source_company_id, options.source_ids
            )
            result.has_more = False
        else:
            records = self.source.query_offices(
                session.source_company_id, options.skip, options.limit
            )
            result.has_more = len(records) == options.limit

        self._import_records(
            db,
            records,
            lambda record: self._import_office(db, session, record),
            result,
            kind="office",
        )
        return result

    def _import_office(self, db: Session, session: MigrationSession, record: RawSourceOffice) -> bool:
        if self._exists(db, Office, session.company_id, record.object_id):
            return False
        db.add(
            Office(
                company_id=session.company_id,
                name=record.name or "Unnamed Office",
                source_id=record.object_id,
                migration_session_id=session.id,
            )
        )
        db.flush()
        return True


class PriceGuideImporter(BatchImporter):
    """Imports categories, options, up-charges and measure sheet items.

    Categories are built from the whole legacy catalog on the first batch of
    the session. Options, up-charges and items are then paginated with the
    batch's skip and limit, in that order, so items can link to the options
    and up-charges imported before them.
    """

    entity_type = EntityType.PRICE_GUIDE

    def _run_batch(
        self,
        db: Session,
        session: MigrationSession,
        options: BatchImportOptions,
        first_batch: bool,
    ) -> PriceGuideBatchImportResult:
        result = PriceGuideBatchImportResult()
        ctx = _BatchContext(
            session_id=session.id,
            company_id=session.company_id,
            source_company_id=session.source_company_id,
        )

        if first_batch:
            result.categories_imported = self._import_categories(db, ctx, result)

        ctx.category_ids = _load_category_paths(db, ctx.company_id)
        ctx.price_type_id = self._default_price_type_id(db, ctx.company_id)
        ctx.formula_ids = self._load_formula_ids(db, ctx.company_id)

        if options.source_ids is not None:
            items = self.source.query_items_by_ids(ctx.source_company_id, options.source_ids)
            result.items_imported = self._import_items(db, ctx, items, result)
            result.has_more = False
            return result

        option_page = self.source.query_options(ctx.source_company_id, options.skip, options.limit)
        result.options_imported = self._import_records(
            db,
            option_page,
            lambda record: self._import_option(db, ctx, record),
            result,
            kind="option",
        )

        upcharge_page = self.source.query_upcharges(
            ctx.source_company_id, options.skip, options.limit
        )
        result.upcharges_imported = self._import_records(
            db,
            upcharge_page,
            lambda record: self._import_upcharge(db, ctx, record, result),
            result,
            kind="upcharge",
        )

        item_page = self.source.query_items(ctx.source_company_id, options.skip, options.limit)
        result.items_imported = self._import_items(db, ctx, item_page, result)

        result.has_more = any(
            len(page) == options.limit for page in (option_page, upcharge_page, item_page)
        )
        return result

    # Categories

    def _import_categories(
        self, db: Session, ctx: _BatchContext, result: PriceGuideBatchImportResult
    ) -> int:
        """Create every category of the legacy hierarchy that does not exist yet."""
        root_configs = self.source.query_categories(ctx.source_company_id)
        hierarchy = build_category_hierarchy(
            root_configs,
            self.source.iter_all_items(
                ctx.source_company_id, page_size=self.import_config.category_scan_page_size
            ),
        )
        categories = flatten_category_hierarchy(hierarchy)
        existing = _load_category_paths(db, ctx.company_id)
        last_keys = _load_last_sibling_keys(db, ctx.company_id)

        logger.info(
            "category_hierarchy_built",
            session_id=ctx.session_id,
            categories=len(categories),
            existing=len(existing),
        )

        return self._import_records(
            db,
            categories,
            lambda category: self._import_category(db, ctx, category, existing, last_keys),
            result,
            kind="category",
            source_id_of=lambda category: category.source_id
            or PATH_SEPARATOR.join(category.path),
        )

    def _import_category(
        self,
        db: Session,
        ctx: _BatchContext,
        category: FlattenedCategory,
        existing: dict[CategoryPath, str],
        last_keys: dict[str | None, str],
    ) -> bool:
        """Create one category unless its path exists.

        Siblings stored by earlier sessions keep their keys; a new category
        under a parent that already has children is keyed after the last of
        them, in discovery order.
        """
        path = category.path_key
        if path in existing:
            return False

        parent_id = None
        if len(path) > 1:
            parent_id = existing.get(path[:-1])
            if parent_id is None:
                raise TransformationError(
                    f"Parent category not found: {PATH_SEPARATOR.join(path[:-1])}"
                )

        sort_order = category.sort_order
        if parent_id in last_keys:
            sort_order = generate_key_between(last_keys[parent_id], None)

        row = PriceGuideCategory(
            company_id=ctx.company_id,
            parent_id=parent_id,
            name=category.name,
            category_type=category.category_type.value,
            sort_order=sort_order,
            depth=category.depth,
            source_id=category.source_id,
            migration_session_id=ctx.session_id,
        )
        db.add(row)
        db.flush()
        existing[path] = row.id
        if parent_id in last_keys:
            last_keys[parent_id] = sort_order
        return True

    # Options and up-charges

    def _import_option(
        self, db: Session, ctx: _BatchContext, record: RawSourcePriceGuideItem
    ) -> bool:
        if self._exists(db, PriceGuideOption, ctx.company_id, record.object_id):
            return False

        option = PriceGuideOption(
            company_id=ctx.company_id,
            name=record.display_title or record.name or "Unnamed Option",
            item_code=next(iter(record.item_codes.values()), None),
            source_id=record.object_id,
            migration_session_id=ctx.session_id,
        )
        db.add(option)
        db.flush()

        if ctx.price_type_id is not None:
            offices = self._source_id_map(
                db, Office, ctx.company_id, (price.office_id for price in record.item_prices)
            )
            for price in record.item_prices:
                office_id = offices.get(price.office_id)
                if office_id is None:
                    continue
                db.add(
                    OptionPrice(
                        option_id=option.id,
                        office_id=office_id,
                        price_type_id=ctx.price_type_id,
                        amount=price.total,
                        migration_session_id=ctx.session_id,
                    )
                )
        return True

    def _import_upcharge(
        self,
        db: Session,
        ctx: _BatchContext,
        record: RawSourcePriceGuideItem,
        result: PriceGuideBatchImportResult,
    ) -> bool:
        if self._exists(db, UpCharge, ctx.company_id, record.object_id):
            return False

        upcharge = UpCharge(
            company_id=ctx.company_id,
            name=record.display_title or record.name or "Unnamed Up-Charge",
            note=record.info,
            identifier=record.identifier,
            source_id=record.object_id,
            migration_session_id=ctx.session_id,
        )
        db.add(upcharge)
        db.flush()

        for position, legacy in enumerate(record.additional_details):
            field_id = self._ensure_additional_detail(db, ctx, legacy, result)
            db.add(
                UpChargeAdditionalDetailField(
                    up_charge_id=upcharge.id,
                    additional_detail_field_id=field_id,
                    sort_order=position,
                    migration_session_id=ctx.session_id,
                )
            )

        option_refs = list(record.disabled_parents)
        option_refs.extend(price.price_guide_item_id for price in record.accessory_prices)
        options = self._source_id_map(db, PriceGuideOption, ctx.company_id, option_refs)

        for disabled in dict.fromkeys(record.disabled_parents):
            option_id = options.get(disabled)
            if option_id is not None:
                db.add(
                    UpChargeDisabledOption(
                        up_charge_id=upcharge.id,
                        option_id=option_id,
                        migration_session_id=ctx.session_id,
                    )
                )

        if ctx.price_type_id is not None:
            self._add_upcharge_prices(db, ctx, upcharge, record, options)
        return True

    def _add_upcharge_prices(
        self,
        db: Session,
        ctx: _BatchContext,
        upcharge: UpCharge,
        record: RawSourcePriceGuideItem,
        options: dict[str, str],
    ) -> None:
        offices = self._source_id_map(
            db,
            Office,
            ctx.company_id,
            (total.office_id for price in record.accessory_prices for total in price.item_totals),
        )
        for price in record.accessory_prices:
            option_id = None
            if price.price_guide_item_id:
                option_id = options.get(price.price_guide_item_id)
                if option_id is None:
                    continue
            for total in price.item_totals:
                office_id = offices.get(total.office_id)
                if office_id is None:
                    continue
                db.add(
                    UpChargePrice(
                        up_charge_id=upcharge.id,
                        office_id=office_id,
                        price_type_id=ctx.price_type_id,
                        option_id=option_id,
                        amount=total.total,
                        is_percentage=record.percentage_price,
                        migration_session_id=ctx.session_id,
                    )
                )

    def _ensure_additional_detail(
        self,
        db: Session,
        ctx: _BatchContext,
        legacy: LegacyAdditionalDetailObject,
        result: PriceGuideBatchImportResult,
    ) -> str:
        """Return the field for a legacy additional detail, creating it once per company."""
        field_id = db.scalar(
            select(AdditionalDetailField.id).where(
                AdditionalDetailField.company_id == ctx.company_id,
                AdditionalDetailField.source_id == legacy.object_id,
            )
        )
        if field_id is not None:
            return field_id

        settings = transform_additional_detail(legacy)
        row = AdditionalDetailField(
            company_id=ctx.company_id,
            title=settings.title or "Untitled",
            input_type=settings.input_type.value,
            cell_type=settings.cell_type.value if settings.cell_type else None,
            placeholder=settings.placeholder,
            note=settings.note,
            default_value=settings.default_value,
            is_required=settings.is_required,
            should_copy=settings.should_copy,
            picker_values=settings.picker_values,
            allow_decimal=settings.allow_decimal,
            date_display_format=settings.date_display_format,
            not_added_replacement=settings.not_added_replacement,
            size_picker_config=settings.size_picker_config,
            united_inch_config=settings.united_inch_config,
            photo_config=settings.photo_config,
            source_id=settings.source_id,
            migration_session_id=ctx.session_id,
        )
        db.add(row)
        db.flush()
        result.additional_details_imported += 1
        return row.id

    # Measure sheet items

    def _import_items(
        self,
        db: Session,
        ctx: _BatchContext,
        records: Sequence[RawSourceItem],
        result: PriceGuideBatchImportResult,
    ) -> int:
        return self._import_records(
            db,
            records,
            lambda record: self._import_item(db, ctx, record, result),
            result,
            kind="item",
        )

    def _import_item(
        self,
        db: Session,
        ctx: _BatchContext,
        record: RawSourceItem,
        result: PriceGuideBatchImportResult,
    ) -> bool:
        if self._exists(db, MeasureSheetItem, ctx.company_id, record.object_id):
            return False

        path = tuple(get_category_path(record))
        category_id = ctx.category_ids.get(path)
        if category_id is None:
            raise TransformationError(f"Category not found: {PATH_SEPARATOR.join(path)}")

        image_id = None
        if self.import_config.include_images and record.image is not None:
            image_id = self._create_image(db, ctx, record.image)

        qty_formula = None
        quantity_mode = QuantityMode.MANUAL
        if record.qty_formula and record.qty_formula.strip():
            qty_formula = transform_formula(record.qty_formula, ctx.formula_ids).formula
            quantity_mode = QuantityMode.FORMULA

        item = MeasureSheetItem(
            company_id=ctx.company_id,
            category_id=category_id,
            image_id=image_id,
            name=record.item_name or "Unnamed Item",
            note=record.item_note,
            measurement_type=record.measurement_type or "each",
            formula_id=record.formula_id,
            legacy_qty_formula=record.qty_formula,
            qty_formula=qty_formula,
            quantity_mode=quantity_mode.value,
            default_qty=record.default_qty if record.default_qty is not None else 1,
            show_switch=bool(record.should_show_switch),
            sort_order=self._next_item_sort_key(db, ctx, category_id),
            source_id=record.object_id,
            migration_session_id=ctx.session_id,
        )
        db.add(item)
        db.flush()

        self._link_item(db, ctx, item, record, result)
        return True

    def _link_item(
        self,
        db: Session,
        ctx: _BatchContext,
        item: MeasureSheetItem,
        record: RawSourceItem,
        result: PriceGuideBatchImportResult,
    ) -> None:
        """Link an item to its offices, options, up-charges and additional details.

        References to records that were never imported are dropped.
        """
        offices = self._source_id_map(db, Office, ctx.company_id, record.office_ids)
        for office_id in dict.fromkeys(offices[ref] for ref in record.office_ids if ref in offices):
            db.add(
                MeasureSheetItemOffice(
                    measure_sheet_item_id=item.id,
                    office_id=office_id,
                    migration_session_id=ctx.session_id,
                )
            )

        options = self._source_id_map(db, PriceGuideOption, ctx.company_id, record.option_ids)
        linked_options = [options[ref] for ref in dict.fromkeys(record.option_ids) if ref in options]
        for position, option_id in enumerate(linked_options):
            db.add(
                MeasureSheetItemOption(
                    measure_sheet_item_id=item.id,
                    option_id=option_id,
                    sort_order=position,
                    migration_session_id=ctx.session_id,
                )
            )

        upcharges = self._source_id_map(db, UpCharge, ctx.company_id, record.upcharge_ids)
        linked_upcharges = [
            upcharges[ref] for ref in dict.fromkeys(record.upcharge_ids) if ref in upcharges
        ]
        for position, upcharge_id in enumerate(linked_upcharges):
            db.add(
                MeasureSheetItemUpCharge(
                    measure_sheet_item_id=item.id,
                    up_charge_id=upcharge_id,
                    sort_order=position,
                    migration_session_id=ctx.session_id,
                )
            )

        for position, legacy in enumerate(record.additional_details):
            field_id = self._ensure_additional_detail(db, ctx, legacy, result)
            db.add(
                MeasureSheetItemAdditionalDetailField(
                    measure_sheet_item_id=item.id,
                    additional_detail_field_id=field_id,
                    sort_order=position,
                    migration_session_id=ctx.session_id,
                )
            )

    def _create_image(self, db: Session, ctx: _BatchContext, image: LegacyFileReference) -> str:
        row = PriceGuideImage(
            company_id=ctx.company_id,
            name=image.name,
            url=image.url,
            migration_session_id=ctx.session_id,
        )
        db.add(row)
        db.flush()
        return row.id

    def _next_item_sort_key(self, db: Session, ctx: _BatchContext, category_id: str) -> str:
        """Order key after the last item already in the category."""
        if category_id not in ctx.item_sort_keys:
            ctx.item_sort_keys[category_id] = last_order_key(
                db.scalars(
                    select(MeasureSheetItem.sort_order).where(
                        MeasureSheetItem.category_id == category_id
                    )
                )
            )
        key = generate_key_between(ctx.item_sort_keys[category_id], None)
        ctx.item_sort_keys[category_id] = key
        return key

    # Lookups

    @staticmethod
    def _default_price_type_id(db: Session, company_id: str) -> str | None:
        """First active price type of the company; prices are dropped without one."""
        price_type_id = db.scalar(
            select(PriceObjectType.id)
            .where(PriceObjectType.company_id == company_id, PriceObjectType.is_active.is_(True))
            .order_by(PriceObjectType.sort_order, PriceObjectType.name)
            .limit(1)
        )
        if price_type_id is None:
            logger.warning("no_active_price_type", company_id=company_id)
        return price_type_id

    @staticmethod
    def _load_formula_ids(db: Session, company_id: str) -> dict[str, str]:
        items = db.execute(
            select(MeasureSheetItem.id, MeasureSheetItem.formula_id, MeasureSheetItem.source_id)
            .where(MeasureSheetItem.company_id == company_id)
            .order_by(MeasureSheetItem.sort_order)
        ).all()
        return build_formula_id_mapping(items)

    # Post-import formula pass

    def _on_session_completed(
        self, db: Session, session: MigrationSession, result: BatchImportResult
    ) -> None:
        super()._on_session_completed(db, session, result)
        if isinstance(result, PriceGuideBatchImportResult):
            result.formula_warnings.extend(self._resolve_session_formulas(db, session))

    def _resolve_session_formulas(
        self, db: Session, session: MigrationSession
    ) -> list[FormulaWarning]:
        """Re-resolve every formula of the session against the whole company.

        Items of later batches may be referenced by items of earlier ones, so
        references are rewritten again once every item exists. Unresolved
        references, invalid syntax and reference cycles are reported as
        warnings; formulas are not evaluated.
        """
        formula_ids = self._load_formula_ids(db, session.company_id)
        items = db.scalars(
            select(MeasureSheetItem).where(
                MeasureSheetItem.migration_session_id == session.id,
                MeasureSheetItem.legacy_qty_formula.is_not(None),
            )
        ).all()

        warnings: list[FormulaWarning] = []
        for item in items:
            if not item.legacy_qty_formula.strip():
                continue
            transformed = transform_formula(item.legacy_qty_formula, formula_ids)
            item.qty_formula = transformed.formula
            item.quantity_mode = QuantityMode.FORMULA.value

            if not self.import_config.validate_formulas:
                continue
            if transformed.unresolved_refs:
                warnings.append(
                    FormulaWarning(
                        source_id=item.source_id,
                        message="Unresolved formula references",
                        references=list(dict.fromkeys(transformed.unresolved_refs)),
                    )
                )
            validation = validate_formula_syntax(item.legacy_qty_formula)
            if not validation.is_valid:
                warnings.append(
                    FormulaWarning(source_id=item.source_id, message=validation.error or "")
                )

        source_ids = {item.id: item.source_id for item in items}
        cycles = detect_circular_dependencies(
            FormulaItem(id=item.id, formula=item.qty_formula) for item in items
        )
        for cycle in cycles:
            warnings.append(
                FormulaWarning(
                    source_id=source_ids.get(cycle.item_id),
                    message="Circular formula reference",
                    references=[source_ids.get(node) or node for node in cycle.cycle],
                )
            )

        db.flush()
        logger.info(
            "formulas_resolved",
            session_id=session.id,
            items=len(items),
            warnings=len(warnings),
            cycles=len(cycles),
        )
        return warnings


def _load_category_paths(db: Session, company_id: str) -> dict[CategoryPath, str]:
    """Map the name path of every category of the company to its id."""
    rows = db.execute(
        select(PriceGuideCategory.id, PriceGuideCategory.parent_id, PriceGuideCategory.name).where(
            PriceGuideCategory.company_id == company_id
        )
    ).all()
    by_id = {row.id: row for row in rows}

    paths: dict[CategoryPath, str] = {}
    for row in rows:
        names: list[str] = []
        current = row
        # Parent chains longer than the table are corrupt; stop there.
        for _ in range(len(rows)):
            names.append(current.name)
            if current.parent_id is None:
                break
            current = by_id.get(current.parent_id)
            if current is None:
                break
        else:
            continue
        if current is None:
            continue
        paths[tuple(reversed(names))] = row.id
    return paths


def _load_last_sibling_keys(db: Session, company_id: str) -> dict[str | None, str]:
    """Map each parent id (None for roots) to the greatest sort key among its stored children."""
    rows = db.execute(
        select(PriceGuideCategory.parent_id, PriceGuideCategory.sort_order).where(
            PriceGuideCategory.company_id == company_id
        )
    )
    children: dict[str | None, list[str]] = {}
    for parent_id, sort_order in rows:
        children.setdefault(parent_id, []).append(sort_order)
    return {parent_id: last_order_key(keys) for parent_id, keys in children.items()}


def create_importer(
    entity_type: EntityType | str,
    source: LegacySourceClient,
    session_factory: sessionmaker[Session],
    import_config: ImportConfig | None = None,
) -> BatchImporter:
    """Create the importer for a session's entity type.

    Raises:
        ValueError: If entity_type is not supported
    """
    importers: dict[EntityType, type[BatchImporter]] = {
        EntityType.OFFICE: OfficeImporter,
        EntityType.PRICE_GUIDE: PriceGuideImporter,
    }
    importer_class = importers.get(EntityType(entity_type))
    if importer_class is None:
        raise ValueError(f"No importer for entity type: {entity_type}")
    return importer_class(source, session_factory, import_config)
