"""Typed records read from the legacy document store.

Legacy documents are Parse-style: ids live in `_id`, tenant pointers in
`_p_<field>` as "ClassName$objectId", and embedded relations as lists of
`{"objectId": ...}` objects. Each record type converts a raw document with
`from_document`.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def parse_pointer(pointer: str | None) -> str | None:
    """Return the object id of a "ClassName$objectId" pointer, or None."""
    if not pointer:
        return None
    parts = pointer.split("$")
    return parts[1] if len(parts) == 2 else None


def create_pointer(class_name: str, object_id: str) -> str:
    """Build a "ClassName$objectId" pointer."""
    return f"{class_name}${object_id}"


def _object_ids(refs: list[dict[str, Any]] | None) -> list[str]:
    return [ref["objectId"] for ref in refs or [] if ref.get("objectId")]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class LegacyCategoryConfig:
    """Root category declared in a company's CustomConfig document."""

    name: str
    order: float = 0
    type: str = "default"
    object_id: str | None = None
    is_locked: bool | None = None


@dataclass
class RawSourceOffice:
    """Office document."""

    object_id: str
    name: str | None = None
    source_company_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "RawSourceOffice":
        return cls(
            object_id=doc["_id"],
            name=doc.get("name"),
            source_company_id=parse_pointer(doc.get("_p_company")),
            created_at=_iso(doc.get("_created_at")),
            updated_at=_iso(doc.get("_updated_at")),
        )


@dataclass
class LegacyFileReference:
    """Parse file reference embedded in an item."""

    name: str
    url: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any] | None) -> "LegacyFileReference | None":
        if not doc or not doc.get("name"):
            return None
        return cls(name=doc["name"], url=doc.get("url"))


@dataclass
class LegacyItemPrice:
    """Per-office price of an option."""

    office_id: str
    total: float

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "LegacyItemPrice":
        return cls(office_id=doc.get("officeId", ""), total=float(doc.get("total") or 0))


@dataclass
class LegacyAccessoryPrice:
    """Per-office prices of an up-charge, optionally specific to one option."""

    price_guide_item_id: str | None
    item_totals: list[LegacyItemPrice] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "LegacyAccessoryPrice":
        return cls(
            price_guide_item_id=doc.get("priceGuideItemId"),
            item_totals=[LegacyItemPrice.from_document(t) for t in doc.get("itemTotals") or []],
        )


@dataclass
class LegacyAdditionalDetailObject:
    """Additional detail (custom input) definition embedded in items and up-charges."""

    object_id: str
    title: str
    input_type: str = "default"
    cell_type: str | None = None
    placeholder: str | None = None
    note: str | None = None
    default_value: Any = None
    required: bool | None = None
    should_copy: bool | None = None
    picker_values: list[str] | None = None
    min_size_picker_width: float | None = None
    max_size_picker_width: float | None = None
    min_size_picker_height: float | None = None
    max_size_picker_height: float | None = None
    min_size_picker_depth: float | None = None
    max_size_picker_depth: float | None = None
    united_inch_suffix: str | None = None
    disable_template_photo_linking: bool | None = None
    date_display_format: str | None = None
    not_added_replacement: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "LegacyAdditionalDetailObject":
        return cls(
            object_id=doc["objectId"],
            title=doc.get("title") or "",
            input_type=doc.get("inputType") or "default",
            cell_type=doc.get("cellType"),
            placeholder=doc.get("placeholder"),
            note=doc.get("note"),
            default_value=doc.get("defaultValue"),
            required=doc.get("required"),
            should_copy=doc.get("shouldCopy"),
            picker_values=doc.get("pickerValues"),
            min_size_picker_width=doc.get("minSizePickerWidth"),
            max_size_picker_width=doc.get("maxSizePickerWidth"),
            min_size_picker_height=doc.get("minSizePickerHeight"),
            max_size_picker_height=doc.get("maxSizePickerHeight"),
            min_size_picker_depth=doc.get("minSizePickerDepth"),
            max_size_picker_depth=doc.get("maxSizePickerDepth"),
            united_inch_suffix=doc.get("unitedInchSuffix"),
            disable_template_photo_linking=doc.get("disableTemplatePhotoLinking"),
            date_display_format=doc.get("dateDisplayFormat"),
            not_added_replacement=doc.get("notAddedReplacement"),
        )

    def normalized_default_value(self) -> str | None:
        """Default value as a string; lists become JSON for multi-select pickers."""
        if self.default_value is None:
            return None
        if isinstance(self.default_value, list):
            return json.dumps(self.default_value)
        if isinstance(self.default_value, bool):
            return "true" if self.default_value else "false"
        return str(self.default_value)


@dataclass
class RawSourceItem:
    """Measure sheet item document (SSMeasureSheetItem)."""

    object_id: str
    item_name: str | None = None
    item_note: str | None = None
    category: str | None = None
    sub_category: str | None = None
    sub_sub_categories: str | None = None
    measurement_type: str | None = None
    order_number: float | None = None
    should_show_switch: bool | None = None
    default_qty: float | None = None
    formula_id: str | None = None
    qty_formula: str | None = None
    image: LegacyFileReference | None = None
    option_ids: list[str] = field(default_factory=list)
    upcharge_ids: list[str] = field(default_factory=list)
    office_ids: list[str] = field(default_factory=list)
    additional_details: list[LegacyAdditionalDetailObject] = field(default_factory=list)
    source_company_id: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "RawSourceItem":
        return cls(
            object_id=doc["_id"],
            item_name=doc.get("itemName"),
            item_note=doc.get("itemNote"),
            category=doc.get("category"),
            sub_category=doc.get("subCategory"),
            sub_sub_categories=doc.get("subSubCategories"),
            measurement_type=doc.get("measurementType"),
            order_number=doc.get("orderNumber_"),
            should_show_switch=doc.get("shouldShowSwitch"),
            default_qty=doc.get("defaultQty"),
            formula_id=doc.get("formulaID"),
            qty_formula=doc.get("qtyFormula"),
            image=LegacyFileReference.from_document(doc.get("image")),
            option_ids=_object_ids(doc.get("items")),
            upcharge_ids=_object_ids(doc.get("accessories")),
            office_ids=_object_ids(doc.get("includedOffices")),
            additional_details=[
                LegacyAdditionalDetailObject.from_document(d)
                for d in doc.get("additionalDetailObjects") or []
                if d.get("objectId")
            ],
            source_company_id=parse_pointer(doc.get("_p_company")),
        )


@dataclass
class RawSourcePriceGuideItem:
    """Price guide item document (SSPriceGuideItem): an option or an up-charge."""

    object_id: str
    is_accessory: bool = False
    display_title: str | None = None
    name: str | None = None
    info: str | None = None
    identifier: str | None = None
    item_codes: dict[str, str] = field(default_factory=dict)
    item_prices: list[LegacyItemPrice] = field(default_factory=list)
    accessory_prices: list[LegacyAccessoryPrice] = field(default_factory=list)
    percentage_price: bool = False
    disabled_parents: list[str] = field(default_factory=list)
    additional_details: list[LegacyAdditionalDetailObject] = field(default_factory=list)
    source_company_id: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "RawSourcePriceGuideItem":
        return cls(
            object_id=doc["_id"],
            is_accessory=bool(doc.get("isAccessory", False)),
            display_title=doc.get("displayTitle"),
            name=doc.get("name"),
            info=doc.get("info"),
            identifier=doc.get("identifier"),
            item_codes=doc.get("itemCodes") or {},
            item_prices=[LegacyItemPrice.from_document(p) for p in doc.get("itemPrices") or []],
            accessory_prices=[
                LegacyAccessoryPrice.from_document(p) for p in doc.get("accessoryPrices") or []
            ],
            percentage_price=bool(doc.get("percentagePrice", False)),
            disabled_parents=list(doc.get("disabledParents") or []),
            additional_details=[
                LegacyAdditionalDetailObject.from_document(d)
                for d in doc.get("additionalDetails") or []
                if d.get("objectId")
            ],
            source_company_id=parse_pointer(doc.get("_p_company")),
        )
