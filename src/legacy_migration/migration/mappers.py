"""Mapping of legacy additional detail definitions to target field settings.

Legacy input types come from several generations of the mobile client and
use inconsistent names; they are folded into `AdditionalDetailInputType`
with optional precision, decimal and cell-type hints. Unknown types become
plain text inputs.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from legacy_migration.client.records import LegacyAdditionalDetailObject
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


class AdditionalDetailInputType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    CURRENCY = "currency"
    PICKER = "picker"
    SIZE_PICKER = "size_picker"
    SIZE_PICKER_3D = "size_picker_3d"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    UNITED_INCH = "united_inch"


class AdditionalDetailCellType(str, Enum):
    TEXT = "text"
    PHOTOS = "photos"


class SizePickerPrecision(str, Enum):
    INCH = "inch"
    QUARTER_INCH = "quarter_inch"
    EIGHTH_INCH = "eighth_inch"
    SIXTEENTH_INCH = "sixteenth_inch"


@dataclass(frozen=True)
class InputTypeMapping:
    input_type: AdditionalDetailInputType
    cell_type: AdditionalDetailCellType | None = None
    precision: SizePickerPrecision | None = None
    allow_decimal: bool | None = None


_T = AdditionalDetailInputType
_P = SizePickerPrecision

INPUT_TYPE_MAP: dict[str, InputTypeMapping] = {
    # Text
    "default": InputTypeMapping(_T.TEXT),
    "text": InputTypeMapping(_T.TEXT),
    "plain": InputTypeMapping(_T.TEXT),
    "plainText": InputTypeMapping(_T.TEXT),
    "textView": InputTypeMapping(_T.TEXTAREA),
    "textarea": InputTypeMapping(_T.TEXTAREA),
    # Pickers
    "picker": InputTypeMapping(_T.PICKER),
    "multiSelectPicker": InputTypeMapping(_T.PICKER),
    # Numbers
    "keypad": InputTypeMapping(_T.NUMBER, allow_decimal=False),
    "numbers": InputTypeMapping(_T.NUMBER, allow_decimal=False),
    "numberKeyboard": InputTypeMapping(_T.NUMBER, allow_decimal=True),
    # Currency
    "keypadDecimal": InputTypeMapping(_T.CURRENCY, allow_decimal=True),
    "currency": InputTypeMapping(_T.CURRENCY, allow_decimal=True),
    "currencyDecimal": InputTypeMapping(_T.CURRENCY, allow_decimal=True),
    "currencyWhole": InputTypeMapping(_T.CURRENCY, allow_decimal=False),
    # 2D size pickers; the generic name means inch precision
    "sizePicker": InputTypeMapping(_T.SIZE_PICKER, precision=_P.INCH),
    "sizePickerInch": InputTypeMapping(_T.SIZE_PICKER, precision=_P.INCH),
    "sizePickerQuarterInch": InputTypeMapping(_T.SIZE_PICKER, precision=_P.QUARTER_INCH),
    "sizePickerEighthInch": InputTypeMapping(_T.SIZE_PICKER, precision=_P.EIGHTH_INCH),
    "sizePickerSixteenthInch": InputTypeMapping(_T.SIZE_PICKER, precision=_P.SIXTEENTH_INCH),
    # 3D size pickers
    "3DSizePicker": InputTypeMapping(_T.SIZE_PICKER_3D, precision=_P.INCH),
    "3DSizePickerInch": InputTypeMapping(_T.SIZE_PICKER_3D, precision=_P.INCH),
    "3DSizePickerQuarterInch": InputTypeMapping(_T.SIZE_PICKER_3D, precision=_P.QUARTER_INCH),
    "3DSizePickerEighthInch": InputTypeMapping(_T.SIZE_PICKER_3D, precision=_P.EIGHTH_INCH),
    "3DSizePickerSixteenthInch": InputTypeMapping(
        _T.SIZE_PICKER_3D, precision=_P.SIXTEENTH_INCH
    ),
    "unitedInchPicker": InputTypeMapping(_T.UNITED_INCH),
    # Date and time
    "datePicker": InputTypeMapping(_T.DATE),
    "timePicker": InputTypeMapping(_T.TIME),
    "dateTimePicker": InputTypeMapping(_T.DATETIME),
    # Photos are a text input rendered as a photo cell
    "photos": InputTypeMapping(_T.TEXT, cell_type=AdditionalDetailCellType.PHOTOS),
}


def map_input_type(legacy_type: str | None) -> InputTypeMapping:
    """Map a legacy input type, falling back to TEXT for unknown values."""
    mapping = INPUT_TYPE_MAP.get(legacy_type or "default")
    if mapping is None:
        logger.warning("unknown_input_type", legacy_type=legacy_type, mapped_to="text")
        return InputTypeMapping(_T.TEXT)
    return mapping


def map_cell_type(legacy_cell_type: str | None) -> AdditionalDetailCellType | None:
    """Map a legacy cell type (case-insensitive); unknown values give None."""
    if not legacy_cell_type:
        return None
    lowered = legacy_cell_type.lower()
    if lowered in ("photos", "photo"):
        return AdditionalDetailCellType.PHOTOS
    if lowered in ("text", "default", "textwords", "textsentence", "textparagraph"):
        return AdditionalDetailCellType.TEXT
    return None


def build_size_picker_config(
    legacy: LegacyAdditionalDetailObject, precision: SizePickerPrecision
) -> dict[str, Any]:
    return {
        "precision": precision.value,
        "minWidth": legacy.min_size_picker_width,
        "maxWidth": legacy.max_size_picker_width,
        "minHeight": legacy.min_size_picker_height,
        "maxHeight": legacy.max_size_picker_height,
        "minDepth": legacy.min_size_picker_depth,
        "maxDepth": legacy.max_size_picker_depth,
    }


def build_united_inch_config(legacy: LegacyAdditionalDetailObject) -> dict[str, Any] | None:
    if not legacy.united_inch_suffix:
        return None
    return {"suffix": legacy.united_inch_suffix}


def build_photo_config(legacy: LegacyAdditionalDetailObject) -> dict[str, Any] | None:
    if legacy.disable_template_photo_linking is None:
        return None
    return {"disableTemplatePhotoLinking": legacy.disable_template_photo_linking}


@dataclass
class AdditionalDetailSettings:
    """Target field settings derived from a legacy additional detail object."""

    source_id: str
    title: str
    input_type: AdditionalDetailInputType
    cell_type: AdditionalDetailCellType | None = None
    placeholder: str | None = None
    note: str | None = None
    default_value: str | None = None
    is_required: bool = False
    should_copy: bool = False
    picker_values: list[str] | None = None
    allow_decimal: bool = False
    date_display_format: str | None = None
    not_added_replacement: str | None = None
    size_picker_config: dict[str, Any] | None = None
    united_inch_config: dict[str, Any] | None = None
    photo_config: dict[str, Any] | None = field(default=None)


def transform_additional_detail(legacy: LegacyAdditionalDetailObject) -> AdditionalDetailSettings:
    """Transform a legacy additional detail object into target field settings."""
    mapping = map_input_type(legacy.input_type)
    cell_type = map_cell_type(legacy.cell_type) or mapping.cell_type

    settings = AdditionalDetailSettings(
        source_id=legacy.object_id,
        title=legacy.title,
        input_type=mapping.input_type,
        cell_type=cell_type,
        placeholder=legacy.placeholder,
        note=legacy.note,
        default_value=legacy.normalized_default_value(),
        is_required=bool(legacy.required),
        should_copy=bool(legacy.should_copy),
        picker_values=legacy.picker_values,
        allow_decimal=bool(mapping.allow_decimal),
        date_display_format=legacy.date_display_format,
        not_added_replacement=legacy.not_added_replacement,
    )

    if mapping.precision and mapping.input_type in (_T.SIZE_PICKER, _T.SIZE_PICKER_3D):
        settings.size_picker_config = build_size_picker_config(legacy, mapping.precision)
    if mapping.input_type == _T.UNITED_INCH:
        settings.united_inch_config = build_united_inch_config(legacy)
    if cell_type == AdditionalDetailCellType.PHOTOS:
        settings.photo_config = build_photo_config(legacy)

    return settings
