from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union


class FieldType(str, Enum):
    NUMBER = "NUMBER"
    TEXT = "TEXT"
    SELECT = "SELECT"
    RADIO = "RADIO"
    CHECKBOX = "CHECKBOX"
    TEXTAREA = "TEXTAREA"
    FILE = "FILE"
    PRODUCT_CARD = "PRODUCT_CARD"
    DELIVERY_TIME = "DELIVERY_TIME"
    EXTRAS = "EXTRAS"
    GRAPHIC_SELECT = "GRAPHIC_SELECT"


class LayoutType(str, Enum):
    VERTICAL = "VERTICAL"
    HORIZONTAL = "HORIZONTAL"
    GRID = "GRID"
    SPLIT = "SPLIT"
    CHECKBOX_LIST = "CHECKBOX_LIST"


class BuiltInSectionType(str, Enum):
    SIZE = "SIZE"
    QUANTITY = "QUANTITY"
    EXPRESS = "EXPRESS"
    NOTES = "NOTES"
    FILE_UPLOAD = "FILE_UPLOAD"


class ScopeType(str, Enum):
    PRODUCT = "PRODUCT"
    COLLECTION = "COLLECTION"
    VENDOR = "VENDOR"
    TAG = "TAG"
    GLOBAL = "GLOBAL"


class RuleOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    CONTAINS = "contains"
    IN = "in"


CHOICE_TYPES = frozenset(
    {
        FieldType.SELECT,
        FieldType.RADIO,
        FieldType.PRODUCT_CARD,
        FieldType.DELIVERY_TIME,
        FieldType.GRAPHIC_SELECT,
    }
)
TEXT_TYPES = frozenset({FieldType.TEXT, FieldType.TEXTAREA, FieldType.FILE})
NUMERIC_TYPES = frozenset(set(FieldType) - TEXT_TYPES)


@dataclass(frozen=True)
class FieldOption:
    """A selectable option; ``price`` is the surcharge it contributes."""

    value: str
    label: str = ""
    price: Optional[float] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def surcharge(self) -> float:
        return float(self.price) if self.price is not None else 0.0


@dataclass(frozen=True)
class ConditionalRule:
    """Show the owning field only when ``inputs[field] <operator> value`` holds."""

    field: str
    operator: RuleOperator
    value: Any = None


@dataclass(frozen=True)
class NumberValidation:
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None


@dataclass(frozen=True)
class TextValidation:
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class _FieldBase:
    key: str
    label: str = ""
    required: bool = False
    use_in_formula: bool = True
    order: int = 0
    show_if: Optional[ConditionalRule] = None


@dataclass(frozen=True)
class NumberField(_FieldBase):
    type: FieldType = FieldType.NUMBER
    validation: NumberValidation = field(default_factory=NumberValidation)
    unit: Optional[str] = None


@dataclass(frozen=True)
class ChoiceField(_FieldBase):
    """Single-select field: SELECT, RADIO, PRODUCT_CARD, DELIVERY_TIME, GRAPHIC_SELECT."""

    type: FieldType = FieldType.SELECT
    options: Tuple[FieldOption, ...] = ()

    def find_option(self, value: Any) -> Optional[FieldOption]:
        return _find_option(self.options, value)


@dataclass(frozen=True)
class CheckboxField(_FieldBase):
    type: FieldType = FieldType.CHECKBOX
    options: Tuple[FieldOption, ...] = ()

    def find_option(self, value: Any) -> Optional[FieldOption]:
        return _find_option(self.options, value)


@dataclass(frozen=True)
class ExtrasField(_FieldBase):
    type: FieldType = FieldType.EXTRAS
    options: Tuple[FieldOption, ...] = ()

    def find_option(self, value: Any) -> Optional[FieldOption]:
        return _find_option(self.options, value)


@dataclass(frozen=True)
class TextField(_FieldBase):
    """Free-form TEXT, TEXTAREA and FILE fields; never numeric."""

    type: FieldType = FieldType.TEXT
    validation: TextValidation = field(default_factory=TextValidation)


Field = Union[NumberField, ChoiceField, CheckboxField, ExtrasField, TextField]


def _find_option(options: Tuple[FieldOption, ...], value: Any) -> Optional[FieldOption]:
    wanted = _option_text(value)
    for option in options:
        if option.value == wanted:
            return option
    return None


def _option_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class Preset:
    label: str
    value: Any


@dataclass(frozen=True)
class Section:
    key: str
    title: str = ""
    layout_type: LayoutType = LayoutType.VERTICAL
    built_in_type: Optional[BuiltInSectionType] = None
    collapsible: bool = True
    default_open: bool = True
    order: int = 0
    presets: Tuple[Preset, ...] = ()
    fields: Tuple[Field, ...] = ()

    def ordered_fields(self) -> Tuple[Field, ...]:
        return tuple(sorted(self.fields, key=lambda f: f.order))


@dataclass(frozen=True)
class DiscountTier:
    min_qty: int
    max_qty: Optional[int]
    discount: float

    def matches(self, quantity: float) -> bool:
        return self.min_qty <= quantity and (self.max_qty is None or quantity <= self.max_qty)


@dataclass(frozen=True)
class Template:
    """Pricing configuration snapshot; the core only ever reads it."""

    name: str
    pricing_formula: str
    id: str = ""
    shop_id: str = ""
    description: Optional[str] = None
    pricing_meta: Mapping[str, Any] = field(default_factory=dict)
    scope_type: ScopeType = ScopeType.GLOBAL
    scope_values: Tuple[str, ...] = ()
    is_active: bool = True
    sections: Tuple[Section, ...] = ()
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None
    min_quantity_message: Optional[str] = None
    max_quantity_message: Optional[str] = None
    discount_tiers: Tuple[DiscountTier, ...] = ()
    has_express_option: bool = False
    express_multiplier: Optional[float] = None
    express_label: Optional[str] = None
    normal_label: Optional[str] = None
    has_notes_field: bool = False
    notes_field_label: Optional[str] = None
    notes_field_placeholder: Optional[str] = None
    quantity_presets: Tuple[Preset, ...] = ()

    def ordered_sections(self) -> Tuple[Section, ...]:
        return tuple(sorted(self.sections, key=lambda s: s.order))

    def iter_fields(self) -> Iterator[Field]:
        """Yield every field in section order, then field order."""
        for section in self.ordered_sections():
            yield from section.ordered_fields()

    def field_map(self) -> Dict[str, Field]:
        return {f.key: f for f in self.iter_fields()}


@dataclass(frozen=True)
class BreakdownLine:
    label: str
    value: float
    kind: str
    formula: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"label": self.label, "value": self.value, "kind": self.kind}
        if self.formula is not None:
            payload["formula"] = self.formula
        return payload


@dataclass(frozen=True)
class PriceBreakdown:
    """Itemised result of a price composition."""

    lines: Tuple[BreakdownLine, ...]
    unit_price: float
    quantity: int
    total: float
    discount_percent: float = 0.0
    is_express: bool = False
    variables: Mapping[str, float] = field(default_factory=dict)
    active_fields: frozenset = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "breakdown": [line.to_dict() for line in self.lines],
            "unitPrice": self.unit_price,
            "quantity": self.quantity,
            "total": self.total,
            "discountPercent": self.discount_percent,
            "isExpress": self.is_express,
        }


__all__ = [
    "FieldType",
    "LayoutType",
    "BuiltInSectionType",
    "ScopeType",
    "RuleOperator",
    "CHOICE_TYPES",
    "TEXT_TYPES",
    "NUMERIC_TYPES",
    "FieldOption",
    "ConditionalRule",
    "NumberValidation",
    "TextValidation",
    "NumberField",
    "ChoiceField",
    "CheckboxField",
    "ExtrasField",
    "TextField",
    "Field",
    "Preset",
    "Section",
    "DiscountTier",
    "Template",
    "BreakdownLine",
    "PriceBreakdown",
]
