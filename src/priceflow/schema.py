"""Schema check and parsing of raw template snapshots.

The calling layer hands over templates as JSON-compatible dicts with camelCase
keys.  They are checked against ``data/template.schema.json`` and then turned
into the immutable dataclasses of :mod:`priceflow.models`.
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from jsonschema import Draft7Validator

from .errors import TemplateDefinitionError
from .models import (
    CHOICE_TYPES,
    TEXT_TYPES,
    BuiltInSectionType,
    CheckboxField,
    ChoiceField,
    ConditionalRule,
    DiscountTier,
    ExtrasField,
    Field,
    FieldOption,
    FieldType,
    LayoutType,
    NumberField,
    NumberValidation,
    Preset,
    RuleOperator,
    ScopeType,
    Section,
    Template,
    TextField,
    TextValidation,
)

LOGGER = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "data" / "template.schema.json"
LEGACY_SECTION_KEY = "fields"


@lru_cache(maxsize=1)
def _validator() -> Draft7Validator:
    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        schema = json.load(f)
    return Draft7Validator(schema)


def schema_problems(raw: Any) -> List[str]:
    """Return human-readable schema violations of ``raw`` (empty when it conforms)."""
    problems = []
    for error in sorted(_validator().iter_errors(raw), key=lambda e: [str(p) for p in e.absolute_path]):
        location = "/".join(str(part) for part in error.absolute_path) or "<root>"
        problems.append(f"{location}: {error.message}")
    return problems


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _option_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _parse_option(raw: Mapping[str, Any]) -> FieldOption:
    metadata = {k: v for k, v in raw.items() if k not in {"value", "label", "price"}}
    return FieldOption(
        value=_option_value(raw["value"]),
        label=str(raw.get("label") or raw["value"]),
        price=_opt_float(raw.get("price")),
        metadata=metadata,
    )


def _parse_rule(raw: Optional[Mapping[str, Any]]) -> Optional[ConditionalRule]:
    show_if = (raw or {}).get("showIf")
    if not show_if:
        return None
    return ConditionalRule(
        field=str(show_if["field"]),
        operator=RuleOperator(show_if["operator"]),
        value=show_if.get("value"),
    )


def parse_field(raw: Mapping[str, Any]) -> Field:
    field_type = FieldType(raw["type"])
    common: Dict[str, Any] = {
        "key": raw["key"],
        "label": raw.get("label") or raw["key"],
        "required": bool(raw.get("required", False)),
        "use_in_formula": bool(raw.get("useInFormula", True)),
        "order": raw.get("order") or 0,
        "show_if": _parse_rule(raw.get("conditionalRules")),
    }
    validation = raw.get("validation") or {}
    options = tuple(_parse_option(o) for o in raw.get("options") or ())

    if field_type is FieldType.NUMBER:
        return NumberField(
            validation=NumberValidation(
                min=_opt_float(validation.get("min")),
                max=_opt_float(validation.get("max")),
                step=_opt_float(validation.get("step")),
            ),
            unit=raw.get("unit"),
            **common,
        )
    if field_type in CHOICE_TYPES:
        return ChoiceField(type=field_type, options=options, **common)
    if field_type is FieldType.CHECKBOX:
        return CheckboxField(options=options, **common)
    if field_type is FieldType.EXTRAS:
        return ExtrasField(options=options, **common)
    if field_type in TEXT_TYPES:
        return TextField(
            type=field_type,
            validation=TextValidation(
                pattern=validation.get("pattern"),
                min_length=_opt_int(validation.get("minLength")),
                max_length=_opt_int(validation.get("maxLength")),
            ),
            **common,
        )
    raise TemplateDefinitionError(f"Unsupported field type {field_type.value}")  # pragma: no cover


def _parse_presets(raw: Any) -> Tuple[Preset, ...]:
    presets = []
    for item in raw or ():
        if isinstance(item, Mapping):
            presets.append(Preset(label=str(item["label"]), value=item["value"]))
        else:
            presets.append(Preset(label=str(item), value=item))
    return tuple(presets)


def parse_section(raw: Mapping[str, Any]) -> Section:
    built_in = raw.get("builtInType")
    return Section(
        key=raw["key"],
        title=raw.get("title") or "",
        layout_type=LayoutType(raw.get("layoutType") or "VERTICAL"),
        built_in_type=BuiltInSectionType(built_in) if built_in else None,
        collapsible=bool(raw.get("collapsible", True)),
        default_open=bool(raw.get("defaultOpen", True)),
        order=raw.get("order") or 0,
        presets=_parse_presets(raw.get("presets")),
        fields=tuple(parse_field(f) for f in raw.get("fields") or ()),
    )


def _parse_tier(raw: Mapping[str, Any]) -> DiscountTier:
    return DiscountTier(
        min_qty=int(raw["minQty"]),
        max_qty=_opt_int(raw.get("maxQty")),
        discount=float(raw["discount"]),
    )


def load_template(raw: Mapping[str, Any]) -> Template:
    """Check ``raw`` against the template schema and build a :class:`Template`.

    Templates stored before sections existed carry a flat ``fields`` list; those
    fields are wrapped into a single section.
    """
    problems = schema_problems(raw)
    if problems:
        raise TemplateDefinitionError("Template does not match the template schema", problems)
    try:
        return _build_template(raw)
    except (TypeError, ValueError, OverflowError) as exc:
        raise TemplateDefinitionError(f"Invalid template value: {exc}") from exc


def _build_template(raw: Mapping[str, Any]) -> Template:
    sections = [parse_section(s) for s in raw.get("sections") or ()]
    if raw.get("fields"):
        LOGGER.debug("Wrapping %d top-level fields into a default section", len(raw["fields"]))
        sections.append(
            Section(
                key=LEGACY_SECTION_KEY,
                order=len(sections),
                fields=tuple(parse_field(f) for f in raw["fields"]),
            )
        )

    return Template(
        id=str(raw.get("id") or ""),
        shop_id=str(raw.get("shopId") or ""),
        name=raw.get("name") or "",
        description=raw.get("description"),
        pricing_formula=raw["pricingFormula"],
        pricing_meta=dict(raw.get("pricingMeta") or {}),
        scope_type=ScopeType(raw.get("scopeType") or "GLOBAL"),
        scope_values=tuple(raw.get("scopeValues") or ()),
        is_active=bool(raw.get("isActive", True)),
        sections=tuple(sections),
        min_quantity=_opt_int(raw.get("minQuantity")),
        max_quantity=_opt_int(raw.get("maxQuantity")),
        min_quantity_message=raw.get("minQuantityMessage"),
        max_quantity_message=raw.get("maxQuantityMessage"),
        discount_tiers=tuple(_parse_tier(t) for t in raw.get("discountTiers") or ()),
        has_express_option=bool(raw.get("hasExpressOption", False)),
        express_multiplier=_opt_float(raw.get("expressMultiplier")),
        express_label=raw.get("expressLabel"),
        normal_label=raw.get("normalLabel"),
        has_notes_field=bool(raw.get("hasNotesField", False)),
        notes_field_label=raw.get("notesFieldLabel"),
        notes_field_placeholder=raw.get("notesFieldPlaceholder"),
        quantity_presets=_parse_presets(raw.get("quantityPresets")),
    )


def as_template(template: Union[Template, Mapping[str, Any]]) -> Template:
    if isinstance(template, Template):
        return template
    return load_template(template)


def load_template_file(path: Path) -> Template:
    with Path(path).open("r", encoding="utf-8") as f:
        return load_template(json.load(f))


__all__ = [
    "SCHEMA_PATH",
    "schema_problems",
    "parse_field",
    "parse_section",
    "load_template",
    "load_template_file",
    "as_template",
]
