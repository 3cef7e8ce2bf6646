from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import InvalidInput, MissingRequiredField
from .models import (
    CheckboxField,
    ChoiceField,
    ExtrasField,
    Field,
    FieldType,
    NumberField,
    Section,
    TextField,
)

LOGGER = logging.getLogger(__name__)

_TRUE_TEXT = {"1", "true", "yes", "on"}
_FALSE_TEXT = {"0", "false", "no", "off"}


def has_value(value: Any) -> bool:
    """True when ``value`` counts as a usable submitted input."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return True


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip().replace(" ", "")
        if text.count(",") == 1 and "." not in text:
            text = text.replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _to_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_TEXT:
            return True
        if text in _FALSE_TEXT:
            return False
    return None


def meta_variables(pricing_meta: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    """Numeric entries of ``pricing_meta``; text and nested values are skipped."""
    variables: Dict[str, float] = {}
    for key, value in (pricing_meta or {}).items():
        if isinstance(value, bool):
            variables[key] = 1.0 if value else 0.0
            continue
        number = _to_float(value)
        if number is None:
            LOGGER.debug("Skipping non-numeric pricing meta %s=%r", key, value)
            continue
        variables[key] = number
    return variables


def _selected(value: Any) -> List[Any]:
    if not has_value(value):
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _resolve_number(field: NumberField, value: Any) -> float:
    number = _to_float(value)
    if number is None:
        raise InvalidInput(field.key, f"{field.label or field.key} must be a number")
    rules = field.validation
    if rules.min is not None and number < rules.min:
        raise InvalidInput(field.key, f"{field.label or field.key} must be at least {rules.min:g}")
    if rules.max is not None and number > rules.max:
        raise InvalidInput(field.key, f"{field.label or field.key} must be at most {rules.max:g}")
    return number


def _resolve_choice(field: ChoiceField, value: Any) -> float:
    if isinstance(value, (list, tuple, dict)):
        raise InvalidInput(field.key, f"{field.label or field.key} accepts a single option")
    option = field.find_option(value)
    if option is None:
        raise InvalidInput(field.key, f"{value!r} is not a valid option for {field.label or field.key}")
    return option.surcharge


def _sum_options(field: Any, values: List[Any]) -> float:
    total = 0.0
    for value in values:
        option = field.find_option(value)
        if option is None:
            raise InvalidInput(field.key, f"{value!r} is not a valid option for {field.label or field.key}")
        total += option.surcharge
    return total


def _resolve_checkbox(field: CheckboxField, value: Any) -> float:
    if field.options:
        return _sum_options(field, _selected(value))
    if not has_value(value):
        return 0.0
    flag = _to_flag(value)
    if flag is None:
        raise InvalidInput(field.key, f"{field.label or field.key} must be checked or unchecked")
    return 1.0 if flag else 0.0


def _check_text(field: TextField, value: Any) -> None:
    if not has_value(value):
        return
    if field.type is FieldType.FILE:
        return
    text = str(value)
    rules = field.validation
    if rules.min_length is not None and len(text) < rules.min_length:
        raise InvalidInput(field.key, f"{field.label or field.key} must be at least {rules.min_length} characters")
    if rules.max_length is not None and len(text) > rules.max_length:
        raise InvalidInput(field.key, f"{field.label or field.key} must be at most {rules.max_length} characters")
    if rules.pattern:
        try:
            matched = re.fullmatch(rules.pattern, text) is not None
        except re.error:
            LOGGER.debug("Ignoring invalid pattern %r on %s", rules.pattern, field.key)
            return
        if not matched:
            raise InvalidInput(field.key, f"{field.label or field.key} has an invalid format")


def field_variable(field: Field, value: Any) -> Optional[float]:
    """Numeric contribution of ``field`` for ``value``; None when it contributes nothing."""
    if isinstance(field, TextField):
        _check_text(field, value)
        return None
    if isinstance(field, CheckboxField):
        return _resolve_checkbox(field, value)
    if isinstance(field, ExtrasField):
        return _sum_options(field, _selected(value))
    if not has_value(value):
        return None
    if isinstance(field, NumberField):
        return _resolve_number(field, value)
    if isinstance(field, ChoiceField):
        return _resolve_choice(field, value)
    raise TypeError(f"Unsupported field {field!r}")


def resolve(
    sections: Iterable[Section],
    inputs: Mapping[str, Any],
    active_field_keys: Iterable[str],
    pricing_meta: Optional[Mapping[str, Any]] = None,
) -> Dict[str, float]:
    """Build the variable mapping for formula evaluation.

    Pricing meta constants go in first and field-derived values overlay them.
    Only active fields are considered: they are checked for required input,
    validated, and, when ``use_in_formula`` is set and the field is numeric,
    contribute a variable named after the field key.
    """
    active = set(active_field_keys)
    variables = meta_variables(pricing_meta)
    for section in sorted(sections, key=lambda s: s.order):
        for field in section.ordered_fields():
            if field.key not in active:
                continue
            value = inputs.get(field.key)
            if field.required and not has_value(value):
                raise MissingRequiredField(field.key)
            contribution = field_variable(field, value)
            if not field.use_in_formula or contribution is None:
                continue
            if field.key in variables:
                LOGGER.debug("Field %s overrides pricing meta of the same name", field.key)
            variables[field.key] = contribution
    return variables


__all__ = ["resolve", "field_variable", "meta_variables", "has_value"]
