"""Conditional field visibility.

Rules are single-hop: a field's ``show_if`` rule is checked against the raw
submitted value of the referenced field, never against that field's own
visibility.  One pass over the template is therefore enough.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Mapping, Optional

from .models import ConditionalRule, RuleOperator, Section

LOGGER = logging.getLogger(__name__)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _normalize(value: Any) -> Any:
    """Comparable form: booleans and numeric text become floats, anything else its text."""
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return 1.0 if value.strip().lower() == "true" else 0.0
    number = _as_number(value)
    if number is not None:
        return number
    return str(value)


def _values_equal(left: Any, right: Any) -> bool:
    return _normalize(left) == _normalize(right)


def _is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip()) or (
        isinstance(value, (list, tuple)) and not value
    )


def rule_satisfied(rule: ConditionalRule, inputs: Mapping[str, Any]) -> bool:
    """Return True when ``rule`` holds for ``inputs``.

    An absent referenced input never satisfies a rule.
    """
    actual = inputs.get(rule.field)
    if _is_absent(actual):
        return False
    operator = rule.operator
    if operator is RuleOperator.EQUALS:
        return _values_equal(actual, rule.value)
    if operator is RuleOperator.NOT_EQUALS:
        return not _values_equal(actual, rule.value)
    if operator in (RuleOperator.GREATER_THAN, RuleOperator.LESS_THAN):
        left = _as_number(actual)
        right = _as_number(rule.value)
        if left is None or right is None:
            return False
        return left > right if operator is RuleOperator.GREATER_THAN else left < right
    if operator is RuleOperator.CONTAINS:
        if isinstance(actual, (list, tuple)):
            return any(_values_equal(item, rule.value) for item in actual)
        if isinstance(actual, str):
            return str(rule.value) in actual
        return False
    if operator is RuleOperator.IN:
        if not isinstance(rule.value, (list, tuple)):
            return False
        return any(_values_equal(actual, candidate) for candidate in rule.value)
    return False


def compute_active_fields(sections: Iterable[Section], inputs: Mapping[str, Any]) -> frozenset:
    """Return the keys of every field that should be shown for ``inputs``."""
    active = set()
    for section in sections:
        for field in section.fields:
            if field.show_if is None or rule_satisfied(field.show_if, inputs):
                active.add(field.key)
            else:
                LOGGER.debug(
                    "Field %s hidden by rule %s %s %r",
                    field.key,
                    field.show_if.field,
                    field.show_if.operator.value,
                    field.show_if.value,
                )
    return frozenset(active)


__all__ = ["compute_active_fields", "rule_satisfied"]
