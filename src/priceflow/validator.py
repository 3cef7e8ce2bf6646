"""Save-time checks for template definitions.

Errors make a template unusable; warnings point at definitions that work but
most likely do not do what the merchant intended.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .composer import SYSTEM_VARIABLES
from .config import DEFAULT_CONFIG, Config
from .errors import FormulaSyntaxError, TemplateDefinitionError
from .expression import parse
from .models import NUMERIC_TYPES, BuiltInSectionType, DiscountTier, Template
from .resolver import meta_variables
from .schema import load_template, schema_problems

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationReport:
    valid: bool
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    variables: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "variables": list(self.variables),
        }


@dataclass
class _Findings:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def report(self, variables: Tuple[str, ...] = ()) -> ValidationReport:
        return ValidationReport(
            valid=not self.errors,
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
            variables=variables,
        )


def _check_keys(template: Template, findings: _Findings) -> None:
    seen_sections = set()
    for section in template.sections:
        if section.key in seen_sections:
            findings.errors.append(f'Duplicate section key: "{section.key}"')
        seen_sections.add(section.key)
    seen_fields = set()
    for fld in template.iter_fields():
        if fld.key in seen_fields:
            findings.errors.append(f'Duplicate field key: "{fld.key}"')
        seen_fields.add(fld.key)


def _check_rules(template: Template, findings: _Findings) -> None:
    fields = template.field_map()
    depends_on: Dict[str, str] = {}
    for fld in template.iter_fields():
        rule = fld.show_if
        if rule is None:
            continue
        if rule.field == fld.key:
            findings.errors.append(f'Field "{fld.key}" has a conditional rule that references itself')
        elif rule.field not in fields:
            findings.warnings.append(
                f'Field "{fld.key}" depends on unknown field "{rule.field}" and will never be shown'
            )
        else:
            depends_on[fld.key] = rule.field

    reported = set()
    for start in depends_on:
        path = [start]
        current = depends_on.get(start)
        while current is not None and current not in path:
            path.append(current)
            current = depends_on.get(current)
        if current is None:
            continue
        cycle = path[path.index(current):]
        signature = frozenset(cycle)
        if signature in reported:
            continue
        reported.add(signature)
        chain = " -> ".join(cycle + [current])
        findings.errors.append(f"Conditional rules form a cycle: {chain}")


def _check_quantity_bounds(template: Template, findings: _Findings) -> None:
    minimum, maximum = template.min_quantity, template.max_quantity
    if minimum is not None and minimum < 1:
        findings.errors.append("Minimum quantity must be at least 1")
    if maximum is not None and maximum < 1:
        findings.errors.append("Maximum quantity must be at least 1")
    if minimum is not None and maximum is not None and minimum > maximum:
        findings.errors.append(f"Minimum quantity {minimum} is greater than maximum quantity {maximum}")


def _tier_label(tier: DiscountTier) -> str:
    upper = "+" if tier.max_qty is None else f"-{tier.max_qty}"
    return f"{tier.min_qty}{upper}"


def check_tier_coverage(
    tiers: Tuple[DiscountTier, ...], min_quantity: Optional[int], max_quantity: Optional[int]
) -> List[str]:
    """Return gap and overlap problems of ``tiers`` over the orderable range.

    Every quantity in ``[min_quantity or 1, max_quantity or infinity]`` must be
    matched by exactly one tier.
    """
    if not tiers:
        return []
    low = min_quantity or 1
    high = math.inf if max_quantity is None else max_quantity
    problems = []
    cursor = low
    previous: Optional[DiscountTier] = None
    for tier in sorted(tiers, key=lambda t: (t.min_qty, math.inf if t.max_qty is None else t.max_qty)):
        upper = math.inf if tier.max_qty is None else tier.max_qty
        if upper < tier.min_qty:
            problems.append(f"Discount tier {_tier_label(tier)} ends before it starts")
            continue
        if upper < low or tier.min_qty > high:
            continue
        start = max(tier.min_qty, low)
        if start > cursor:
            problems.append(f"Discount tiers leave quantities {cursor}-{start - 1} without a tier")
        elif start < cursor and previous is not None:
            problems.append(
                f"Discount tiers {_tier_label(previous)} and {_tier_label(tier)} overlap"
            )
        if upper + 1 > cursor:
            cursor = upper + 1
            previous = tier
    if cursor != math.inf and cursor <= high:
        gap = f"{cursor}+" if high == math.inf else f"{cursor}-{high}"
        problems.append(f"Discount tiers leave quantities {gap} without a tier")
    return problems


def _check_tiers(template: Template, findings: _Findings) -> None:
    for tier in template.discount_tiers:
        if not 0 <= tier.discount <= 100:
            findings.errors.append(
                f"Discount of tier {_tier_label(tier)} must be between 0 and 100, got {tier.discount:g}"
            )
    findings.errors.extend(
        check_tier_coverage(template.discount_tiers, template.min_quantity, template.max_quantity)
    )


def _check_express(template: Template, findings: _Findings) -> None:
    if not template.has_express_option:
        return
    multiplier = template.express_multiplier
    if multiplier is None:
        findings.errors.append("Express option is enabled but no express multiplier is set")
    elif multiplier <= 1:
        findings.warnings.append(
            f"Express multiplier {multiplier:g} does not increase the price; express will be ignored"
        )


def _check_formula(template: Template, findings: _Findings, config: Config) -> Tuple[str, ...]:
    try:
        formula = parse(template.pricing_formula, **config.formula_limits)
    except FormulaSyntaxError as exc:
        findings.errors.append(f"Formula syntax error: {exc.message}")
        return ()

    express_keys = {
        fld.key
        for section in template.sections
        if section.built_in_type is BuiltInSectionType.EXPRESS
        for fld in section.fields
    }
    meta = meta_variables(template.pricing_meta)
    numeric_fields = {}
    for fld in template.iter_fields():
        if not fld.use_in_formula:
            continue
        if fld.type in NUMERIC_TYPES:
            numeric_fields[fld.key] = fld
        else:
            findings.warnings.append(
                f'Field "{fld.key}" ({fld.type.value}) is not numeric and is never passed to the formula'
            )
    for key in numeric_fields:
        if key in meta:
            findings.warnings.append(f'Field "{key}" shadows the pricing meta value of the same name')

    available = set(meta) | set(numeric_fields) | set(SYSTEM_VARIABLES)
    for name in formula.variables:
        if name not in available:
            findings.errors.append(f'Unknown variable: "{name}"')
    for key in numeric_fields:
        if key not in formula.variables and key not in express_keys:
            findings.warnings.append(f'Field "{key}" is not used by the pricing formula')
    return formula.variables


def validate_template(
    template: Union[Template, Mapping[str, Any]], *, config: Optional[Config] = None
) -> ValidationReport:
    """Check a template (or a raw draft) for structural correctness.

    Raw drafts are checked against the template schema first; schema problems
    stop the remaining checks.
    """
    config = config or DEFAULT_CONFIG
    findings = _Findings()
    if not isinstance(template, Template):
        problems = schema_problems(template)
        if problems:
            findings.errors.extend(problems)
            return findings.report()
        try:
            template = load_template(template)
        except TemplateDefinitionError as exc:
            findings.errors.append(exc.message)
            findings.errors.extend(exc.problems)
            return findings.report()

    variables = _check_formula(template, findings, config)
    _check_keys(template, findings)
    _check_rules(template, findings)
    _check_quantity_bounds(template, findings)
    _check_tiers(template, findings)
    _check_express(template, findings)

    report = findings.report(variables)
    LOGGER.debug(
        "Validated template %s: %d errors, %d warnings",
        template.id or template.name,
        len(report.errors),
        len(report.warnings),
    )
    return report


__all__ = ["ValidationReport", "validate_template", "check_tier_coverage"]
