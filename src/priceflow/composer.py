"""Template-to-price composition.

``compose_price`` runs the whole calculation for one configured line item::

    visibility -> variable resolution -> quantity bounds -> formula
        -> express multiplier -> quantity discount tier -> rounded total

It is a pure function of the template snapshot, the inputs and the quantity,
so the storefront preview and the authoritative backend call produce the same
breakdown for the same arguments.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, localcontext
from typing import Any, List, Mapping, Optional, Tuple

from .config import DEFAULT_CONFIG, Config
from .errors import DivisionByZero, QuantityOutOfRange
from .expression import parse
from .models import (
    BreakdownLine,
    BuiltInSectionType,
    CheckboxField,
    ChoiceField,
    DiscountTier,
    ExtrasField,
    FieldOption,
    PriceBreakdown,
    Template,
)
from .resolver import has_value, resolve
from .visibility import compute_active_fields

LOGGER = logging.getLogger(__name__)

SYSTEM_VARIABLES = ("quantity", "base_price")
EXPRESS_INPUT_KEY = "express"
DEFAULT_BASE_LABEL = "Calculated unit price"
DEFAULT_EXPRESS_LABEL = "Express production"
DEFAULT_NORMAL_LABEL = "Normal production"
TOTAL_LABEL = "Total"

_ROUNDING = {"HALF_UP": ROUND_HALF_UP, "HALF_EVEN": ROUND_HALF_EVEN}


def round_money(value: float, decimals: int = 2, mode: str = "HALF_UP") -> float:
    """Round ``value`` to ``decimals`` places using decimal rounding ``mode``."""
    number = Decimal(repr(float(value)))
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, number.adjusted() + decimals + 2)
        rounded = number.quantize(Decimal(1).scaleb(-decimals), rounding=_ROUNDING[mode])
    return float(rounded)


def _in_range(value: float) -> float:
    if not math.isfinite(value):
        raise DivisionByZero("Price is out of range")
    return value


def check_quantity(template: Template, quantity: Any) -> int:
    """Return ``quantity`` as an int or raise :class:`QuantityOutOfRange`."""
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)):
        raise QuantityOutOfRange("Quantity must be a positive whole number", quantity=quantity)
    try:
        whole = float(quantity).is_integer()
    except OverflowError:
        whole = False
    if not whole or quantity < 1:
        raise QuantityOutOfRange("Quantity must be a positive whole number", quantity=quantity)
    qty = int(quantity)
    minimum = template.min_quantity
    maximum = template.max_quantity
    if minimum is not None and qty < minimum:
        message = template.min_quantity_message or f"Minimum order quantity is {minimum}"
        raise QuantityOutOfRange(message, quantity=qty, minimum=minimum, maximum=maximum)
    if maximum is not None and qty > maximum:
        message = template.max_quantity_message or f"Maximum order quantity is {maximum}"
        raise QuantityOutOfRange(message, quantity=qty, minimum=minimum, maximum=maximum)
    return qty


def find_discount_tier(tiers: Tuple[DiscountTier, ...], quantity: int) -> Optional[DiscountTier]:
    for tier in tiers:
        if tier.matches(quantity):
            return tier
    return None


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on", "express"}
    return False


def express_requested(template: Template, inputs: Mapping[str, Any]) -> bool:
    """Whether the shopper picked express production.

    Fields of an ``EXPRESS`` built-in section decide; templates without one use
    the ``express`` input key.
    """
    express_keys = [
        field.key
        for section in template.sections
        if section.built_in_type is BuiltInSectionType.EXPRESS
        for field in section.fields
    ]
    if not express_keys:
        express_keys = [EXPRESS_INPUT_KEY]
    return any(_truthy(inputs.get(key)) for key in express_keys)


def _selected_options(field: Any, value: Any) -> List[FieldOption]:
    if not has_value(value):
        return []
    if isinstance(field, ChoiceField):
        option = field.find_option(value)
        return [option] if option else []
    if isinstance(field, (ExtrasField, CheckboxField)) and field.options:
        values = value if isinstance(value, (list, tuple)) else [value]
        return [o for o in (field.find_option(v) for v in values) if o is not None]
    return []


def _surcharge_lines(
    template: Template, inputs: Mapping[str, Any], active: frozenset, config: Config
) -> List[BreakdownLine]:
    lines = []
    for field in template.iter_fields():
        if field.key not in active or not field.use_in_formula:
            continue
        for option in _selected_options(field, inputs.get(field.key)):
            if not option.surcharge:
                continue
            lines.append(
                BreakdownLine(
                    label=f"{field.label or field.key}: {option.label or option.value}",
                    value=round_money(option.surcharge, config.currency_decimals, config.rounding),
                    kind="surcharge",
                )
            )
    return lines


def compose_price(
    template: Template,
    inputs: Mapping[str, Any],
    quantity: Any,
    *,
    base_price: Optional[float] = None,
    is_express: Optional[bool] = None,
    config: Optional[Config] = None,
) -> PriceBreakdown:
    """Compute the itemised price of one configured line item.

    Raises the typed errors of :mod:`priceflow.errors`; nothing is silently
    coerced to zero.
    """
    config = config or DEFAULT_CONFIG
    decimals, mode = config.currency_decimals, config.rounding

    active = compute_active_fields(template.sections, inputs)
    variables = resolve(template.sections, inputs, active, template.pricing_meta)
    qty = check_quantity(template, quantity)
    variables.setdefault("quantity", float(qty))
    if base_price is not None:
        variables.setdefault("base_price", float(base_price))

    formula = parse(template.pricing_formula, **config.formula_limits)
    unit = formula.evaluate(variables)
    LOGGER.debug("Template %s base unit price %r from %d variables", template.id, unit, len(variables))

    lines = [
        BreakdownLine(
            label=DEFAULT_BASE_LABEL,
            value=round_money(unit, decimals, mode),
            kind="base",
            formula=template.pricing_formula,
        )
    ]
    if config.itemize_surcharges:
        lines.extend(_surcharge_lines(template, inputs, active, config))

    if is_express is None:
        is_express = express_requested(template, inputs)
    multiplier = template.express_multiplier or 1.0
    express_applied = bool(is_express and template.has_express_option and multiplier > 1)
    if express_applied:
        express_unit = _in_range(unit * multiplier)
        surcharge = unit * (multiplier - 1)
        lines.append(
            BreakdownLine(
                label=template.express_label or DEFAULT_EXPRESS_LABEL,
                value=round_money(surcharge, decimals, mode),
                kind="express",
                formula=f"{unit:g} * ({multiplier:g} - 1)",
            )
        )
        unit = express_unit

    tier = find_discount_tier(template.discount_tiers, qty)
    discount = tier.discount if tier else 0.0
    if discount > 0:
        reduction = unit * discount / 100
        lines.append(
            BreakdownLine(
                label=f"Quantity discount (-{discount:g}%)",
                value=-round_money(reduction, decimals, mode),
                kind="discount",
                formula=f"{unit:g} * {discount:g}%",
            )
        )
        unit = unit * (1 - discount / 100)

    total = round_money(_in_range(unit * qty), decimals, mode)
    lines.append(BreakdownLine(label=TOTAL_LABEL, value=total, kind="total", formula=f"{unit:g} * {qty}"))
    LOGGER.debug("Template %s total %r (qty=%d, express=%s, discount=%g)", template.id, total, qty, express_applied, discount)

    return PriceBreakdown(
        lines=tuple(lines),
        unit_price=round_money(unit, decimals, mode),
        quantity=qty,
        total=total,
        discount_percent=discount,
        is_express=express_applied,
        variables=dict(variables),
        active_fields=active,
    )


@dataclass(frozen=True)
class ExpressQuote:
    """Normal and express totals side by side for the product page."""

    has_express_option: bool
    normal_label: str
    normal_total: float
    express_label: Optional[str] = None
    express_total: Optional[float] = None
    express_multiplier: Optional[float] = None


def quote_express_options(
    template: Template,
    inputs: Mapping[str, Any],
    quantity: Any,
    *,
    base_price: Optional[float] = None,
    config: Optional[Config] = None,
) -> ExpressQuote:
    normal = compose_price(
        template, inputs, quantity, base_price=base_price, is_express=False, config=config
    )
    normal_label = template.normal_label or DEFAULT_NORMAL_LABEL
    if not template.has_express_option:
        return ExpressQuote(has_express_option=False, normal_label=normal_label, normal_total=normal.total)
    express = compose_price(
        template, inputs, quantity, base_price=base_price, is_express=True, config=config
    )
    return ExpressQuote(
        has_express_option=True,
        normal_label=normal_label,
        normal_total=normal.total,
        express_label=template.express_label or DEFAULT_EXPRESS_LABEL,
        express_total=express.total,
        express_multiplier=template.express_multiplier,
    )


__all__ = [
    "SYSTEM_VARIABLES",
    "compose_price",
    "check_quantity",
    "find_discount_tier",
    "express_requested",
    "quote_express_options",
    "round_money",
    "ExpressQuote",
]
