from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from .composer import compose_price
from .config import DEFAULT_CONFIG, Config
from .errors import PriceMismatch, PricingError
from .models import PriceBreakdown, Template
from .schema import as_template
from .validator import validate_template as _validate
from .visibility import compute_active_fields

LOGGER = logging.getLogger(__name__)

TemplateLike = Union[Template, Mapping[str, Any]]


def validate_template(draft: TemplateLike, *, config: Optional[Config] = None) -> Dict[str, Any]:
    """Template editor entry point: ``{valid, errors, warnings, variables}``."""
    return _validate(draft, config=config).to_dict()


def get_active_fields(template: TemplateLike, inputs: Mapping[str, Any]) -> frozenset:
    return compute_active_fields(as_template(template).sections, inputs)


def compute_price(
    template: TemplateLike,
    inputs: Mapping[str, Any],
    quantity: Any,
    *,
    base_price: Optional[float] = None,
    is_express: Optional[bool] = None,
    config: Optional[Config] = None,
) -> PriceBreakdown:
    """Price one configured line item; raises :class:`PricingError` subclasses."""
    return compose_price(
        as_template(template),
        inputs,
        quantity,
        base_price=base_price,
        is_express=is_express,
        config=config,
    )


def compute_price_payload(
    template: TemplateLike,
    inputs: Mapping[str, Any],
    quantity: Any,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Like :func:`compute_price` but returns a JSON-compatible payload.

    Success yields ``{"ok": True, ...breakdown}``; a pricing failure yields
    ``{"ok": False, "error": {"kind", "message", ...}}``.
    """
    try:
        breakdown = compute_price(template, inputs, quantity, **kwargs)
    except PricingError as exc:
        LOGGER.debug("Price computation failed: %s", exc.message)
        return {"ok": False, "error": exc.to_dict()}
    payload: Dict[str, Any] = {"ok": True}
    payload.update(breakdown.to_dict())
    return payload


def authorize_price(
    template: TemplateLike,
    inputs: Mapping[str, Any],
    quantity: Any,
    client_total: Optional[float] = None,
    *,
    base_price: Optional[float] = None,
    is_express: Optional[bool] = None,
    config: Optional[Config] = None,
) -> PriceBreakdown:
    """Authoritative recomputation before checkout.

    Any computation error propagates. When the client also submitted a total,
    it must agree with the recomputed one within ``config.price_tolerance``.
    """
    config = config or DEFAULT_CONFIG
    breakdown = compute_price(
        template,
        inputs,
        quantity,
        base_price=base_price,
        is_express=is_express,
        config=config,
    )
    if client_total is not None:
        if abs(float(client_total) - breakdown.total) > config.price_tolerance + 1e-9:
            LOGGER.info("Rejected client total %s, calculated %s", client_total, breakdown.total)
            raise PriceMismatch(float(client_total), breakdown.total)
    return breakdown


__all__ = [
    "validate_template",
    "get_active_fields",
    "compute_price",
    "compute_price_payload",
    "authorize_price",
]
