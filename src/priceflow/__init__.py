"""Pricing core for configurable storefront products."""

from .api import authorize_price, compute_price, compute_price_payload, get_active_fields, validate_template
from .composer import compose_price, quote_express_options
from .config import Config, load_config
from .errors import (
    DivisionByZero,
    FormulaSyntaxError,
    InvalidInput,
    MissingRequiredField,
    PriceMismatch,
    PricingError,
    QuantityOutOfRange,
    TemplateDefinitionError,
    UnknownVariable,
)
from .expression import evaluate, extract_variables
from .models import PriceBreakdown, Template
from .resolver import resolve
from .schema import load_template
from .visibility import compute_active_fields

__version__ = "0.1.0"

__all__ = [
    "authorize_price",
    "compute_price",
    "compute_price_payload",
    "get_active_fields",
    "validate_template",
    "compose_price",
    "quote_express_options",
    "Config",
    "load_config",
    "PricingError",
    "FormulaSyntaxError",
    "UnknownVariable",
    "DivisionByZero",
    "InvalidInput",
    "MissingRequiredField",
    "QuantityOutOfRange",
    "TemplateDefinitionError",
    "PriceMismatch",
    "evaluate",
    "extract_variables",
    "PriceBreakdown",
    "Template",
    "resolve",
    "load_template",
    "compute_active_fields",
]
