"""Typed errors raised by the pricing core.

Every error carries a machine-readable ``kind`` plus the offending field key or
formula identifier, so callers can render field-level messages instead of
opaque strings.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class PricingError(Exception):
    """Base class for every failure surfaced by the pricing core."""

    kind = "pricing_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        identifier: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.identifier = identifier

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.identifier is not None:
            payload["identifier"] = self.identifier
        return payload


class FormulaSyntaxError(PricingError):
    """The formula cannot be tokenized or parsed."""

    kind = "syntax_error"

    def __init__(self, message: str, *, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.position = position

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.position is not None:
            payload["position"] = self.position
        return payload


class UnknownVariable(PricingError):
    kind = "unknown_variable"

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown variable: {name}", identifier=name)
        self.name = name


class DivisionByZero(PricingError):
    """Evaluation produced a non-finite number (division by zero, overflow, NaN)."""

    kind = "division_by_zero"


class InvalidInput(PricingError):
    kind = "invalid_input"

    def __init__(self, key: str, message: str) -> None:
        super().__init__(message, field=key)
        self.key = key


class MissingRequiredField(PricingError):
    kind = "missing_required_field"

    def __init__(self, key: str) -> None:
        super().__init__(f"Required field missing: {key}", field=key)
        self.key = key


class QuantityOutOfRange(PricingError):
    kind = "quantity_out_of_range"

    def __init__(
        self,
        message: str,
        *,
        quantity: float,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
    ) -> None:
        super().__init__(message, field="quantity")
        self.quantity = quantity
        self.minimum = minimum
        self.maximum = maximum

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["quantity"] = self.quantity
        if self.minimum is not None:
            payload["minimum"] = self.minimum
        if self.maximum is not None:
            payload["maximum"] = self.maximum
        return payload


class TemplateDefinitionError(PricingError):
    """A raw template snapshot does not match the template schema."""

    kind = "template_definition"

    def __init__(self, message: str, problems: Optional[list] = None) -> None:
        super().__init__(message)
        self.problems = list(problems or [])

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.problems:
            payload["problems"] = list(self.problems)
        return payload


class PriceMismatch(PricingError):
    """A client-submitted total disagrees with the authoritative computation."""

    kind = "price_mismatch"

    def __init__(self, client_total: float, authoritative_total: float) -> None:
        super().__init__(
            f"Submitted total {client_total} does not match calculated total {authoritative_total}"
        )
        self.client_total = client_total
        self.authoritative_total = authoritative_total

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["clientTotal"] = self.client_total
        payload["authoritativeTotal"] = self.authoritative_total
        return payload


__all__ = [
    "PricingError",
    "FormulaSyntaxError",
    "UnknownVariable",
    "DivisionByZero",
    "InvalidInput",
    "MissingRequiredField",
    "QuantityOutOfRange",
    "TemplateDefinitionError",
    "PriceMismatch",
]
