from __future__ import annotations

import os
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Mapping, Optional

from .expression import MAX_DEPTH, MAX_FORMULA_LENGTH, MAX_TOKENS

_BOOLEAN_TRUE = {"1", "true", "yes", "on"}
_BOOLEAN_FALSE = {"0", "false", "no", "off"}
ROUNDING_MODES = ("HALF_UP", "HALF_EVEN")


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from environment variables and CLI options."""

    currency_decimals: int = 2
    rounding: str = "HALF_UP"
    itemize_surcharges: bool = True
    max_formula_length: int = MAX_FORMULA_LENGTH
    max_formula_tokens: int = MAX_TOKENS
    max_formula_depth: int = MAX_DEPTH
    price_tolerance: float = 0.0
    verbose: bool = False

    @property
    def formula_limits(self) -> dict:
        return {
            "max_length": self.max_formula_length,
            "max_tokens": self.max_formula_tokens,
            "max_depth": self.max_formula_depth,
        }


DEFAULT_CONFIG = Config()


def _to_int(value: object | None) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _to_float(value: object | None) -> Optional[float]:
    if value is None:
        return None
    text = str(value).replace(",", ".").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _flag(value: object | None, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _BOOLEAN_TRUE:
        return True
    if text in _BOOLEAN_FALSE:
        return False
    return default


def _rounding(value: object | None) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().upper().replace("-", "_")
    if text in {"BANKERS", "BANKER"}:
        text = "HALF_EVEN"
    return text if text in ROUNDING_MODES else None


def _namespace(cli_args: object | None) -> SimpleNamespace:
    if cli_args is None:
        return SimpleNamespace()
    if isinstance(cli_args, SimpleNamespace):
        return cli_args
    if hasattr(cli_args, "__dict__"):
        return SimpleNamespace(**{k: v for k, v in vars(cli_args).items()})
    return SimpleNamespace()


def load_config(env: Mapping[str, str], cli_args: object | None = None) -> Config:
    """Build a runtime :class:`Config` from environment variables and CLI options."""

    defaults = DEFAULT_CONFIG
    currency_decimals = _to_int(env.get("PRICEFLOW_CURRENCY_DECIMALS"))
    if currency_decimals is None or not 0 <= currency_decimals <= 6:
        currency_decimals = defaults.currency_decimals
    rounding = _rounding(env.get("PRICEFLOW_ROUNDING")) or defaults.rounding
    itemize_surcharges = _flag(env.get("PRICEFLOW_ITEMIZE_SURCHARGES"), defaults.itemize_surcharges)
    max_formula_length = _to_int(env.get("PRICEFLOW_MAX_FORMULA_LENGTH")) or defaults.max_formula_length
    max_formula_tokens = _to_int(env.get("PRICEFLOW_MAX_FORMULA_TOKENS")) or defaults.max_formula_tokens
    max_formula_depth = _to_int(env.get("PRICEFLOW_MAX_FORMULA_DEPTH")) or defaults.max_formula_depth
    price_tolerance = _to_float(env.get("PRICEFLOW_PRICE_TOLERANCE"))
    if price_tolerance is None or price_tolerance < 0:
        price_tolerance = defaults.price_tolerance
    verbose = _flag(env.get("PRICEFLOW_VERBOSE"))

    cli_ns = _namespace(cli_args)
    if getattr(cli_ns, "currency_decimals", None) is not None:
        currency_decimals = max(0, min(6, int(cli_ns.currency_decimals)))
    if getattr(cli_ns, "rounding", None):
        rounding = _rounding(cli_ns.rounding) or rounding
    if getattr(cli_ns, "no_itemize", False):
        itemize_surcharges = False
    if getattr(cli_ns, "verbose", False):
        verbose = bool(cli_ns.verbose)

    return Config(
        currency_decimals=currency_decimals,
        rounding=rounding,
        itemize_surcharges=itemize_surcharges,
        max_formula_length=max(1, max_formula_length),
        max_formula_tokens=max(1, max_formula_tokens),
        max_formula_depth=max(1, max_formula_depth),
        price_tolerance=price_tolerance,
        verbose=verbose,
    )


def config_from_env() -> Config:
    return load_config(os.environ, None)


__all__ = ["Config", "DEFAULT_CONFIG", "ROUNDING_MODES", "load_config", "config_from_env"]
