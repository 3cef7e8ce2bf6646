import argparse
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from dotenv import load_dotenv

from .api import compute_price, get_active_fields, validate_template
from .config import ROUNDING_MODES, Config, load_config
from .errors import PricingError
from .reporting import breakdown_frame, make_summary_text
from .schema import load_template_file

logger = logging.getLogger(__name__)

EXIT_INVALID = 1
EXIT_PRICING_ERROR = 2


def _read_json(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def _print_error(exc: PricingError) -> int:
    print(json.dumps({"ok": False, "error": exc.to_dict()}, indent=2, ensure_ascii=False))
    return EXIT_PRICING_ERROR


def run_validate(args: argparse.Namespace, cfg: Config) -> int:
    draft = _read_json(args.template)
    report = validate_template(draft, config=cfg)
    for message in report["errors"]:
        logger.info("ERROR   %s", message)
    for message in report["warnings"]:
        logger.info("WARNING %s", message)
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0 if report["valid"] else EXIT_INVALID


def run_quote(args: argparse.Namespace, cfg: Config) -> int:
    try:
        template = load_template_file(args.template)
        breakdown = compute_price(
            template,
            _read_json(args.inputs),
            args.quantity,
            base_price=args.base_price,
            is_express=True if args.express else None,
            config=cfg,
        )
    except PricingError as exc:
        return _print_error(exc)

    if args.json:
        print(json.dumps({"ok": True, **breakdown.to_dict()}, indent=2, ensure_ascii=False))
    else:
        print(make_summary_text(breakdown), end="")
    if args.csv:
        out = Path(args.csv)
        out.parent.mkdir(parents=True, exist_ok=True)
        breakdown_frame(breakdown).to_csv(out, index=False)
        logger.info("Breakdown written to %s", out)
    return 0


def run_fields(args: argparse.Namespace, cfg: Config) -> int:
    try:
        template = load_template_file(args.template)
    except PricingError as exc:
        return _print_error(exc)
    active = get_active_fields(template, _read_json(args.inputs))
    for field in template.iter_fields():
        if field.key in active:
            print(field.key)
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate pricing templates and compute prices")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")
    parser.add_argument("--currency-decimals", type=int, help="Decimals of the rounded total")
    parser.add_argument("--rounding", choices=ROUNDING_MODES, help="Rounding mode of the total")
    parser.add_argument("--no-itemize", action="store_true", help="Omit per-option surcharge lines")
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="Check a template definition")
    validate.add_argument("template", help="Template JSON file")
    validate.set_defaults(handler=run_validate)

    quote = sub.add_parser("quote", help="Compute the price of a configured item")
    quote.add_argument("template", help="Template JSON file")
    quote.add_argument("--inputs", help="JSON file with the submitted field values")
    quote.add_argument("--quantity", type=int, default=1, help="Ordered quantity")
    quote.add_argument("--express", action="store_true", help="Request express production")
    quote.add_argument("--base-price", type=float, help="Product base price exposed as base_price")
    quote.add_argument("--csv", help="Write the breakdown table to this CSV file")
    quote.add_argument("--json", action="store_true", help="Print the breakdown as JSON")
    quote.set_defaults(handler=run_quote)

    fields = sub.add_parser("fields", help="List the fields shown for the given inputs")
    fields.add_argument("template", help="Template JSON file")
    fields.add_argument("--inputs", help="JSON file with the submitted field values")
    fields.set_defaults(handler=run_fields)
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(Path.cwd() / ".env")
    args = parse_args(argv)
    runtime_cfg = load_config(os.environ, args)
    log_level = logging.DEBUG if runtime_cfg.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")
    try:
        return args.handler(args, runtime_cfg)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("ERROR   %s", exc)
        return EXIT_PRICING_ERROR


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
