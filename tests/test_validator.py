from __future__ import annotations

import pytest

from priceflow.models import DiscountTier
from priceflow.schema import load_template
from priceflow.validator import check_tier_coverage, validate_template


def test_valid_draft(banner_draft):
    report = validate_template(banner_draft)
    assert report.valid is True
    assert report.errors == ()
    assert report.warnings == ()
    assert report.variables == ("width_cm", "height_cm", "unit_m2_price")


def test_accepts_parsed_template(sticker_template):
    report = validate_template(sticker_template)
    assert report.valid is True
    assert report.warnings == ()


def test_unknown_identifier_is_listed(banner_draft):
    banner_draft["pricingFormula"] = "width_cm * height_cm * foo"
    report = validate_template(banner_draft)
    assert report.valid is False
    assert 'Unknown variable: "foo"' in report.errors
    assert "foo" in report.variables


def test_system_variables_are_known(banner_draft):
    banner_draft["pricingFormula"] = "base_price + quantity * width_cm * height_cm * unit_m2_price"
    assert validate_template(banner_draft).valid is True


def test_syntax_error(banner_draft):
    banner_draft["pricingFormula"] = "(width_cm * height_cm"
    report = validate_template(banner_draft)
    assert report.valid is False
    assert report.errors[0].startswith("Formula syntax error")
    assert report.variables == ()


def test_non_ascii_identifier_is_a_syntax_error(banner_draft):
    banner_draft["pricingFormula"] = "ár * 2"
    report = validate_template(banner_draft)
    assert report.valid is False
    assert report.errors[0].startswith("Formula syntax error")


def test_schema_problems_stop_further_checks(banner_draft):
    del banner_draft["pricingFormula"]
    banner_draft["sections"][0]["fields"][0]["key"] = "1width"
    report = validate_template(banner_draft)
    assert report.valid is False
    assert len(report.errors) == 2
    assert any("pricingFormula" in message for message in report.errors)
    assert any(message.startswith("sections/0/fields/0/key") for message in report.errors)


def test_non_numeric_field_in_formula_warns(banner_draft):
    banner_draft["sections"][0]["fields"].append({"key": "slogan", "type": "TEXT"})
    report = validate_template(banner_draft)
    assert report.valid is True
    assert any('"slogan"' in message and "not numeric" in message for message in report.warnings)


def test_text_field_referenced_by_formula_is_unknown(banner_draft):
    banner_draft["sections"][0]["fields"].append({"key": "slogan", "type": "TEXT"})
    banner_draft["pricingFormula"] += " + slogan"
    report = validate_template(banner_draft)
    assert 'Unknown variable: "slogan"' in report.errors


def test_unused_field_and_meta_collision_warn(banner_draft):
    banner_draft["sections"][0]["fields"].append({"key": "depth_cm", "type": "NUMBER"})
    banner_draft["pricingMeta"]["width_cm"] = 1
    report = validate_template(banner_draft)
    assert report.valid is True
    assert 'Field "depth_cm" is not used by the pricing formula' in report.warnings
    assert 'Field "width_cm" shadows the pricing meta value of the same name' in report.warnings


def test_rule_to_missing_field_warns(banner_draft):
    banner_draft["sections"][0]["fields"][1]["conditionalRules"] = {
        "showIf": {"field": "ghost", "operator": "equals", "value": 1}
    }
    report = validate_template(banner_draft)
    assert report.valid is True
    assert any('"ghost"' in message for message in report.warnings)


def test_self_and_cyclic_rules_are_errors(banner_draft):
    fields = banner_draft["sections"][0]["fields"]
    fields[0]["conditionalRules"] = {"showIf": {"field": "height_cm", "operator": "greaterThan", "value": 1}}
    fields[1]["conditionalRules"] = {"showIf": {"field": "width_cm", "operator": "greaterThan", "value": 1}}
    report = validate_template(banner_draft)
    assert report.valid is False
    cycles = [message for message in report.errors if "cycle" in message]
    assert len(cycles) == 1

    fields[1]["conditionalRules"] = {"showIf": {"field": "height_cm", "operator": "equals", "value": 1}}
    del fields[0]["conditionalRules"]
    report = validate_template(banner_draft)
    assert any("references itself" in message for message in report.errors)


def test_duplicate_keys(banner_draft):
    banner_draft["sections"].append(
        {"key": "size", "fields": [{"key": "width_cm", "type": "NUMBER"}]}
    )
    report = validate_template(banner_draft)
    assert 'Duplicate section key: "size"' in report.errors
    assert 'Duplicate field key: "width_cm"' in report.errors


def test_quantity_and_discount_bounds(banner_draft):
    banner_draft["minQuantity"] = 10
    banner_draft["maxQuantity"] = 5
    banner_draft["discountTiers"] = [{"minQty": 1, "maxQty": None, "discount": 150}]
    report = validate_template(banner_draft)
    assert report.valid is False
    assert "Minimum quantity 10 is greater than maximum quantity 5" in report.errors
    assert any("between 0 and 100" in message for message in report.errors)


def test_express_settings(banner_draft):
    banner_draft["hasExpressOption"] = True
    report = validate_template(banner_draft)
    assert "Express option is enabled but no express multiplier is set" in report.errors

    banner_draft["expressMultiplier"] = 1
    report = validate_template(banner_draft)
    assert report.valid is True
    assert any("Express multiplier 1" in message for message in report.warnings)


def test_tier_gap_is_rejected(banner_draft):
    banner_draft["discountTiers"] = [
        {"minQty": 1, "maxQty": 4, "discount": 0},
        {"minQty": 6, "maxQty": None, "discount": 5},
    ]
    report = validate_template(banner_draft)
    assert report.valid is False
    assert "Discount tiers leave quantities 5-5 without a tier" in report.errors


def test_tier_overlap_is_rejected(banner_draft):
    banner_draft["discountTiers"] = [
        {"minQty": 1, "maxQty": 10, "discount": 0},
        {"minQty": 5, "maxQty": None, "discount": 10},
    ]
    report = validate_template(banner_draft)
    assert "Discount tiers 1-10 and 5+ overlap" in report.errors


@pytest.mark.parametrize(
    "tiers, minimum, maximum, problems",
    [
        ([(1, 9, 0), (10, None, 10)], None, None, []),
        ([(10, None, 5)], 10, None, []),
        ([(1, 9, 0), (10, None, 10)], 5, 50, []),
        ([(1, 20, 0)], None, 50, ["Discount tiers leave quantities 21-50 without a tier"]),
        ([(1, 20, 0)], None, None, ["Discount tiers leave quantities 21+ without a tier"]),
        ([(5, None, 0)], None, None, ["Discount tiers leave quantities 1-4 without a tier"]),
        ([(1, 100, 0), (5, 10, 5)], None, None, ["Discount tiers 1-100 and 5-10 overlap"]),
        ([(1, None, 0), (1, 9, 5)], None, None, ["Discount tiers 1-9 and 1+ overlap"]),
        (
            [(8, 2, 0)],
            None,
            None,
            [
                "Discount tier 8-2 ends before it starts",
                "Discount tiers leave quantities 1+ without a tier",
            ],
        ),
        ([], 1, 10, []),
    ],
)
def test_tier_coverage(tiers, minimum, maximum, problems):
    parsed = tuple(DiscountTier(low, high, discount) for low, high, discount in tiers)
    assert check_tier_coverage(parsed, minimum, maximum) == problems


def test_report_dict(banner_draft):
    report = validate_template(load_template(banner_draft)).to_dict()
    assert report == {
        "valid": True,
        "errors": [],
        "warnings": [],
        "variables": ["width_cm", "height_cm", "unit_m2_price"],
    }
