from __future__ import annotations

import pytest

from priceflow.errors import DivisionByZero, FormulaSyntaxError, UnknownVariable
from priceflow.expression import evaluate, extract_variables, parse, try_formula


@pytest.mark.parametrize(
    "formula, expected",
    [
        ("2 + 3 * 4", 14.0),
        ("(2 + 3) * 4", 20.0),
        ("2 ^ 3 ^ 2", 512.0),
        ("-2 ^ 2", -4.0),
        ("2 ^ -1", 0.5),
        ("--3", 3.0),
        ("+3", 3.0),
        ("10 / 4", 2.5),
        (".5 + 1e2", 100.5),
        ("1 == 1", 1.0),
        ("2 != 2", 0.0),
        ("3 <= 2", 0.0),
        ("1 < 2 ? 10 : 20", 10.0),
    ],
)
def test_operator_precedence_and_literals(formula, expected):
    assert evaluate(formula, {}) == expected


@pytest.mark.parametrize(
    "formula, expected",
    [
        ("round(2.5)", 3.0),
        ("round(-2.5)", -3.0),
        ("round(1.005, 2)", 1.01),
        ("floor(2.7)", 2.0),
        ("ceil(2.1)", 3.0),
        ("min(3, 1, 2)", 1.0),
        ("max(3, 1, 2)", 3.0),
        ("abs(-4)", 4.0),
        ("pow(2, 10)", 1024.0),
        ("sqrt(16)", 4.0),
        ("if(0, 1, 2)", 2.0),
    ],
)
def test_allowed_functions(formula, expected):
    assert evaluate(formula, {}) == expected


def test_variables_are_case_sensitive():
    assert evaluate("a * b", {"a": 2, "b": 3.5}) == 7.0
    with pytest.raises(UnknownVariable):
        evaluate("Width", {"width": 1})


def test_unknown_variable_is_typed():
    with pytest.raises(UnknownVariable) as excinfo:
        evaluate("foo * 2", {})
    assert excinfo.value.name == "foo"
    assert excinfo.value.to_dict() == {
        "kind": "unknown_variable",
        "message": "Unknown variable: foo",
        "identifier": "foo",
    }


def test_branches_not_taken_are_not_evaluated():
    assert evaluate("if(1, 5, missing)", {}) == 5.0
    assert evaluate("qty >= 10 ? 5 : missing", {"qty": 12}) == 5.0
    with pytest.raises(UnknownVariable):
        evaluate("qty >= 10 ? 5 : missing", {"qty": 2})


@pytest.mark.parametrize(
    "formula, variables",
    [
        ("1 / 0", {}),
        ("1 / (a - a)", {"a": 1}),
        ("sqrt(-1)", {}),
        ("10 ^ 400", {}),
        ("x * 2", {"x": float("inf")}),
    ],
)
def test_non_finite_results_raise(formula, variables):
    with pytest.raises(DivisionByZero):
        evaluate(formula, variables)


@pytest.mark.parametrize(
    "formula",
    [
        "",
        "   ",
        "(1 + 2",
        "1 + 2)",
        "1 +",
        "2 ** 3",
        "a $ b",
        "__import__('os')",
        "exp(1)",
        "round()",
        "pow(1)",
        "1 2",
        "a ? 1",
        "ár * 2",
        "x²",
        "x * ²",
        "1e400",
    ],
)
def test_malformed_formulas_raise_syntax_error(formula):
    with pytest.raises(FormulaSyntaxError):
        parse(formula)


def test_syntax_error_reports_position():
    with pytest.raises(FormulaSyntaxError) as excinfo:
        parse("1 + )")
    assert excinfo.value.position == 4
    assert excinfo.value.to_dict()["kind"] == "syntax_error"


def test_round_keeps_large_values():
    assert evaluate("round(x)", {"x": 1e30}) == 1e30
    assert evaluate("round(x, 2)", {"x": 1e27}) == 1e27


def test_unknown_function_message():
    with pytest.raises(FormulaSyntaxError, match=r"Unknown or forbidden function: exp\(\)"):
        parse("exp(1)")


def test_length_token_and_depth_limits():
    with pytest.raises(FormulaSyntaxError, match="characters"):
        parse("1+" * 1000 + "1")
    with pytest.raises(FormulaSyntaxError, match="tokens"):
        parse("1+" * 300 + "1")

    nested = "(" * 40 + "1" + ")" * 40
    with pytest.raises(FormulaSyntaxError, match="nesting"):
        parse(nested)
    assert parse(nested, max_depth=64).evaluate({}) == 1.0


def test_parsed_formula_is_reusable():
    formula = parse("x * 2")
    assert formula.evaluate({"x": 1}) == 2.0
    assert formula.evaluate({"x": 3}) == 6.0
    assert formula.variables == ("x",)


def test_extract_variables_in_first_appearance_order():
    assert extract_variables("b + a * b + round(c)") == ["b", "a", "c"]
    assert extract_variables("2 * 3") == []


def test_try_formula_success_and_failures():
    ok = try_formula("w * h", {"w": 2, "h": "3"})
    assert ok == {"success": True, "result": 6.0, "usedVariables": ["w", "h"]}

    failed = try_formula("w / 0", {"w": 1})
    assert failed["success"] is False
    assert failed["kind"] == "division_by_zero"

    assert try_formula("(", {})["kind"] == "syntax_error"
    assert try_formula("w", {})["kind"] == "unknown_variable"
    assert try_formula("w", {"w": "abc"})["kind"] == "invalid_input"
