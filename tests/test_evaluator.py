"""Tests for the Expression Evaluator."""

import logging
import math

import pytest

from selection_kernel.expression.evaluator import (
    ExpressionError,
    evaluate_expression,
    evaluate_for_proposal,
    get_value_by_path,
    is_truthy,
    set_value_by_path,
    strict_equals,
    to_display_string,
)
from selection_kernel.expression.regex_safety import is_safe_pattern
from selection_kernel.models.context import ExecutionContext, ProcessInfo
from selection_kernel.models.engagement import VoteAggregation


def _make_context(**kwargs) -> ExecutionContext:
    return ExecutionContext(**kwargs)


def _evaluate(data, proposal=None, **context_fields):
    context = _make_context(**context_fields)
    if proposal is not None:
        return evaluate_for_proposal(data, proposal, context)
    return evaluate_expression(data, context)


def _compare(operator, left, right):
    return _evaluate({"operator": operator, "left": {"value": left}, "right": {"value": right}})


def _arithmetic(operator, *operands):
    return _evaluate({"operator": operator, "operands": [{"value": v} for v in operands]})


def _call(function, *arguments):
    return _evaluate({"function": function, "arguments": [{"value": v} for v in arguments]})


class TestFieldAccess:
    def test_nested_path_on_proposal(self):
        proposal = {"id": "p1", "voteData": {"likesCount": 5}}
        assert _evaluate({"field": "voteData.likesCount"}, proposal=proposal) == 5

    def test_missing_intermediate_is_null(self):
        proposal = {"id": "p1"}
        assert _evaluate({"field": "metadata.score.value"}, proposal=proposal) is None

    def test_list_index_segment(self):
        proposal = {"tags": ["red", "green"]}
        assert _evaluate({"field": "tags.1"}, proposal=proposal) == "green"
        assert _evaluate({"field": "tags.5"}, proposal=proposal) is None

    def test_unscoped_access_walks_context(self):
        """Without a proposal in scope, paths resolve against the context by alias."""
        context_fields = {
            "vote_data": {"p1": VoteAggregation(proposal_id="p1", likes_count=3)},
            "process": ProcessInfo(instance_id="inst_1", process_id="proc_1"),
        }
        assert _evaluate({"field": "voteData.p1.likesCount"}, **context_fields) == 3
        assert _evaluate({"field": "process.instanceId"}, **context_fields) == "inst_1"

    def test_string_length_and_index(self):
        proposal = {"title": "hello"}
        assert _evaluate({"field": "title.length"}, proposal=proposal) == 5
        assert _evaluate({"field": "title.0"}, proposal=proposal) == "h"
        assert _evaluate({"field": "title.9"}, proposal=proposal) is None
        assert _evaluate({"field": "title.upper"}, proposal=proposal) is None

    def test_filter_on_string_length(self):
        condition = {
            "operator": "greaterThan",
            "left": {"field": "title.length"},
            "right": {"value": 3},
        }
        assert _evaluate(condition, proposal={"title": "hello"}) is True
        assert _evaluate(condition, proposal={"title": "hi"}) is False

    def test_unscoped_proposals_length(self):
        proposals = [{"id": "p1"}, {"id": "p2"}]
        assert _evaluate({"field": "proposals.length"}, proposals=proposals) == 2

    def test_evaluation_does_not_mutate(self):
        proposal = {"id": "p1", "metadata": {"score": 1}}
        _evaluate(
            {"operator": "add", "operands": [{"field": "metadata.score"}, {"value": 1}]},
            proposal=proposal,
        )
        assert proposal == {"id": "p1", "metadata": {"score": 1}}


class TestComparisons:
    def test_strict_equality(self):
        assert _compare("equals", 1, 1.0) is True
        assert _compare("equals", 1, "1") is False
        assert _compare("equals", None, None) is True
        assert _compare("equals", True, 1) is False
        assert _compare("equals", [1, 2], [1, 2]) is True
        assert _compare("notEquals", "a", "b") is True

    def test_ordering(self):
        assert _compare("greaterThan", 5, 3) is True
        assert _compare("lessThanOrEquals", 3, 3) is True
        assert _compare("lessThan", "apple", "banana") is True

    def test_ordering_across_types_is_false(self):
        assert _compare("greaterThan", 5, "3") is False
        assert _compare("lessThan", None, 1) is False
        assert _compare("greaterThanOrEquals", 1, None) is False

    def test_in_requires_array(self):
        assert _compare("in", "b", ["a", "b"]) is True
        assert _compare("in", "b", "abc") is False
        assert _compare("notIn", "z", ["a", "b"]) is True
        assert _compare("notIn", "z", "abc") is False

    def test_contains(self):
        assert _compare("contains", "hello world", "world") is True
        assert _compare("contains", ["a", "b"], "b") is True
        assert _compare("contains", ["1"], 1) is False
        assert _compare("contains", 42, 4) is False

    def test_starts_and_ends_with(self):
        assert _compare("startsWith", "123abc", 123) is True
        assert _compare("endsWith", "report.pdf", ".pdf") is True
        assert _compare("startsWith", None, "a") is False

    def test_matches_searches_anywhere(self):
        assert _compare("matches", "budget-2024-draft", r"\d{4}") is True
        assert _compare("matches", "no digits", r"\d+") is False

    def test_unsafe_pattern_is_false_and_logged(self, caplog):
        with caplog.at_level(logging.ERROR, logger="selection_kernel.expression.evaluator"):
            assert _compare("matches", "aaaaaaaaaaaaaaaaaaaaaaa!", "(a+)+$") is False
        assert "Unsafe regex pattern" in caplog.text

    def test_invalid_pattern_is_false_and_logged(self, caplog):
        with caplog.at_level(logging.ERROR, logger="selection_kernel.expression.evaluator"):
            assert _compare("matches", "abc", "(abc") is False
        assert "Invalid regex pattern" in caplog.text

    def test_unknown_operator_names_it(self):
        with pytest.raises(ExpressionError, match="approximately"):
            _compare("approximately", 1, 1)


class TestLogical:
    def test_and_or_not(self):
        assert _evaluate({"and": [{"value": True}, {"value": 1}]}) is True
        assert _evaluate({"or": [{"value": False}, {"value": 0}]}) is False
        assert _evaluate({"not": {"value": ""}}) is True

    def test_empty_quantifiers(self):
        assert _evaluate({"and": []}) is True
        assert _evaluate({"or": []}) is False

    def test_empty_collections_are_truthy(self):
        assert _evaluate({"not": {"value": []}}) is False
        assert _evaluate({"not": {"value": {}}}) is False

    def test_short_circuits(self):
        """The unknown function in the second operand is never reached."""
        expr = {"or": [{"value": True}, {"function": "nope", "arguments": []}]}
        assert _evaluate(expr) is True


class TestArithmetic:
    def test_folds_left_to_right(self):
        assert _arithmetic("add", 1, 2, 3) == 6
        assert _arithmetic("subtract", 10, 3, 2) == 5
        assert _arithmetic("multiply", 2, 3, 4) == 24
        assert _arithmetic("divide", 20, 2, 5) == 2
        assert _arithmetic("power", 2, 10) == 1024

    def test_non_numeric_operands_are_zero(self):
        assert _arithmetic("add", 5, "x", None, True) == 5

    def test_division_by_zero_is_zero(self):
        assert _arithmetic("divide", 10, 0) == 0
        assert _arithmetic("modulo", 10, 0) == 0

    def test_modulo_keeps_dividend_sign(self):
        assert _arithmetic("modulo", -7, 3) == -1
        assert _arithmetic("modulo", 7, -3) == 1

    def test_power_outside_real_domain(self):
        assert math.isnan(_arithmetic("power", -8, 0.5))

    def test_modulo_of_infinity_is_nan(self):
        overflow = {"operator": "power", "operands": [{"value": 10}, {"value": 400}]}
        result = _evaluate({"operator": "modulo", "operands": [overflow, {"value": 3}]})
        assert math.isnan(result)
        assert _arithmetic("modulo", 5, math.inf) == 5

    def test_empty_operands(self):
        assert _arithmetic("add") == 0
        assert _arithmetic("multiply") == 0

    def test_unknown_operator(self):
        with pytest.raises(ExpressionError, match="Unknown arithmetic operator: root"):
            _arithmetic("root", 4)


class TestFunctions:
    def test_aggregates(self):
        assert _call("sum", 1, 2, "x") == 3
        assert _call("avg", 2, 4) == 3
        assert _call("avg") == 0
        assert _call("count", 1, None, "a") == 3
        assert _call("min", 3, 1, 2) == 1
        assert _call("max", 3, "9", 2) == 3

    def test_min_max_without_numbers(self):
        assert _call("min") is None
        assert _call("max", "a", None) is None

    def test_if(self):
        assert _call("if", True, "yes", "no") == "yes"
        assert _call("if", [], "yes", "no") == "yes"
        assert _call("if", 0, "yes", "no") == "no"

    def test_if_arity(self):
        with pytest.raises(ExpressionError, match="3 arguments"):
            _call("if", True, "yes")

    def test_coalesce(self):
        assert _call("coalesce", None, 0, 5) == 0
        assert _call("coalesce", None, None) is None

    def test_concat_string_conversion(self):
        assert _call("concat", "a", 1, True, None, 2.0) == "a1truenull2"
        assert _call("concat", [1, 2], "-", 1.5) == "1,2-1.5"

    def test_string_functions(self):
        assert _call("length", "hello") == 5
        assert _call("length", [1, 2, 3]) == 3
        assert _call("length", 42) == 0
        assert _call("trim", "  padded ") == "padded"
        assert _call("toLowerCase", "MiXeD") == "mixed"
        assert _call("toUpperCase", "MiXeD") == "MIXED"
        assert _call("toUpperCase", 7) == ""

    def test_numeric_functions(self):
        assert _call("abs", -4) == 4
        assert _call("round", 2.5) == 3
        assert _call("round", -2.5) == -2
        assert _call("floor", 2.7) == 2
        assert _call("ceil", 2.1) == 3
        assert _call("abs", "x") == 0

    def test_numeric_functions_pass_non_finite_through(self):
        assert math.isnan(_call("round", math.nan))
        assert math.isnan(_call("floor", math.nan))
        assert math.isnan(_call("ceil", math.nan))
        assert _call("floor", math.inf) == math.inf
        assert _call("ceil", -math.inf) == -math.inf
        assert _call("round", math.inf) == math.inf
        assert _call("abs", -math.inf) == math.inf

    def test_rounding_an_overflowed_power(self):
        overflow = {"operator": "power", "operands": [{"value": 10}, {"value": 400}]}
        assert _evaluate({"function": "ceil", "arguments": [overflow]}) == math.inf

    def test_unknown_function(self):
        with pytest.raises(ExpressionError, match="Unknown function: median"):
            _call("median", 1, 2)


class TestVariables:
    def test_strips_dollar_prefix(self):
        assert _evaluate({"variable": "$threshold"}, variables={"threshold": 5}) == 5
        assert _evaluate({"variable": "threshold"}, variables={"threshold": 5}) == 5

    def test_falls_back_to_outputs(self):
        outputs = {"shortlist": [{"id": "p1"}]}
        assert _evaluate({"variable": "$shortlist"}, outputs=outputs) == [{"id": "p1"}]

    def test_variables_shadow_outputs(self):
        result = _evaluate({"variable": "x"}, variables={"x": 1}, outputs={"x": 2})
        assert result == 1

    def test_missing_is_null(self):
        assert _evaluate({"variable": "$missing"}) is None


class TestRawData:
    def test_unknown_shape(self):
        with pytest.raises(ExpressionError, match="Unknown expression type"):
            _evaluate({"bogus": True})


class TestValueHelpers:
    def test_truthiness(self):
        assert is_truthy([]) is True
        assert is_truthy({}) is True
        assert is_truthy(float("nan")) is False
        assert is_truthy("") is False
        assert is_truthy("0") is True

    def test_strict_equals_categories(self):
        assert strict_equals(0, False) is False
        assert strict_equals({"a": 1}, {"a": 1}) is True

    def test_display_string(self):
        assert to_display_string(None) == "null"
        assert to_display_string(3.0) == "3"
        assert to_display_string({"a": 1}) == "[object Object]"

    def test_get_value_by_path(self):
        assert get_value_by_path({"a": {"b": [10, 20]}}, "a.b.0") == 10
        assert get_value_by_path(None, "a") is None

    def test_set_value_creates_intermediates(self):
        target = {"metadata": "not a dict"}
        set_value_by_path(target, "metadata.scores.final", 0.9)
        assert target == {"metadata": {"scores": {"final": 0.9}}}

    def test_set_value_skips_empty_segments(self):
        target = {}
        set_value_by_path(target, "a..b", 1)
        assert target == {"a": {"b": 1}}


class TestRegexSafety:
    def test_simple_patterns_are_safe(self):
        assert is_safe_pattern(r"^[a-z]+$") is True
        assert is_safe_pattern(r"\d+\.\d+") is True
        assert is_safe_pattern(r"(a|b)*") is True
        assert is_safe_pattern(r"(?:ab){2,3}") is True
        assert is_safe_pattern(r"[+*]+") is True
        assert is_safe_pattern(r"a+?b*") is True

    def test_nested_quantifiers_rejected(self):
        assert is_safe_pattern(r"(a+)+") is False
        assert is_safe_pattern(r"(a*)*b") is False
        assert is_safe_pattern(r"((ab)+c)*") is False
        assert is_safe_pattern(r"(\w{2,5})+") is False

    def test_repetition_limit(self):
        assert is_safe_pattern("a?" * 25) is True
        assert is_safe_pattern("a?" * 26) is False
        assert is_safe_pattern("a?" * 4, limit=3) is False
