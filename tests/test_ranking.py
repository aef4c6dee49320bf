"""Tests for the ranking blocks: sort, score and group."""

import pytest

from selection_kernel.blocks.base import BlockConfigurationError
from selection_kernel.blocks.group import GroupExecutor, calculate_aggregation
from selection_kernel.blocks.score import ScoreExecutor, normalize_values
from selection_kernel.blocks.sort import SortExecutor, compare_present
from selection_kernel.models.blocks import AggregationSpec, parse_block
from selection_kernel.models.context import ExecutionContext, ProposalGroup


def _make_context(proposals, **kwargs) -> ExecutionContext:
    return ExecutionContext(proposals=proposals, **kwargs)


def _ids(proposals) -> list:
    return [p["id"] for p in proposals]


def _sort(proposals, *criteria):
    block = parse_block({"id": "s", "type": "sort", "sortBy": list(criteria)})
    return SortExecutor().execute(block, _make_context(proposals)).proposals


def _score(proposals, formula, score_field="score"):
    block = parse_block({
        "id": "sc",
        "type": "score",
        "scoreField": score_field,
        "formula": formula,
    })
    return ScoreExecutor().execute(block, _make_context(proposals)).proposals


class TestSortExecutor:
    def setup_method(self):
        self.proposals = [
            {"id": "a", "score": 2, "category": "x"},
            {"id": "b", "score": None, "category": "y"},
            {"id": "c", "score": 5, "category": "x"},
            {"id": "d", "score": 2, "category": "y"},
        ]

    def test_ascending_nulls_last(self):
        assert _ids(_sort(self.proposals, {"field": "score"})) == ["a", "d", "c", "b"]

    def test_descending_keeps_nulls_last(self):
        ordered = _sort(self.proposals, {"field": "score", "order": "desc"})
        assert _ids(ordered) == ["c", "a", "d", "b"]

    def test_nulls_first(self):
        ordered = _sort(self.proposals, {"field": "score", "order": "desc", "nullsFirst": True})
        assert _ids(ordered) == ["b", "c", "a", "d"]

    def test_ties_fall_through_to_next_key(self):
        ordered = _sort(
            self.proposals,
            {"field": "score", "order": "desc"},
            {"field": "category", "order": "desc"},
        )
        assert _ids(ordered) == ["c", "d", "a", "b"]

    def test_stable_for_full_ties(self):
        """Proposals equal on every sort key keep their input order."""
        ordered = _sort(self.proposals, {"field": "category"})
        assert _ids(ordered) == ["a", "c", "b", "d"]

    def test_mixed_types_order_by_type_name(self):
        proposals = [
            {"id": "s", "v": "10"},
            {"id": "n", "v": 3},
            {"id": "b", "v": True},
        ]
        assert _ids(_sort(proposals, {"field": "v"})) == ["b", "n", "s"]

    def test_expression_key(self):
        ordered = _sort(self.proposals, {
            "field": {"operator": "multiply", "operands": [{"field": "score"}, {"value": -1}]},
        })
        # b has no score, so its key is 0 rather than null
        assert _ids(ordered) == ["c", "a", "d", "b"]

    def test_empty_sort_by_passes_through(self):
        assert _sort(self.proposals) == self.proposals

    def test_compare_present_objects(self):
        assert compare_present({"a": 1}, {"a": 2}) < 0
        assert compare_present([1], [1]) == 0


class TestScoreExecutor:
    def test_normalized_criterion(self):
        proposals = [{"id": "p1", "votes": 0}, {"id": "p2", "votes": 5}, {"id": "p3", "votes": 10}]
        scored = _score(
            proposals,
            [{"field": "votes", "weight": 1, "normalize": True}],
            score_field="metadata.finalScore",
        )
        assert [p["metadata"]["finalScore"] for p in scored] == [0, 0.5, 1]
        assert "metadata" not in proposals[0]

    def test_single_proposal_normalizes_to_half(self):
        scored = _score([{"id": "p1", "votes": 7}], [{"field": "votes", "weight": 1, "normalize": True}])
        assert scored[0]["score"] == 0.5

    def test_invert_after_normalize(self):
        proposals = [{"id": "p1", "age": 1}, {"id": "p2", "age": 3}]
        scored = _score(proposals, [
            {"field": "age", "weight": 2, "normalize": True, "invert": True},
        ])
        assert [p["score"] for p in scored] == [2, 0]

    def test_weighted_sum(self):
        proposals = [
            {"id": "p1", "likes": 0, "approval": 1.0},
            {"id": "p2", "likes": 10, "approval": 0.5},
        ]
        scored = _score(proposals, [
            {"field": "likes", "weight": 0.6, "normalize": True},
            {"expression": {"field": "approval"}, "weight": 0.4},
        ])
        assert scored[0]["score"] == pytest.approx(0.4)
        assert scored[1]["score"] == pytest.approx(0.8)

    def test_single_expression_formula(self):
        proposals = [{"id": "p1", "likes": 3}, {"id": "p2"}]
        scored = _score(proposals, {
            "operator": "multiply",
            "operands": [{"field": "likes"}, {"value": 2}],
        })
        assert [p["score"] for p in scored] == [6, 0]

    def test_non_numeric_values_count_as_zero(self):
        proposals = [{"id": "p1", "likes": "many"}, {"id": "p2", "likes": 4}]
        scored = _score(proposals, [{"field": "likes", "weight": 1}])
        assert [p["score"] for p in scored] == [0, 4]

    def test_normalize_values(self):
        assert normalize_values([]) == []
        assert normalize_values([2, 2]) == [0.5, 0.5]
        assert normalize_values([1, 2, 3]) == [0, 0.5, 1]


class TestGroupExecutor:
    def setup_method(self):
        self.proposals = [
            {"id": "p1", "category": "parks", "budget": 100},
            {"id": "p2", "category": "roads", "budget": 300},
            {"id": "p3", "category": "parks", "budget": 50},
            {"id": "p4", "budget": 10},
        ]

    def test_groups_in_first_seen_order(self):
        block = parse_block({
            "id": "g",
            "type": "group",
            "groupBy": "category",
            "aggregations": {
                "n": {"operation": "count"},
                "total": {"operation": "sum", "field": "budget"},
                "mean": {"operation": "avg", "field": "budget"},
                "largest": {"operation": "max", "field": "budget"},
            },
        })
        result = GroupExecutor().execute(block, _make_context(self.proposals))

        groups = result.output
        assert [g.key for g in groups] == ["parks", "roads", None]
        assert all(isinstance(g, ProposalGroup) for g in groups)
        assert _ids(groups[0].proposals) == ["p1", "p3"]
        assert groups[0].aggregations == {"n": 2, "total": 150, "mean": 75, "largest": 100}

    def test_passes_proposals_through(self):
        block = parse_block({"id": "g", "type": "group", "groupBy": "category"})
        result = GroupExecutor().execute(block, _make_context(self.proposals))
        assert result.proposals == self.proposals
        assert result.output[0].aggregations is None

    def test_expression_key(self):
        block = parse_block({
            "id": "g",
            "type": "group",
            "groupBy": {
                "operator": "greaterThan",
                "left": {"field": "budget"},
                "right": {"value": 75},
            },
        })
        groups = GroupExecutor().execute(block, _make_context(self.proposals)).output
        assert [(g.key, _ids(g.proposals)) for g in groups] == [
            (True, ["p1", "p2"]),
            (False, ["p3", "p4"]),
        ]


class TestCalculateAggregation:
    def test_missing_field_defaults(self):
        proposals = [{"id": "p1"}]
        assert calculate_aggregation(proposals, AggregationSpec(operation="sum")) == 0
        assert calculate_aggregation(proposals, AggregationSpec(operation="avg")) == 0
        assert calculate_aggregation(proposals, AggregationSpec(operation="min")) is None
        assert calculate_aggregation(
            proposals, AggregationSpec(operation="max", field="budget")
        ) is None

    def test_unknown_operation(self):
        spec = AggregationSpec.model_construct(operation="median", field="x")
        with pytest.raises(BlockConfigurationError, match="median"):
            calculate_aggregation([{"x": 1}], spec)
