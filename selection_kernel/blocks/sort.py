"""Sort block — stable multi-key ordering over heterogeneous values."""

from functools import cmp_to_key
from typing import Any, List, Tuple

from selection_kernel.expression.evaluator import (
    evaluate_path_or_expression,
    serialize_key,
    type_name,
)
from selection_kernel.models.blocks import SortBlock, SortCriterion, SortOrder
from selection_kernel.models.context import BlockExecutionResult, ExecutionContext


def _sign(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def compare_present(a: Any, b: Any) -> int:
    """
    Total order over non-null values.

    Values of different types order by type name so mixed columns still sort
    deterministically; arrays and objects order by their serialization.
    """
    type_a, type_b = type_name(a), type_name(b)
    if type_a != type_b:
        return _sign(type_a, type_b)
    if type_a in ("number", "string", "boolean"):
        return _sign(a, b)
    return _sign(serialize_key(a), serialize_key(b))


def compare_for_criterion(a: Any, b: Any, criterion: SortCriterion) -> int:
    """Nulls go first or last per nulls_first regardless of order; order flips the rest."""
    if a is None and b is None:
        return 0
    if a is None:
        return -1 if criterion.nulls_first else 1
    if b is None:
        return 1 if criterion.nulls_first else -1

    result = compare_present(a, b)
    return -result if criterion.order == SortOrder.DESC else result


class SortExecutor:
    def execute(self, block: SortBlock, context: ExecutionContext) -> BlockExecutionResult:
        if not block.sort_by:
            return BlockExecutionResult(proposals=list(context.proposals))

        decorated: List[Tuple[List[Any], dict]] = []
        for proposal in context.proposals:
            scoped = context.scoped_to(proposal)
            keys = [
                evaluate_path_or_expression(criterion.field, scoped)
                for criterion in block.sort_by
            ]
            decorated.append((keys, proposal))

        def compare(left: Tuple[List[Any], dict], right: Tuple[List[Any], dict]) -> int:
            for i, criterion in enumerate(block.sort_by):
                result = compare_for_criterion(left[0][i], right[0][i], criterion)
                if result:
                    return result
            return 0

        # sorted() is stable, so full ties keep input order
        ordered = sorted(decorated, key=cmp_to_key(compare))
        return BlockExecutionResult(proposals=[proposal for _, proposal in ordered])
