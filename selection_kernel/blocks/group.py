"""
Group block — partitions proposals by a computed key.

Groups are side data: the block stores a list of ProposalGroup in its
output and passes the unpartitioned proposals through unchanged.
"""

from typing import Any, Dict, List

from selection_kernel.blocks.base import BlockConfigurationError
from selection_kernel.expression.evaluator import (
    evaluate_for_proposal,
    evaluate_path_or_expression,
    get_value_by_path,
    is_number,
    serialize_key,
)
from selection_kernel.models.blocks import (
    AggregationOperation,
    AggregationSpec,
    GroupBlock,
)
from selection_kernel.models.context import (
    BlockExecutionResult,
    ExecutionContext,
    ProposalGroup,
)


def _field_values(proposals: List[dict], field: str) -> List[Any]:
    return [get_value_by_path(p, field) for p in proposals]


def calculate_aggregation(proposals: List[dict], spec: AggregationSpec) -> Any:
    """Aggregate one group; a missing field yields 0 (count/sum/avg) or None (min/max)."""
    operation = spec.operation

    if operation == AggregationOperation.COUNT:
        return len(proposals)

    if operation == AggregationOperation.SUM:
        if not spec.field:
            return 0
        return sum(v for v in _field_values(proposals, spec.field) if is_number(v))

    if operation == AggregationOperation.AVG:
        if not spec.field or not proposals:
            return 0
        total = sum(v for v in _field_values(proposals, spec.field) if is_number(v))
        return total / len(proposals)

    if operation in (AggregationOperation.MIN, AggregationOperation.MAX):
        if not spec.field or not proposals:
            return None
        numeric = [v for v in _field_values(proposals, spec.field) if is_number(v)]
        if not numeric:
            return None
        return min(numeric) if operation == AggregationOperation.MIN else max(numeric)

    raise BlockConfigurationError(f"Unknown aggregation operation: {operation}")


class GroupExecutor:
    def execute(self, block: GroupBlock, context: ExecutionContext) -> BlockExecutionResult:
        keys: Dict[str, Any] = {}
        members: Dict[str, List[dict]] = {}

        # dicts keep first-seen order, so groups come out in input order
        for proposal in context.proposals:
            if isinstance(block.group_by, str):
                key = evaluate_path_or_expression(block.group_by, context.scoped_to(proposal))
            else:
                key = evaluate_for_proposal(block.group_by, proposal, context)
            key_string = serialize_key(key)
            if key_string not in members:
                keys[key_string] = key
                members[key_string] = []
            members[key_string].append(proposal)

        groups = []
        for key_string, proposals in members.items():
            aggregations = None
            if block.aggregations:
                aggregations = {
                    name: calculate_aggregation(proposals, spec)
                    for name, spec in block.aggregations.items()
                }
            groups.append(ProposalGroup(
                key=keys[key_string],
                proposals=proposals,
                aggregations=aggregations,
            ))

        return BlockExecutionResult(proposals=list(context.proposals), output=groups)
