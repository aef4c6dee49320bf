"""Merge block — combines named outputs into one proposal set."""

from typing import Any, Dict, List

from selection_kernel.blocks.base import BlockConfigurationError, as_list, proposal_id
from selection_kernel.expression.evaluator import serialize_key
from selection_kernel.models.blocks import MergeBlock, MergeStrategy
from selection_kernel.models.context import BlockExecutionResult, ExecutionContext


def _dedupe(proposals: List[Any]) -> List[Any]:
    seen = set()
    unique = []
    for proposal in proposals:
        key = serialize_key(proposal_id(proposal))
        if key in seen:
            continue
        seen.add(key)
        unique.append(proposal)
    return unique


def merge_union(inputs: List[List[Any]]) -> List[Any]:
    """Dedupe by id across all inputs; the first occurrence wins."""
    return _dedupe([p for items in inputs for p in items])


def merge_intersection(inputs: List[List[Any]]) -> List[Any]:
    """Keep ids present in every input, in first-seen order."""
    if not inputs:
        return []

    counts: Dict[str, int] = {}
    first_seen: Dict[str, Any] = {}
    for items in inputs:
        for proposal in _dedupe(items):
            key = serialize_key(proposal_id(proposal))
            counts[key] = counts.get(key, 0) + 1
            first_seen.setdefault(key, proposal)

    return [p for key, p in first_seen.items() if counts[key] == len(inputs)]


def merge_concat(inputs: List[List[Any]]) -> List[Any]:
    return [p for items in inputs for p in items]


_STRATEGIES = {
    MergeStrategy.UNION: merge_union,
    MergeStrategy.INTERSECTION: merge_intersection,
    MergeStrategy.CONCAT: merge_concat,
}


class MergeExecutor:
    def execute(self, block: MergeBlock, context: ExecutionContext) -> BlockExecutionResult:
        merge = _STRATEGIES.get(block.strategy)
        if merge is None:
            raise BlockConfigurationError(
                f"Merge strategy '{block.strategy.value}' is not implemented"
            )

        # Names that are missing or not lists contribute nothing
        inputs = [as_list(context.outputs.get(name)) for name in block.inputs]
        return BlockExecutionResult(proposals=merge(inputs))
