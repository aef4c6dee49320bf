"""
Score block — writes a numeric score onto each proposal.

The formula is either a single expression evaluated per proposal, or a list
of weighted criteria combined as a weighted sum. For each criterion:

  raw value -> min-max normalize (optional) -> invert (optional) -> * weight

Normalization is over the whole current proposal set for that criterion.
When every value is equal the range is degenerate and each value becomes 0.5.
Non-numeric values count as 0.
"""

from typing import List

from selection_kernel.blocks.base import clone_proposal
from selection_kernel.expression.evaluator import (
    coerce_number,
    evaluate_for_proposal,
    evaluate_path_or_expression,
    set_value_by_path,
)
from selection_kernel.models.blocks import ScoreBlock, ScoringCriterion
from selection_kernel.models.context import BlockExecutionResult, ExecutionContext


def normalize_values(values: List[float]) -> List[float]:
    """Min-max scale into [0, 1]; a degenerate range maps everything to 0.5."""
    if not values:
        return []
    low, high = min(values), max(values)
    if high == low:
        return [0.5 for _ in values]
    span = high - low
    return [(v - low) / span for v in values]


def _criterion_value(
    criterion: ScoringCriterion,
    proposal: dict,
    context: ExecutionContext,
) -> float:
    scoped = context.scoped_to(proposal)
    if criterion.expression is not None:
        value = evaluate_for_proposal(criterion.expression, proposal, context)
    elif criterion.field is not None:
        value = evaluate_path_or_expression(criterion.field, scoped)
    else:
        value = None
    return coerce_number(value)


class ScoreExecutor:
    def execute(self, block: ScoreBlock, context: ExecutionContext) -> BlockExecutionResult:
        proposals = context.proposals

        if isinstance(block.formula, list):
            scores = self._composite_scores(block.formula, context)
        else:
            scores = [
                coerce_number(evaluate_for_proposal(block.formula, p, context))
                for p in proposals
            ]

        scored = []
        for proposal, score in zip(proposals, scores):
            clone = clone_proposal(proposal)
            set_value_by_path(clone, block.score_field, score)
            scored.append(clone)
        return BlockExecutionResult(proposals=scored)

    def _composite_scores(
        self,
        criteria: List[ScoringCriterion],
        context: ExecutionContext,
    ) -> List[float]:
        totals: List[float] = [0] * len(context.proposals)

        for criterion in criteria:
            values = [
                _criterion_value(criterion, p, context) for p in context.proposals
            ]
            if criterion.normalize:
                values = normalize_values(values)
            if criterion.invert:
                values = [1 - v for v in values]
            totals = [t + v * criterion.weight for t, v in zip(totals, values)]

        return totals
