"""
Block Executors — interchangeable strategies, one per block type.

Every executor consumes the current proposal set plus the context and
returns a BlockExecutionResult. Executors are synchronous and never mutate
their inputs; blocks that write to proposals return deep copies.

Branch blocks have a placeholder executor here: their semantics need the
whole pipeline machinery and live in the engine.
"""

import logging
import math
from typing import Dict, Optional

from selection_kernel.blocks.base import (
    BlockConfigurationError,
    BlockExecutor,
    clone_proposal,
    passthrough,
)
from selection_kernel.blocks.group import GroupExecutor
from selection_kernel.blocks.merge import MergeExecutor
from selection_kernel.blocks.score import ScoreExecutor
from selection_kernel.blocks.sort import SortExecutor
from selection_kernel.expression.evaluator import (
    evaluate_expression,
    evaluate_for_proposal,
    get_value_by_path,
    is_number,
    is_truthy,
    set_value_by_path,
)
from selection_kernel.models.blocks import (
    BranchBlock,
    ComputeBlock,
    DebugBlock,
    FilterBlock,
    LimitBlock,
    TransformBlock,
)
from selection_kernel.models.context import BlockExecutionResult, ExecutionContext

debug_logger = logging.getLogger("selection_kernel.debug")


class FilterExecutor:
    """Keeps proposals whose condition is truthy. Order preserving."""

    def execute(self, block: FilterBlock, context: ExecutionContext) -> BlockExecutionResult:
        kept = [
            p for p in context.proposals
            if is_truthy(evaluate_for_proposal(block.condition, p, context))
        ]
        return BlockExecutionResult(proposals=kept)


class TransformExecutor:
    """Writes computed values at field paths on cloned proposals."""

    def execute(self, block: TransformBlock, context: ExecutionContext) -> BlockExecutionResult:
        transformed = []
        for proposal in context.proposals:
            clone = clone_proposal(proposal)
            for field_path, expression in block.transformations.items():
                # Later transformations see earlier writes
                value = evaluate_for_proposal(expression, clone, context)
                set_value_by_path(clone, field_path, value)
            transformed.append(clone)
        return BlockExecutionResult(proposals=transformed)


class ComputeExecutor:
    """Evaluates named expressions once against the whole context."""

    def execute(self, block: ComputeBlock, context: ExecutionContext) -> BlockExecutionResult:
        unscoped = context.model_copy(update={"proposal": None})
        variables = {
            name: evaluate_expression(expression, unscoped)
            for name, expression in block.computations.items()
        }
        return BlockExecutionResult(proposals=list(context.proposals), variables=variables)


def _resolve_bound(value, context: ExecutionContext) -> int:
    if not is_number(value):
        value = evaluate_expression(value, context)
    if not is_number(value) or not math.isfinite(value):
        return 0
    return max(0, int(value))


class LimitExecutor:
    """Slices [offset, offset + count); both evaluated once and clamped to >= 0."""

    def execute(self, block: LimitBlock, context: ExecutionContext) -> BlockExecutionResult:
        unscoped = context.model_copy(update={"proposal": None})
        count = _resolve_bound(block.count, unscoped)
        offset = _resolve_bound(block.offset, unscoped) if block.offset is not None else 0
        return BlockExecutionResult(proposals=context.proposals[offset:offset + count])


class DebugExecutor:
    """Logs pipeline state. Never changes data."""

    def execute(self, block: DebugBlock, context: ExecutionContext) -> BlockExecutionResult:
        label = block.message or block.name or block.id
        debug_logger.info("[%s] %d proposals", label, len(context.proposals))

        if block.log_fields:
            for proposal in context.proposals:
                values = {
                    field: get_value_by_path(proposal, field)
                    for field in block.log_fields
                }
                debug_logger.info("[%s] %s: %s", label, proposal.get("id"), values)

        debug_logger.info(
            "[%s] variables=%s outputs=%s",
            label,
            sorted(context.variables),
            sorted(context.outputs),
        )
        return passthrough(context)


class BranchPlaceholderExecutor:
    """Passes input through; the engine replaces the result with the chosen branch's."""

    def execute(self, block: BranchBlock, context: ExecutionContext) -> BlockExecutionResult:
        return passthrough(context)


class BlockExecutorRegistry:
    """Maps block type discriminators to executors."""

    def __init__(self):
        self._executors: Dict[str, BlockExecutor] = {}
        self._register_default_executors()

    def _register_default_executors(self) -> None:
        self._executors["filter"] = FilterExecutor()
        self._executors["transform"] = TransformExecutor()
        self._executors["compute"] = ComputeExecutor()
        self._executors["branch"] = BranchPlaceholderExecutor()
        self._executors["merge"] = MergeExecutor()
        self._executors["group"] = GroupExecutor()
        self._executors["limit"] = LimitExecutor()
        self._executors["sort"] = SortExecutor()
        self._executors["score"] = ScoreExecutor()
        self._executors["debug"] = DebugExecutor()

    def register_executor(self, block_type: str, executor: BlockExecutor) -> None:
        """Register (or replace) the executor for a block type."""
        self._executors[block_type] = executor

    def get(self, block_type: str) -> BlockExecutor:
        executor = self._executors.get(block_type)
        if executor is None:
            raise BlockConfigurationError(f"Unknown block type: {block_type}")
        return executor

    @property
    def block_types(self):
        return sorted(self._executors)


default_registry = BlockExecutorRegistry()


def get_block_executor(block, registry: Optional[BlockExecutorRegistry] = None) -> BlockExecutor:
    """Look up the executor for a block by its type discriminator."""
    block_type = getattr(block, "type", None)
    if block_type is None and isinstance(block, dict):
        block_type = block.get("type")
    return (registry or default_registry).get(block_type)
