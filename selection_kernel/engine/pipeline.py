"""
Pipeline Engine — sequences blocks over a proposal set.

Behavioral Contract:
- Blocks run strictly in declaration order; later blocks may read the
  named outputs and variables of earlier ones
- Pipeline variables are merged over caller-seeded variables (pipeline wins)
- Every block's result is stored under its output name (default
  block_<id>_output) in context.outputs
- Branch blocks run the first matching branch (or the default) as a nested
  pipeline over copies of outputs/variables; only an explicit branch
  output name is written back to the parent
- Any failure aborts the run with a single PipelineExecutionError; partial
  results are never returned
"""

import logging
from typing import Any, List, Optional, Union

from selection_kernel.blocks.executors import BlockExecutorRegistry, get_block_executor
from selection_kernel.expression.evaluator import evaluate_expression, is_truthy
from selection_kernel.models.blocks import BranchBlock, SelectionPipeline, parse_pipeline
from selection_kernel.models.context import ExecutionContext

logger = logging.getLogger(__name__)

RUNNING_SET = "proposals"


class PipelineExecutionError(Exception):
    """Raised when a pipeline run fails for any reason."""
    pass


def output_name_for(block: Any) -> str:
    return block.output or f"block_{block.id}_output"


def _resolve_input(
    block: Any,
    current: List[dict],
    context: ExecutionContext,
) -> List[dict]:
    """
    Blocks without an explicit input read the running set, which is what the
    previous block's output holds for every proposal-returning block.
    """
    if block.input is None or block.input == RUNNING_SET:
        return current
    named = context.outputs.get(block.input)
    return named if isinstance(named, list) else current


async def execute_pipeline(
    pipeline: Union[SelectionPipeline, dict],
    context: ExecutionContext,
    registry: Optional[BlockExecutorRegistry] = None,
) -> List[dict]:
    """
    Execute a selection pipeline and return the selected proposals.

    context.outputs and context.variables are updated in place, so callers
    can inspect named intermediate results after the run.
    """
    try:
        pipeline = parse_pipeline(pipeline)
        logger.info(
            "Executing pipeline v%s: %d blocks over %d proposals",
            pipeline.version, len(pipeline.blocks), len(context.proposals),
        )

        if pipeline.variables:
            context.variables = {**context.variables, **pipeline.variables}

        current = context.proposals

        for block in pipeline.blocks:
            input_proposals = _resolve_input(block, current, context)
            block_context = context.with_proposals(input_proposals)

            executor = get_block_executor(block, registry)
            result = executor.execute(block, block_context)
            current = result.proposals

            output_name = output_name_for(block)
            context.outputs[output_name] = (
                result.output if result.has_output else result.proposals
            )

            if result.variables:
                context.variables = {**context.variables, **result.variables}

            if isinstance(block, BranchBlock):
                current = await execute_branch_block(block, block_context, context, registry)
                context.outputs[output_name] = current

            logger.debug(
                "Block %s (%s): %d in, %d out",
                block.id, block.type, len(input_proposals), len(current),
            )

        if pipeline.output:
            final = context.outputs.get(pipeline.output)
            if isinstance(final, list):
                current = final

        logger.info("Pipeline complete: %d proposals selected", len(current))
        return current

    except PipelineExecutionError:
        # Already wrapped by a nested branch run
        raise
    except Exception as e:
        logger.exception("Error executing pipeline")
        raise PipelineExecutionError(f"Pipeline execution failed: {e}") from e


async def execute_branch_block(
    block: BranchBlock,
    block_context: ExecutionContext,
    parent_context: ExecutionContext,
    registry: Optional[BlockExecutorRegistry] = None,
) -> List[dict]:
    """Run the first branch whose condition holds, else the default, else pass input through."""
    chosen_blocks = None
    chosen_output = None

    for branch in block.branches:
        if is_truthy(evaluate_expression(branch.condition, block_context)):
            chosen_blocks, chosen_output = branch.blocks, branch.output
            break
    else:
        if block.default is not None:
            chosen_blocks, chosen_output = block.default.blocks, block.default.output

    if chosen_blocks is None:
        return block_context.proposals

    nested_context = block_context.model_copy(update={
        "outputs": dict(block_context.outputs),
        "variables": dict(block_context.variables),
    })
    results = await execute_pipeline(
        SelectionPipeline(version="1.0.0", blocks=chosen_blocks),
        nested_context,
        registry,
    )

    if chosen_output:
        parent_context.outputs[chosen_output] = results
    return results
