"""Block executor protocol and shared helpers."""

import copy
from typing import Any, List, Protocol

from selection_kernel.models.context import BlockExecutionResult, ExecutionContext


class BlockConfigurationError(ValueError):
    """Raised when a block definition cannot be executed as written."""
    pass


class BlockExecutor(Protocol):
    """Protocol for block executors — one stateless strategy per block type."""

    def execute(self, block: Any, context: ExecutionContext) -> BlockExecutionResult: ...


def clone_proposal(proposal: dict) -> dict:
    """Deep copy so writes never reach the caller's record."""
    return copy.deepcopy(proposal)


def proposal_id(proposal: Any) -> Any:
    if isinstance(proposal, dict):
        return proposal.get("id")
    return getattr(proposal, "id", None)


def passthrough(context: ExecutionContext) -> BlockExecutionResult:
    return BlockExecutionResult(proposals=list(context.proposals))


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []
