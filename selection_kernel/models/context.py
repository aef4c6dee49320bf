"""Execution Context — the per-run working state threaded through blocks."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from selection_kernel.models.engagement import VoteAggregation


class ProcessInfo(BaseModel):
    """Read-only process instance metadata supplied by the caller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    instance_id: str
    process_id: str
    current_state_id: Optional[str] = None
    instance_data: dict = {}
    process_schema: dict = {}


class ExecutionContext(BaseModel):
    """
    The engine's working state.

    variables and outputs are the only mutable shared structures. Executors
    read them and return deltas; the engine folds the deltas back in.
    Proposals are caller-owned dicts and are never modified in place.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    proposals: List[dict] = []
    proposal: Optional[dict] = None         # Set while evaluating per item
    vote_data: Dict[str, VoteAggregation] = {}
    process: Optional[ProcessInfo] = None
    variables: Dict[str, Any] = {}
    outputs: Dict[str, Any] = {}

    def scoped_to(self, proposal: dict) -> "ExecutionContext":
        """Shallow copy with a single proposal in scope."""
        return self.model_copy(update={"proposal": proposal})

    def with_proposals(self, proposals: List[dict]) -> "ExecutionContext":
        """Shallow copy over a different proposal set; maps stay shared."""
        return self.model_copy(update={"proposals": proposals, "proposal": None})


class BlockExecutionResult(BaseModel):
    """What a block executor hands back to the engine."""

    proposals: List[dict]
    variables: Optional[Dict[str, Any]] = None
    output: Any = None                      # Only meaningful when explicitly set

    @property
    def has_output(self) -> bool:
        return "output" in self.model_fields_set


class ProposalGroup(BaseModel):
    """One partition produced by a group block."""

    key: Any
    proposals: List[dict]
    aggregations: Optional[Dict[str, Any]] = None
