"""
Selection Service — decides which proposals advance out of a phase.

Loads a process instance's proposals, aggregates their engagement data,
resolves the phase's selection pipeline, and runs it.

Behavioral Contract:
- The caller's proposal records are never modified; vote data is attached
  to copies
- Instance settings are seeded as pipeline variables (pipeline variables
  still win on conflict)
- A failed run raises PipelineExecutionError; there is no partial selection
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from selection_kernel.engagement.aggregator import aggregate_vote_data
from selection_kernel.engagement.store import EngagementStore
from selection_kernel.engine.pipeline import PipelineExecutionError, execute_pipeline
from selection_kernel.models.blocks import SelectionPipeline, parse_pipeline
from selection_kernel.models.config import EngineConfig
from selection_kernel.models.context import ExecutionContext, ProcessInfo
from selection_kernel.models.engagement import VoteAggregation

logger = logging.getLogger(__name__)


class SelectionResult(BaseModel):
    """Outcome of one selection run."""

    process_instance_id: str
    selected_proposal_ids: List[str]
    proposals: List[dict]
    outputs: List[str] = []             # Names of every output the run produced
    pipeline_version: str
    executed_at: datetime


def attach_vote_data(
    proposals: List[dict],
    vote_data: Dict[str, VoteAggregation],
) -> List[dict]:
    """Copy each proposal with its aggregation under voteData (or None when absent)."""
    attached = []
    for proposal in proposals:
        aggregation = vote_data.get(proposal.get("id"))
        attached.append({
            **proposal,
            "voteData": aggregation.model_dump(by_alias=True) if aggregation else None,
        })
    return attached


def _find_phase(process_schema: dict, state_id: Optional[str]) -> Optional[dict]:
    if not state_id:
        return None
    for key in ("phases", "states"):
        for phase in process_schema.get(key) or []:
            if isinstance(phase, dict) and phase.get("id") == state_id:
                return phase
    return None


class SelectionService:
    """Runs selection pipelines for process instances backed by an EngagementStore."""

    def __init__(self, store: EngagementStore, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

    def resolve_pipeline(self, process: ProcessInfo) -> SelectionPipeline:
        """Current phase's pipeline, else the process-level one, else the configured default."""
        phase = _find_phase(process.process_schema, process.current_state_id)
        if phase and phase.get("selectionPipeline"):
            return parse_pipeline(phase["selectionPipeline"])

        if process.process_schema.get("selectionPipeline"):
            return parse_pipeline(process.process_schema["selectionPipeline"])

        return self.config.default_pipeline

    def build_context(self, process: ProcessInfo) -> ExecutionContext:
        """Assemble the execution context for a process instance."""
        proposals = self.store.list_proposals(process.instance_id)
        vote_data = aggregate_vote_data(
            self.store,
            process.instance_id,
            eligible_voter_count=self.config.eligible_voter_count,
        )
        if self.config.attach_vote_data:
            proposals = attach_vote_data(proposals, vote_data)

        settings = process.instance_data.get(self.config.settings_key) or {}
        return ExecutionContext(
            proposals=proposals,
            vote_data=vote_data,
            process=process,
            variables=dict(settings) if isinstance(settings, dict) else {},
        )

    async def select(
        self,
        process: ProcessInfo,
        pipeline: Optional[Any] = None,
    ) -> SelectionResult:
        """Run the selection for a process instance."""
        try:
            resolved = parse_pipeline(pipeline) if pipeline is not None else self.resolve_pipeline(process)
        except ValueError as e:
            # pydantic ValidationError is a ValueError
            logger.exception("Invalid selection pipeline for %s", process.instance_id)
            raise PipelineExecutionError(f"Pipeline execution failed: {e}") from e
        context = self.build_context(process)

        logger.info(
            "Selecting proposals for %s (%d candidates)",
            process.instance_id, len(context.proposals),
        )
        selected = await execute_pipeline(resolved, context)

        return SelectionResult(
            process_instance_id=process.instance_id,
            selected_proposal_ids=[p.get("id") for p in selected if isinstance(p, dict)],
            proposals=[p for p in selected if isinstance(p, dict)],
            outputs=sorted(context.outputs),
            pipeline_version=resolved.version,
            executed_at=datetime.utcnow(),
        )
