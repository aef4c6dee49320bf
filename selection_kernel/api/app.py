"""
Selection Kernel API — FastAPI endpoints.

Exposes the kernel's functionality via a REST API for:
- Pipeline inspection and validation
- Ad-hoc pipeline runs (with every named intermediate output)
- Engagement ingest (proposals, votes, relationships)
- Vote data inspection and selection runs per process instance
- Engine configuration
"""

from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ValidationError

from selection_kernel.engagement.aggregator import aggregate_vote_data
from selection_kernel.engagement.store import EngagementStore
from selection_kernel.engine.pipeline import PipelineExecutionError, execute_pipeline
from selection_kernel.logging_config import configure_logging
from selection_kernel.models.blocks import dump_pipeline, parse_pipeline
from selection_kernel.models.config import EngineConfig
from selection_kernel.models.context import ExecutionContext, ProcessInfo
from selection_kernel.models.engagement import ProfileRelationship, VoteSubmission
from selection_kernel.selection.service import SelectionService


# --- Request/Response Models ---

class ExecuteRequest(BaseModel):
    pipeline: dict
    proposals: List[dict] = []
    variables: dict = {}
    vote_data: dict = {}


class SelectRequest(BaseModel):
    process_id: str = "api"
    current_state_id: Optional[str] = None
    instance_data: dict = {}
    process_schema: dict = {}
    pipeline: Optional[dict] = None


def _dump_config(config: EngineConfig) -> dict:
    data = config.model_dump(mode="json", exclude={"default_pipeline"})
    data["default_pipeline"] = dump_pipeline(config.default_pipeline)
    return data


# --- Application Factory ---

def create_app(
    store: Optional[EngagementStore] = None,
    config: Optional[EngineConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Selection Kernel API",
        description="Selection Pipeline Engine — proposal selection over engagement data",
        version="0.1.0",
    )

    es = store or EngagementStore()
    service = SelectionService(es, config or EngineConfig())
    configure_logging(service.config.log_level)

    # Store components on app state for access in endpoints
    app.state.store = es
    app.state.service = service

    # === PIPELINES ===

    @app.get("/pipelines/default")
    def get_default_pipeline():
        """The pipeline used when a process defines none."""
        return dump_pipeline(service.config.default_pipeline)

    @app.post("/pipelines/validate")
    def validate_pipeline(definition: dict):
        """Parse a pipeline definition and return its normalized form."""
        try:
            pipeline = parse_pipeline(definition)
        except ValidationError as e:
            raise HTTPException(422, str(e))
        return {"valid": True, "pipeline": dump_pipeline(pipeline)}

    @app.post("/pipelines/execute")
    async def execute(req: ExecuteRequest):
        """Run a pipeline over supplied proposals; returns every named output."""
        try:
            context = ExecutionContext(
                proposals=req.proposals,
                variables=req.variables,
                vote_data=req.vote_data,
            )
        except ValidationError as e:
            raise HTTPException(422, str(e))

        try:
            selected = await execute_pipeline(req.pipeline, context)
        except PipelineExecutionError as e:
            raise HTTPException(422, str(e))

        return {
            "proposals": selected,
            "outputs": jsonable_encoder(context.outputs),
            "variables": jsonable_encoder(context.variables),
        }

    # === ENGAGEMENT INGEST ===

    @app.post("/engagement/proposals")
    def ingest_proposal(proposal: dict):
        """Store a proposal record (for testing and tooling)."""
        try:
            es.add_proposal(proposal)
        except ValueError as e:
            raise HTTPException(422, str(e))
        return {"status": "ingested", "proposal_id": proposal["id"]}

    @app.post("/engagement/votes")
    def ingest_vote(submission: VoteSubmission):
        """Record a vote submission."""
        es.add_vote_submission(submission)
        return {"status": "ingested", "submission_id": submission.id}

    @app.post("/engagement/relationships")
    def ingest_relationship(relationship: ProfileRelationship):
        """Record a profile relationship."""
        es.add_relationship(relationship)
        return {"status": "ingested"}

    # === INSTANCES ===

    @app.get("/instances/{instance_id}/vote-data")
    def get_vote_data(instance_id: str):
        """Aggregated engagement metrics per proposal."""
        if not es.count_proposals(instance_id):
            raise HTTPException(404, "Instance not found")
        vote_data = aggregate_vote_data(
            es, instance_id,
            eligible_voter_count=service.config.eligible_voter_count,
        )
        return {pid: agg.model_dump(by_alias=True) for pid, agg in vote_data.items()}

    @app.post("/instances/{instance_id}/select")
    async def select_proposals(instance_id: str, req: SelectRequest):
        """Run the instance's selection pipeline (or the one supplied)."""
        if not es.count_proposals(instance_id):
            raise HTTPException(404, "Instance not found")

        process = ProcessInfo(
            instance_id=instance_id,
            process_id=req.process_id,
            current_state_id=req.current_state_id,
            instance_data=req.instance_data,
            process_schema=req.process_schema,
        )
        try:
            result = await service.select(process, pipeline=req.pipeline)
        except (PipelineExecutionError, ValidationError) as e:
            raise HTTPException(422, str(e))
        return result.model_dump(mode="json")

    # === CONFIG ===

    @app.get("/config")
    def get_config():
        """Current engine configuration."""
        return _dump_config(service.config)

    @app.put("/config")
    def update_config(config: EngineConfig):
        """Update engine configuration."""
        service.config = config
        return _dump_config(config)

    return app


# Default application instance
app = create_app()
