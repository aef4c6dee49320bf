"""Engine configuration."""

from typing import Optional

from pydantic import BaseModel, Field

from selection_kernel.models.blocks import DEFAULT_PIPELINE, SelectionPipeline


class EngineConfig(BaseModel):
    """Configuration for selection runs."""

    default_pipeline: SelectionPipeline = DEFAULT_PIPELINE
    settings_key: str = "settings"          # instance_data key seeded into variables
    attach_vote_data: bool = True           # Copy each proposal's aggregation onto it as voteData
    eligible_voter_count: Optional[int] = Field(default=None, ge=1)
    log_level: str = "INFO"
