"""Engagement Model — votes, relationships, and the per-proposal aggregation built from them."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RelationshipType(str, Enum):
    LIKES = "likes"
    FOLLOWING = "following"
    MEMBER_OF = "memberOf"


class ProfileRelationship(BaseModel):
    """A directed profile-to-profile relationship (a like, a follow, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source_profile_id: str
    target_profile_id: str                  # The profile that owns a proposal
    relationship_type: RelationshipType


class VoteSelection(BaseModel):
    """One proposal's entry inside a vote submission."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    proposal_id: str
    vote_data: Optional[dict] = None        # e.g. {"vote": "approve"} or {"approved": true}


class VoteSubmission(BaseModel):
    """A voter's ballot for one process instance."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    process_instance_id: str
    submitted_by_profile_id: Optional[str] = None
    vote_proposals: List[VoteSelection] = []
    submitted_at: Optional[datetime] = None


class VoteAggregation(BaseModel):
    """
    Derived engagement and voting metrics for a single proposal.

    Built once per selection run and read-only thereafter. Expressions reach
    it as voteData.<field> (camelCase).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    proposal_id: str
    likes_count: int = 0
    follows_count: int = 0
    vote_count: int = 0
    approval_count: int = 0
    rejection_count: int = 0
    abstain_count: int = 0
    approval_rate: float = Field(ge=0.0, le=1.0, default=0.0)
    participation_rate: Optional[float] = None
    votes: List[Any] = []
