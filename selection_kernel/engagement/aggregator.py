"""
Vote Data Aggregator — per-proposal engagement and voting metrics.

Builds the voteData map a selection run reads: likes and follows targeting
each proposal's owning profile, plus approve/reject/abstain tallies from
vote submissions.

Availability over completeness: on any internal failure the aggregator
logs and returns an empty map. Pipelines must already treat voteData[id]
as possibly absent.
"""

import logging
from typing import Any, Dict, List, Optional

from selection_kernel.engagement.store import EngagementStore
from selection_kernel.models.engagement import RelationshipType, VoteAggregation

logger = logging.getLogger(__name__)


def classify_vote(vote_data: Any) -> Optional[str]:
    """Return "approve", "reject", "abstain", or None for an unrecognized payload."""
    if not isinstance(vote_data, dict):
        return None
    if vote_data.get("approved") is True or vote_data.get("vote") == "approve":
        return "approve"
    if vote_data.get("approved") is False or vote_data.get("vote") == "reject":
        return "reject"
    if vote_data.get("vote") == "abstain":
        return "abstain"
    return None


def _count_relationships(
    store: EngagementStore,
    profile_ids: List[str],
) -> Dict[str, Dict[str, int]]:
    likes: Dict[str, int] = {}
    follows: Dict[str, int] = {}
    in_scope = set(profile_ids)

    for relationship in store.relationships_targeting(profile_ids):
        target = relationship.target_profile_id
        if target not in in_scope:
            continue
        if relationship.relationship_type == RelationshipType.LIKES:
            likes[target] = likes.get(target, 0) + 1
        elif relationship.relationship_type == RelationshipType.FOLLOWING:
            follows[target] = follows.get(target, 0) + 1

    return {"likes": likes, "follows": follows}


def aggregate_vote_data(
    store: EngagementStore,
    process_instance_id: str,
    eligible_voter_count: Optional[int] = None,
) -> Dict[str, VoteAggregation]:
    """Aggregate voting data for all proposals in a process instance."""
    try:
        proposals = store.list_proposals(process_instance_id)
        owners = {p["id"]: p.get("profileId") for p in proposals}
        profile_ids = sorted({pid for pid in owners.values() if pid})

        counts = _count_relationships(store, profile_ids)

        votes_by_proposal: Dict[str, List[Any]] = {}
        for submission in store.list_vote_submissions(process_instance_id):
            for selection in submission.vote_proposals:
                votes_by_proposal.setdefault(selection.proposal_id, []).append(
                    selection.vote_data
                )

        vote_data: Dict[str, VoteAggregation] = {}
        for proposal_id, profile_id in owners.items():
            votes = votes_by_proposal.get(proposal_id, [])
            tally = {"approve": 0, "reject": 0, "abstain": 0}
            for vote in votes:
                kind = classify_vote(vote)
                if kind:
                    tally[kind] += 1

            vote_count = len(votes)
            participation = None
            if eligible_voter_count:
                participation = vote_count / eligible_voter_count

            vote_data[proposal_id] = VoteAggregation(
                proposal_id=proposal_id,
                likes_count=counts["likes"].get(profile_id, 0),
                follows_count=counts["follows"].get(profile_id, 0),
                vote_count=vote_count,
                approval_count=tally["approve"],
                rejection_count=tally["reject"],
                abstain_count=tally["abstain"],
                approval_rate=tally["approve"] / vote_count if vote_count else 0.0,
                participation_rate=participation,
                votes=votes,
            )

        logger.info(
            "Aggregated vote data for %d proposals in %s",
            len(vote_data), process_instance_id,
        )
        return vote_data

    except Exception:
        logger.exception("Error aggregating vote data for %s", process_instance_id)
        return {}
