"""
Engagement Store — the proposals, ballots, and profile relationships a
selection run reads.

Behavioral Contract:
- Proposals are opaque records; only id, processInstanceId, profileId and
  status are indexed, the full record is kept as JSON
- Vote submissions are stored per process instance with one row per
  proposal voted on
- Relationships are directed profile-to-profile edges (likes, follows, ...)
"""

import json
import sqlite3
from typing import Iterable, List

from selection_kernel.models.engagement import (
    ProfileRelationship,
    VoteSelection,
    VoteSubmission,
)


class EngagementStore:
    """
    Engagement data store.
    Prototype: SQLite. Production reads the platform database.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the engagement tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS proposals (
                id TEXT PRIMARY KEY,
                process_instance_id TEXT NOT NULL,
                profile_id TEXT,
                status TEXT,
                proposal_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS vote_submissions (
                id TEXT PRIMARY KEY,
                process_instance_id TEXT NOT NULL,
                submitted_by_profile_id TEXT,
                submitted_at TEXT
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS vote_proposals (
                submission_id TEXT NOT NULL,
                proposal_id TEXT NOT NULL,
                vote_data_json TEXT
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS profile_relationships (
                source_profile_id TEXT NOT NULL,
                target_profile_id TEXT NOT NULL,
                relationship_type TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_proposals_instance ON proposals(process_instance_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_submissions_instance ON vote_submissions(process_instance_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_relationships_target ON profile_relationships(target_profile_id)
        """)
        self._conn.commit()

    # --- Proposals ---

    def add_proposal(self, proposal: dict) -> dict:
        """Insert or replace a proposal record. Requires id and processInstanceId."""
        if not proposal.get("id") or not proposal.get("processInstanceId"):
            raise ValueError("Proposal records need 'id' and 'processInstanceId'")

        self._conn.execute(
            """
            INSERT OR REPLACE INTO proposals (
                id, process_instance_id, profile_id, status, proposal_json
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                proposal["id"],
                proposal["processInstanceId"],
                proposal.get("profileId"),
                proposal.get("status"),
                json.dumps(proposal, default=str),
            ),
        )
        self._conn.commit()
        return proposal

    def list_proposals(self, process_instance_id: str) -> List[dict]:
        """All proposals for a process instance, in insertion order."""
        rows = self._conn.execute(
            "SELECT proposal_json FROM proposals WHERE process_instance_id = ? ORDER BY rowid",
            (process_instance_id,),
        ).fetchall()
        return [json.loads(r["proposal_json"]) for r in rows]

    def count_proposals(self, process_instance_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) as cnt FROM proposals WHERE process_instance_id = ?",
            (process_instance_id,),
        ).fetchone()
        return row["cnt"]

    # --- Votes ---

    def add_vote_submission(self, submission: VoteSubmission) -> VoteSubmission:
        """Record a ballot and its per-proposal selections."""
        self._conn.execute(
            """
            INSERT INTO vote_submissions (
                id, process_instance_id, submitted_by_profile_id, submitted_at
            ) VALUES (?, ?, ?, ?)
            """,
            (
                submission.id,
                submission.process_instance_id,
                submission.submitted_by_profile_id,
                submission.submitted_at.isoformat() if submission.submitted_at else None,
            ),
        )
        self._conn.executemany(
            "INSERT INTO vote_proposals (submission_id, proposal_id, vote_data_json) VALUES (?, ?, ?)",
            [
                (
                    submission.id,
                    selection.proposal_id,
                    json.dumps(selection.vote_data) if selection.vote_data is not None else None,
                )
                for selection in submission.vote_proposals
            ],
        )
        self._conn.commit()
        return submission

    def list_vote_submissions(self, process_instance_id: str) -> List[VoteSubmission]:
        """All ballots for a process instance, each with its selections."""
        rows = self._conn.execute(
            "SELECT * FROM vote_submissions WHERE process_instance_id = ? ORDER BY rowid",
            (process_instance_id,),
        ).fetchall()

        submissions = []
        for row in rows:
            selections = self._conn.execute(
                "SELECT proposal_id, vote_data_json FROM vote_proposals "
                "WHERE submission_id = ? ORDER BY rowid",
                (row["id"],),
            ).fetchall()
            submissions.append(VoteSubmission(
                id=row["id"],
                process_instance_id=row["process_instance_id"],
                submitted_by_profile_id=row["submitted_by_profile_id"],
                submitted_at=row["submitted_at"],
                vote_proposals=[
                    VoteSelection(
                        proposal_id=s["proposal_id"],
                        vote_data=json.loads(s["vote_data_json"]) if s["vote_data_json"] else None,
                    )
                    for s in selections
                ],
            ))
        return submissions

    # --- Relationships ---

    def add_relationship(self, relationship: ProfileRelationship) -> ProfileRelationship:
        self._conn.execute(
            """
            INSERT INTO profile_relationships (
                source_profile_id, target_profile_id, relationship_type
            ) VALUES (?, ?, ?)
            """,
            (
                relationship.source_profile_id,
                relationship.target_profile_id,
                relationship.relationship_type.value,
            ),
        )
        self._conn.commit()
        return relationship

    def relationships_targeting(self, profile_ids: Iterable[str]) -> List[ProfileRelationship]:
        """All relationships whose target is one of the given profiles."""
        ids = list(profile_ids)
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self._conn.execute(
            f"SELECT * FROM profile_relationships WHERE target_profile_id IN ({placeholders}) "
            "ORDER BY rowid",
            ids,
        ).fetchall()
        return [
            ProfileRelationship(
                source_profile_id=r["source_profile_id"],
                target_profile_id=r["target_profile_id"],
                relationship_type=r["relationship_type"],
            )
            for r in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
