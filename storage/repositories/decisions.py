"""
Decisions Repository.

Responsibilities:
- Append and query update/rewrite decisions.
- Count recent update decisions for an artifact.

Non-Responsibilities:
- No choice of window length (the caller passes the cutoff).

Invariant:
Decisions are never modified after they are recorded.
"""
from datetime import datetime
from typing import List

from devmonitor.database import Decision
from .base import Repository


class DecisionRepository(Repository[Decision]):
    model = Decision

    def list_for_session(self, session_id: str) -> List[Decision]:
        """Decisions of a session, newest first."""
        return (
            self.db.query(Decision)
            .filter(Decision.session_id == session_id)
            .order_by(Decision.timestamp.desc())
            .all()
        )

    def count_updates_since(self, artifact_id: str, cutoff: datetime) -> int:
        """Count "update" decisions for an artifact recorded after cutoff."""
        return (
            self.db.query(Decision)
            .filter(
                Decision.artifact_id == artifact_id,
                Decision.type == "update",
                Decision.timestamp > cutoff,
            )
            .count()
        )
