"""
Sessions Repository.

Responsibilities:
- CRUD operations for the sessions table.

Non-Responsibilities:
- No metrics arithmetic (callers pass the new metrics dict).
"""
from typing import List

from devmonitor.database import DevSession
from .base import Repository


class SessionRepository(Repository[DevSession]):
    model = DevSession

    def list_recent(self) -> List[DevSession]:
        """All sessions, most recently active first."""
        return (
            self.db.query(DevSession)
            .order_by(DevSession.last_activity_at.desc())
            .all()
        )
