"""
Error Contexts Repository.

Responsibilities:
- CRUD operations for the error_contexts table.
"""
from typing import List

from devmonitor.database import ErrorContext
from .base import Repository


class ErrorContextRepository(Repository[ErrorContext]):
    model = ErrorContext

    def list_for_session(self, session_id: str) -> List[ErrorContext]:
        return (
            self.db.query(ErrorContext)
            .filter(ErrorContext.session_id == session_id)
            .order_by(ErrorContext.timestamp.desc())
            .all()
        )
