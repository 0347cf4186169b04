"""
Tool Calls Repository.

Responsibilities:
- CRUD operations for the tool_calls table.
"""
from typing import List

from devmonitor.database import ToolCall
from .base import Repository


class ToolCallRepository(Repository[ToolCall]):
    model = ToolCall

    def list_for_session(self, session_id: str) -> List[ToolCall]:
        return (
            self.db.query(ToolCall)
            .filter(ToolCall.session_id == session_id)
            .order_by(ToolCall.timestamp.desc())
            .all()
        )
