from .artifacts import ArtifactRepository
from .decisions import DecisionRepository
from .error_contexts import ErrorContextRepository
from .sessions import SessionRepository
from .tool_calls import ToolCallRepository

__all__ = [
    "ArtifactRepository",
    "DecisionRepository",
    "ErrorContextRepository",
    "SessionRepository",
    "ToolCallRepository",
]
