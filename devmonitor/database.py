"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for session, artifact and decision storage.
"""

import uuid
from datetime import datetime
from pathlib import Path
from sqlalchemy import (
    create_engine,
    Column,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    JSON,
    ForeignKey,
)
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class DevSession(Base):
    """A long-running development session."""

    __tablename__ = "sessions"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    status = Column(String, nullable=False, default="active")
    current_mode = Column(String, nullable=False, default="deliberation")
    started_at = Column(DateTime, nullable=False, default=datetime.now)
    last_activity_at = Column(DateTime, nullable=False, default=datetime.now)
    total_duration = Column(Integer, nullable=False, default=0)  # milliseconds
    metrics = Column(JSON, nullable=False)
    config = Column(JSON, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "current_mode": self.current_mode,
            "started_at": _iso(self.started_at),
            "last_activity_at": _iso(self.last_activity_at),
            "total_duration": self.total_duration,
            "metrics": dict(self.metrics or {}),
            "config": dict(self.config or {}),
        }


class Artifact(Base):
    """Durable code unit produced during a session."""

    __tablename__ = "artifacts"

    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    path = Column(String, nullable=False)  # virtual file path
    content = Column(Text, nullable=False, default="")
    version = Column(Integer, nullable=False, default=1)
    line_count = Column(Integer, nullable=False, default=0)
    char_count = Column(Integer, nullable=False, default=0)
    dependencies = Column(JSON, nullable=False, default=list)  # other artifact ids
    is_promoted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "name": self.name,
            "type": self.type,
            "path": self.path,
            "content": self.content,
            "version": self.version,
            "line_count": self.line_count,
            "char_count": self.char_count,
            "dependencies": list(self.dependencies or []),
            "is_promoted": self.is_promoted,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ArtifactVersion(Base):
    """One entry of an artifact's version history."""

    __tablename__ = "artifact_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    artifact_id = Column(String, ForeignKey("artifacts.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    line_count = Column(Integer, nullable=False)
    char_count = Column(Integer, nullable=False)
    decision_type = Column(String, nullable=False)  # create, update, rewrite
    decision_id = Column(String, nullable=False, default="")
    timestamp = Column(DateTime, nullable=False, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "content": self.content,
            "line_count": self.line_count,
            "char_count": self.char_count,
            "decision_type": self.decision_type,
            "decision_id": self.decision_id,
            "timestamp": _iso(self.timestamp),
        }


class Decision(Base):
    """An update-vs-rewrite choice made for an artifact."""

    __tablename__ = "decisions"

    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    artifact_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    reasoning = Column(Text, nullable=False, default="")
    lines_changed = Column(Integer, nullable=False, default=0)
    locations_changed = Column(Integer, nullable=False, default=0)
    diff_summary = Column(String, nullable=False, default="")
    was_automatic = Column(Boolean, nullable=False, default=True)
    iteration_number = Column(Integer, nullable=False, default=1)
    mode = Column(String, nullable=False, default="action")
    timestamp = Column(DateTime, nullable=False, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "artifact_id": self.artifact_id,
            "type": self.type,
            "reasoning": self.reasoning,
            "lines_changed": self.lines_changed,
            "locations_changed": self.locations_changed,
            "diff_summary": self.diff_summary,
            "was_automatic": self.was_automatic,
            "iteration_number": self.iteration_number,
            "mode": self.mode,
            "timestamp": _iso(self.timestamp),
        }


class ToolCall(Base):
    """A research or execution tool invocation."""

    __tablename__ = "tool_calls"

    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    parameters = Column(JSON, nullable=False, default=dict)
    result = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default="pending")
    duration = Column(Integer, nullable=True)  # milliseconds
    mode = Column(String, nullable=False, default="action")
    pipeline_step = Column(Integer, nullable=True)  # research mode step
    timestamp = Column(DateTime, nullable=False, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameters or {}),
            "result": self.result,
            "status": self.status,
            "duration": self.duration,
            "mode": self.mode,
            "pipeline_step": self.pipeline_step,
            "timestamp": _iso(self.timestamp),
        }


class ErrorContext(Base):
    """An error and the context that was pruned while recovering from it."""

    __tablename__ = "error_contexts"

    id = Column(String, primary_key=True, default=new_id)
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    error = Column(Text, nullable=False)
    stack_trace = Column(Text, nullable=True)
    stale_context = Column(JSON, nullable=False, default=list)
    cleaned_context = Column(JSON, nullable=False, default=list)
    retry_count = Column(Integer, nullable=False, default=0)
    resolved = Column(Boolean, nullable=False, default=False)
    resolution = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "error": self.error,
            "stack_trace": self.stack_trace,
            "stale_context": list(self.stale_context or []),
            "cleaned_context": list(self.cleaned_context or []),
            "retry_count": self.retry_count,
            "resolved": self.resolved,
            "resolution": self.resolution,
            "timestamp": _iso(self.timestamp),
        }


def _iso(value):
    return value.isoformat() if value is not None else None


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    engine.dispose()


def get_session_factory(db_path: Path):
    """
    Build a session factory bound to one engine.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy sessionmaker
    """
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return sessionmaker(bind=engine, expire_on_commit=False)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    return get_session_factory(db_path)()
