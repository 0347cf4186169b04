"""
Session/artifact directory.

Owns every record a monitoring session produces (sessions, artifacts and
their version history, decisions, tool calls, error contexts), keeps the
per-session aggregate metrics current, and publishes a named event after
each successful mutation.

It also supplies the change classifier's inputs: prior artifact content,
the session's thresholds, and the number of recent update decisions.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pipelines.versioning.change_classifier import Thresholds, split_lines
from storage.repositories import (
    ArtifactRepository,
    DecisionRepository,
    ErrorContextRepository,
    SessionRepository,
    ToolCallRepository,
)

from . import events
from .database import init_database, get_session_factory
from .events import EventBus
from .logger import StructuredLogger, get_logger
from .schema import (
    DECISION_TYPES,
    default_config,
    default_metrics,
    is_promoted,
    validate_artifact,
    validate_artifact_update,
    validate_config,
    validate_mode,
    validate_session,
    validate_status,
    validate_tool_call,
    validate_tool_call_status,
)

SESSION_UPDATABLE_FIELDS = {"name", "description", "status", "current_mode", "total_duration", "config"}
TOOL_CALL_UPDATABLE_FIELDS = {"name", "description", "parameters", "result", "status", "duration", "pipeline_step"}
ERROR_CONTEXT_UPDATABLE_FIELDS = {
    "error",
    "stack_trace",
    "stale_context",
    "cleaned_context",
    "retry_count",
    "resolved",
    "resolution",
}


class RecordNotFound(LookupError):
    """Raised when an operation needs a record that does not exist."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class InvalidRecord(ValueError):
    """Raised when input fails validation. `errors` lists every problem."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def _require_valid(errors: List[str]) -> None:
    if errors:
        raise InvalidRecord(errors)


def _line_count(content: str) -> int:
    return len(split_lines(content))


class ArtifactDirectory:
    """SQLite-backed directory of monitoring records."""

    def __init__(
        self,
        db_path: Path,
        bus: Optional[EventBus] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.db_path = Path(db_path)
        init_database(self.db_path)
        self._session_factory = get_session_factory(self.db_path)
        self._logger = logger
        self.bus = bus or EventBus(logger=logger)
        self._lock = threading.RLock()
        self._artifact_locks: Dict[str, threading.RLock] = {}

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    @contextmanager
    def _db(self):
        """One transaction per operation: commit on success, roll back on error."""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @contextmanager
    def artifact_lock(self, artifact_id: str):
        """
        Hold while reading, classifying and writing one artifact.

        Other artifacts are not blocked. Directory operations called while
        holding it still take the directory lock as usual.
        """
        with self._lock:
            lock = self._artifact_locks.setdefault(artifact_id, threading.RLock())
        with lock:
            yield

    def _publish(self, event: str, data: Any) -> None:
        self.bus.publish(event, data)

    def _bump_metrics(self, db, session_id: str, **deltas: int) -> None:
        sessions = SessionRepository(db)
        record = sessions.get(session_id)
        if record is None:
            return
        metrics = dict(record.metrics or default_metrics())
        for key, delta in deltas.items():
            metrics[key] = metrics.get(key, 0) + delta
        sessions.update(session_id, {"metrics": metrics, "last_activity_at": datetime.now()})

    # ============================================
    # SESSIONS
    # ============================================

    def create_session(self, name: str, description: str = "", config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": name, "description": description}
        if config is not None:
            data["config"] = config
        _require_valid(validate_session(data))

        merged = default_config()
        merged.update(config or {})
        now = datetime.now()
        with self._lock, self._db() as db:
            record = SessionRepository(db).create(
                name=name,
                description=description or "",
                status="active",
                current_mode="deliberation",
                started_at=now,
                last_activity_at=now,
                total_duration=0,
                metrics=default_metrics(),
                config=merged,
            )
            session = record.to_dict()

        self.logger.info("Session created", session_id=session["id"], name=name)
        self._publish(events.SESSION_CREATED, session)
        return session

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._db() as db:
            record = SessionRepository(db).get(session_id)
            return record.to_dict() if record else None

    def list_sessions(self) -> List[Dict[str, Any]]:
        with self._db() as db:
            return [s.to_dict() for s in SessionRepository(db).list_recent()]

    def update_session(self, session_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        unknown = sorted(set(changes) - SESSION_UPDATABLE_FIELDS)
        errors = [f"Field '{k}' cannot be updated" for k in unknown]
        if "name" in changes or "description" in changes:
            errors.extend(validate_session({
                "name": changes.get("name", "placeholder"),
                "description": changes.get("description"),
            }))
        if "config" in changes:
            errors.extend(validate_config(changes["config"]))
        if "current_mode" in changes:
            errors.extend(validate_mode(changes["current_mode"]))
        if "status" in changes:
            errors.extend(validate_status(changes["status"]))
        _require_valid(errors)

        with self._lock, self._db() as db:
            sessions = SessionRepository(db)
            record = sessions.get(session_id)
            if record is None:
                return None
            values = dict(changes)
            if "config" in values:
                merged = dict(record.config or default_config())
                merged.update(values["config"])
                values["config"] = merged
            values["last_activity_at"] = datetime.now()
            session = sessions.update(session_id, values).to_dict()

        self._publish(events.SESSION_UPDATED, session)
        return session

    def delete_session(self, session_id: str) -> bool:
        with self._lock, self._db() as db:
            deleted = SessionRepository(db).delete(session_id)
        if deleted:
            self.logger.info("Session deleted", session_id=session_id)
            self._publish(events.SESSION_DELETED, {"id": session_id})
        return deleted

    def set_mode(self, session_id: str, mode: str) -> Optional[Dict[str, Any]]:
        _require_valid(validate_mode(mode))
        with self._lock, self._db() as db:
            record = SessionRepository(db).update(
                session_id, {"current_mode": mode, "last_activity_at": datetime.now()}
            )
            if record is None:
                return None
            session = record.to_dict()
        self._publish(events.SESSION_MODE_CHANGED, {"session_id": session_id, "mode": mode})
        return session

    def set_status(self, session_id: str, status: str) -> Optional[Dict[str, Any]]:
        _require_valid(validate_status(status))
        with self._lock, self._db() as db:
            sessions = SessionRepository(db)
            record = sessions.get(session_id)
            if record is None:
                return None
            now = datetime.now()
            values: Dict[str, Any] = {"status": status, "last_activity_at": now}
            if status in ("completed", "error"):
                values["total_duration"] = int((now - record.started_at).total_seconds() * 1000)
            session = sessions.update(session_id, values).to_dict()
        self._publish(events.SESSION_STATUS_CHANGED, {"session_id": session_id, "status": status})
        return session

    def session_metrics(self, session_id: str) -> Dict[str, int]:
        session = self.get_session(session_id)
        if session is None:
            raise RecordNotFound("Session", session_id)
        return session["metrics"]

    # ============================================
    # ARTIFACTS
    # ============================================

    def create_artifact(
        self,
        session_id: str,
        name: str,
        type: str,
        path: str,
        content: str,
        dependencies: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        _require_valid(validate_artifact({
            "session_id": session_id,
            "name": name,
            "type": type,
            "path": path,
            "content": content,
        }))

        with self._lock, self._db() as db:
            session = SessionRepository(db).get(session_id)
            if session is None:
                raise RecordNotFound("Session", session_id)

            line_count = _line_count(content)
            char_count = len(content)
            now = datetime.now()
            artifacts = ArtifactRepository(db)
            record = artifacts.create(
                session_id=session_id,
                name=name,
                type=type,
                path=path,
                content=content,
                version=1,
                line_count=line_count,
                char_count=char_count,
                dependencies=list(dependencies or []),
                is_promoted=is_promoted(line_count, char_count, session.config or {}),
                created_at=now,
                updated_at=now,
            )
            artifacts.add_version(record, decision_type="create")
            self._bump_metrics(db, session_id, artifacts_created=1, lines_generated=line_count)
            artifact = record.to_dict()

        self.logger.info("Artifact created", artifact_id=artifact["id"], path=path, lines=line_count)
        self._publish(events.ARTIFACT_CREATED, artifact)
        return artifact

    def get_artifact(self, artifact_id: str) -> Optional[Dict[str, Any]]:
        with self._db() as db:
            record = ArtifactRepository(db).get(artifact_id)
            return record.to_dict() if record else None

    def list_artifacts(self, session_id: str) -> List[Dict[str, Any]]:
        with self._db() as db:
            return [a.to_dict() for a in ArtifactRepository(db).list_for_session(session_id)]

    def update_artifact(
        self,
        artifact_id: str,
        content: str,
        decision_type: str,
        decision_id: str = "",
    ) -> Optional[Dict[str, Any]]:
        """Replace an artifact's content and append a version history entry."""
        _require_valid(validate_artifact_update({"content": content, "decision_type": decision_type}))

        with self._lock, self._db() as db:
            record = ArtifactRepository(db).get(artifact_id)
            if record is None:
                return None
            artifact = self._write_content(db, record, content, decision_type, decision_id).to_dict()

        self.logger.info(
            "Artifact updated",
            artifact_id=artifact_id,
            version=artifact["version"],
            decision_type=decision_type,
        )
        self._publish(events.ARTIFACT_UPDATED, artifact)
        return artifact

    def _write_content(self, db, record, content: str, decision_type: str, decision_id: str):
        artifacts = ArtifactRepository(db)
        session = SessionRepository(db).get(record.session_id)
        config = (session.config if session else None) or default_config()

        old_line_count = record.line_count
        line_count = _line_count(content)
        char_count = len(content)
        record = artifacts.update(record.id, {
            "content": content,
            "version": record.version + 1,
            "line_count": line_count,
            "char_count": char_count,
            "is_promoted": is_promoted(line_count, char_count, config),
            "updated_at": datetime.now(),
        })
        artifacts.add_version(record, decision_type=decision_type, decision_id=decision_id)

        counter = "updates_performed" if decision_type == "update" else "rewrites_performed"
        self._bump_metrics(
            db,
            record.session_id,
            lines_generated=max(0, line_count - old_line_count),
            **{counter: 1},
        )
        return record

    def delete_artifact(self, artifact_id: str) -> bool:
        with self._lock, self._db() as db:
            deleted = ArtifactRepository(db).delete(artifact_id)
        if deleted:
            self._publish(events.ARTIFACT_DELETED, {"id": artifact_id})
        return deleted

    def artifact_versions(self, artifact_id: str) -> List[Dict[str, Any]]:
        with self._db() as db:
            return [v.to_dict() for v in ArtifactRepository(db).versions(artifact_id)]

    # ============================================
    # DECISIONS
    # ============================================

    def create_decision(
        self,
        session_id: str,
        artifact_id: str,
        type: str,
        reasoning: str = "",
        lines_changed: int = 0,
        locations_changed: int = 0,
        diff_summary: str = "",
        was_automatic: bool = True,
        iteration_number: int = 1,
        mode: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        errors = []
        if type not in DECISION_TYPES:
            errors.append(f"Field 'type' must be one of: {', '.join(DECISION_TYPES)}")
        if mode is not None:
            errors.extend(validate_mode(mode))
        _require_valid(errors)

        with self._lock, self._db() as db:
            session = SessionRepository(db).get(session_id)
            if session is None:
                raise RecordNotFound("Session", session_id)
            decision = self._insert_decision(
                db,
                session,
                artifact_id=artifact_id,
                type=type,
                reasoning=reasoning,
                lines_changed=lines_changed,
                locations_changed=locations_changed,
                diff_summary=diff_summary,
                was_automatic=was_automatic,
                iteration_number=iteration_number,
                mode=mode,
                timestamp=timestamp,
            ).to_dict()

        self._publish(events.DECISION_CREATED, decision)
        return decision

    def _insert_decision(self, db, session, mode: Optional[str], timestamp: Optional[datetime], **fields: Any):
        record = DecisionRepository(db).create(
            session_id=session.id,
            mode=mode or session.current_mode,
            timestamp=timestamp or datetime.now(),
            **fields,
        )
        self._bump_metrics(db, session.id, iteration_count=1)
        return record

    def record_change(
        self,
        artifact_id: str,
        content: str,
        type: str,
        reasoning: str = "",
        lines_changed: int = 0,
        locations_changed: int = 0,
        diff_summary: str = "",
        was_automatic: bool = True,
        iteration_number: int = 1,
        mode: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Record a decision and write the content it decided on.

        Both land in one transaction: if either fails, neither the decision
        nor the new version is stored.

        Returns:
            Tuple of (decision, updated_artifact)

        Raises:
            RecordNotFound: If the artifact or its session does not exist
            InvalidRecord: If type is not "update"/"rewrite" or mode is unknown
        """
        errors = validate_artifact_update({"content": content, "decision_type": type})
        if mode is not None:
            errors.extend(validate_mode(mode))
        _require_valid(errors)

        with self._lock, self._db() as db:
            record = ArtifactRepository(db).get(artifact_id)
            if record is None:
                raise RecordNotFound("Artifact", artifact_id)
            session = SessionRepository(db).get(record.session_id)
            if session is None:
                raise RecordNotFound("Session", record.session_id)

            decision_record = self._insert_decision(
                db,
                session,
                artifact_id=artifact_id,
                type=type,
                reasoning=reasoning,
                lines_changed=lines_changed,
                locations_changed=locations_changed,
                diff_summary=diff_summary,
                was_automatic=was_automatic,
                iteration_number=iteration_number,
                mode=mode,
                timestamp=timestamp,
            )
            record = self._write_content(db, record, content, type, decision_record.id)
            decision = decision_record.to_dict()
            artifact = record.to_dict()

        self.logger.info(
            "Change applied",
            artifact_id=artifact_id,
            decision_type=type,
            version=artifact["version"],
            iteration=iteration_number,
        )
        self._publish(events.DECISION_CREATED, decision)
        self._publish(events.ARTIFACT_UPDATED, artifact)
        return decision, artifact

    def get_decision(self, decision_id: str) -> Optional[Dict[str, Any]]:
        with self._db() as db:
            record = DecisionRepository(db).get(decision_id)
            return record.to_dict() if record else None

    def list_decisions(self, session_id: str) -> List[Dict[str, Any]]:
        with self._db() as db:
            return [d.to_dict() for d in DecisionRepository(db).list_for_session(session_id)]

    # ============================================
    # CLASSIFIER INPUTS
    # ============================================

    def get_prior_content(self, artifact_id: str) -> List[str]:
        artifact = self.get_artifact(artifact_id)
        if artifact is None:
            raise RecordNotFound("Artifact", artifact_id)
        return split_lines(artifact["content"])

    def get_thresholds(self, session_id: str) -> Thresholds:
        session = self.get_session(session_id)
        if session is None:
            raise RecordNotFound("Session", session_id)
        return Thresholds.from_config(session["config"])

    def count_recent_updates(
        self,
        artifact_id: str,
        within: timedelta,
        now: Optional[datetime] = None,
    ) -> int:
        """Number of "update" decisions on an artifact in the trailing window."""
        cutoff = (now or datetime.now()) - within
        with self._db() as db:
            return DecisionRepository(db).count_updates_since(artifact_id, cutoff)

    # ============================================
    # TOOL CALLS
    # ============================================

    def create_tool_call(
        self,
        session_id: str,
        name: str,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
        pipeline_step: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = parameters if parameters is not None else {}
        _require_valid(validate_tool_call({
            "session_id": session_id,
            "name": name,
            "description": description,
            "parameters": params,
        }))

        with self._lock, self._db() as db:
            session = SessionRepository(db).get(session_id)
            if session is None:
                raise RecordNotFound("Session", session_id)
            record = ToolCallRepository(db).create(
                session_id=session_id,
                name=name,
                description=description,
                parameters=params,
                status="pending",
                mode=session.current_mode,
                pipeline_step=pipeline_step,
                timestamp=datetime.now(),
            )
            self._bump_metrics(db, session_id, tool_calls_made=1)
            tool_call = record.to_dict()

        self._publish(events.TOOL_CALL_CREATED, tool_call)
        return tool_call

    def get_tool_call(self, tool_call_id: str) -> Optional[Dict[str, Any]]:
        with self._db() as db:
            record = ToolCallRepository(db).get(tool_call_id)
            return record.to_dict() if record else None

    def list_tool_calls(self, session_id: str) -> List[Dict[str, Any]]:
        with self._db() as db:
            return [t.to_dict() for t in ToolCallRepository(db).list_for_session(session_id)]

    def update_tool_call(self, tool_call_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        errors = [f"Field '{k}' cannot be updated" for k in sorted(set(changes) - TOOL_CALL_UPDATABLE_FIELDS)]
        if "status" in changes:
            errors.extend(validate_tool_call_status(changes["status"]))
        _require_valid(errors)

        with self._lock, self._db() as db:
            record = ToolCallRepository(db).update(tool_call_id, changes)
            if record is None:
                return None
            tool_call = record.to_dict()
        self._publish(events.TOOL_CALL_UPDATED, tool_call)
        return tool_call

    # ============================================
    # ERROR CONTEXTS
    # ============================================

    def create_error_context(
        self,
        session_id: str,
        error: str,
        stack_trace: Optional[str] = None,
        stale_context: Optional[List[str]] = None,
        cleaned_context: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        if not isinstance(error, str) or not error.strip():
            raise InvalidRecord(["Field 'error' must be a non-empty string"])

        with self._lock, self._db() as db:
            if SessionRepository(db).get(session_id) is None:
                raise RecordNotFound("Session", session_id)
            record = ErrorContextRepository(db).create(
                session_id=session_id,
                error=error,
                stack_trace=stack_trace,
                stale_context=list(stale_context or []),
                cleaned_context=list(cleaned_context or []),
                retry_count=0,
                resolved=False,
                timestamp=datetime.now(),
            )
            context = record.to_dict()

        self.logger.warning("Error context recorded", session_id=session_id, error=error)
        self._publish(events.ERROR_CONTEXT_CREATED, context)
        return context

    def list_error_contexts(self, session_id: str) -> List[Dict[str, Any]]:
        with self._db() as db:
            return [e.to_dict() for e in ErrorContextRepository(db).list_for_session(session_id)]

    def update_error_context(self, context_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        unknown = sorted(set(changes) - ERROR_CONTEXT_UPDATABLE_FIELDS)
        _require_valid([f"Field '{k}' cannot be updated" for k in unknown])

        with self._lock, self._db() as db:
            contexts = ErrorContextRepository(db)
            record = contexts.get(context_id)
            if record is None:
                return None
            newly_resolved = bool(changes.get("resolved")) and not record.resolved
            record = contexts.update(context_id, changes)
            if newly_resolved:
                self._bump_metrics(db, record.session_id, errors_recovered=1)
            context = record.to_dict()

        self._publish(events.ERROR_CONTEXT_UPDATED, context)
        return context
