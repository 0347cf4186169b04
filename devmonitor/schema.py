from typing import Any, Dict, List
import uuid

# Plain tags attached to records. Transitions between them are not guarded.
AGENT_MODES = ["deliberation", "action", "research"]
SESSION_STATUSES = ["active", "paused", "completed", "error"]
DECISION_TYPES = ["update", "rewrite", "create", "delete"]
APPLIED_DECISION_TYPES = ["update", "rewrite"]
TOOL_CALL_STATUSES = ["pending", "executing", "completed", "failed"]
ARTIFACT_TYPES = [
    "react-component",
    "html",
    "typescript",
    "javascript",
    "css",
    "json",
    "markdown",
]

DEFAULT_SESSION_CONFIG: Dict[str, Any] = {
    "max_iterations_per_update": 4,
    "max_lines_for_update": 20,
    "max_locations_for_update": 5,
    "char_threshold_for_artifact": 1500,
    "line_threshold_for_artifact": 20,
    "block_local_storage": True,
    "block_session_storage": True,
    "block_html_forms": True,
    "preferred_stack": ["react", "typescript", "express", "tailwindcss"],
}

DEFAULT_SESSION_METRICS: Dict[str, int] = {
    "lines_generated": 0,
    "artifacts_created": 0,
    "updates_performed": 0,
    "rewrites_performed": 0,
    "tool_calls_made": 0,
    "errors_recovered": 0,
    "iteration_count": 0,
}

INT_CONFIG_FIELDS = [
    "max_iterations_per_update",
    "max_lines_for_update",
    "max_locations_for_update",
    "char_threshold_for_artifact",
    "line_threshold_for_artifact",
]

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


def default_config() -> Dict[str, Any]:
    config = dict(DEFAULT_SESSION_CONFIG)
    config["preferred_stack"] = list(DEFAULT_SESSION_CONFIG["preferred_stack"])
    return config


def default_metrics() -> Dict[str, int]:
    return dict(DEFAULT_SESSION_METRICS)


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _is_uuid(v: Any) -> bool:
    if not isinstance(v, str):
        return False
    try:
        uuid.UUID(v)
        return True
    except ValueError:
        return False


def _check_name(data: Dict[str, Any], errors: List[str]) -> None:
    if "name" not in data:
        errors.append("Missing required field: name")
    elif not _is_non_empty_str(data["name"]):
        errors.append("Field 'name' must be a non-empty string")
    elif len(data["name"]) > NAME_MAX_LENGTH:
        errors.append(f"Field 'name' length must be <= {NAME_MAX_LENGTH}")


def _check_session_id(data: Dict[str, Any], errors: List[str]) -> None:
    if "session_id" not in data:
        errors.append("Missing required field: session_id")
    elif not _is_uuid(data["session_id"]):
        errors.append("Field 'session_id' must be a UUID string")


def validate_session(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []
    _check_name(data, errors)

    description = data.get("description")
    if description is not None:
        if not isinstance(description, str):
            errors.append("Field 'description' must be a string if provided")
        elif len(description) > DESCRIPTION_MAX_LENGTH:
            errors.append(f"Field 'description' length must be <= {DESCRIPTION_MAX_LENGTH}")

    if "config" in data:
        errors.extend(validate_config(data["config"]))
    return errors


def validate_config(config: Any) -> List[str]:
    """Check threshold overrides. Unknown keys are rejected."""
    if not isinstance(config, dict):
        return ["Field 'config' must be an object"]
    errors: List[str] = []
    for key, value in config.items():
        if key not in DEFAULT_SESSION_CONFIG:
            errors.append(f"Unknown config key: {key}")
        elif key in INT_CONFIG_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"Config '{key}' must be an integer")
            elif value < 0:
                errors.append(f"Config '{key}' must be >= 0")
    return errors


def validate_artifact(data: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_session_id(data, errors)
    _check_name(data, errors)

    if data.get("type") not in ARTIFACT_TYPES:
        errors.append(f"Field 'type' must be one of: {', '.join(ARTIFACT_TYPES)}")
    if not _is_non_empty_str(data.get("path")):
        errors.append("Field 'path' must be a non-empty string")
    if not isinstance(data.get("content"), str):
        errors.append("Field 'content' must be a string")
    return errors


def validate_artifact_update(data: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    if not isinstance(data.get("content"), str):
        errors.append("Field 'content' must be a string")
    if data.get("decision_type") not in APPLIED_DECISION_TYPES:
        errors.append("Field 'decision_type' must be 'update' or 'rewrite'")
    return errors


def validate_tool_call(data: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_session_id(data, errors)
    _check_name(data, errors)
    if not isinstance(data.get("description", ""), str):
        errors.append("Field 'description' must be a string")
    if not isinstance(data.get("parameters", {}), dict):
        errors.append("Field 'parameters' must be an object")
    return errors


def validate_mode(mode: Any) -> List[str]:
    if mode not in AGENT_MODES:
        return [f"Invalid mode: {mode!r}. Use one of: {', '.join(AGENT_MODES)}"]
    return []


def validate_status(status: Any) -> List[str]:
    if status not in SESSION_STATUSES:
        return [f"Invalid status: {status!r}. Use one of: {', '.join(SESSION_STATUSES)}"]
    return []


def validate_tool_call_status(status: Any) -> List[str]:
    if status not in TOOL_CALL_STATUSES:
        return [f"Invalid tool call status: {status!r}"]
    return []


def is_promoted(line_count: int, char_count: int, config: Dict[str, Any]) -> bool:
    """Artifacts past either size threshold are promoted to durable files."""
    line_limit = config.get("line_threshold_for_artifact", DEFAULT_SESSION_CONFIG["line_threshold_for_artifact"])
    char_limit = config.get("char_threshold_for_artifact", DEFAULT_SESSION_CONFIG["char_threshold_for_artifact"])
    return line_count > line_limit or char_count > char_limit
