"""
Artifact Change Analysis.

Responsibilities:
- Gather classifier inputs from the directory (prior content, session
  thresholds, recent update count inside the trailing window).
- Invoke the change classifier.
- Optionally record the decision and apply the new content.

Non-Responsibilities:
- No diff or policy logic (see change_classifier).
- No window bookkeeping beyond choosing the cutoff.

Invariant:
A change is applied with exactly the decision type the classifier returned,
and the recorded iteration number is the one the classification reported.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from devmonitor.directory import ArtifactDirectory, RecordNotFound
from devmonitor.logger import get_logger

from .change_classifier import ClassificationResult, DiffStats, evaluate, split_lines

DEFAULT_UPDATE_WINDOW = timedelta(hours=1)


def summarize_diff(before_lines: int, after_lines: int, stats: DiffStats) -> str:
    """One-line summary stored with a decision, e.g. "+3/-0 lines, 2 changed in 1 location"."""
    added = max(0, after_lines - before_lines)
    removed = max(0, before_lines - after_lines)
    noun = "location" if stats.locations_changed == 1 else "locations"
    return (
        f"+{added}/-{removed} lines, {stats.lines_changed} changed "
        f"in {stats.locations_changed} {noun}"
    )


def analyze_change(
    directory: ArtifactDirectory,
    artifact_id: str,
    new_content: str,
    window: timedelta = DEFAULT_UPDATE_WINDOW,
    now: Optional[datetime] = None,
) -> ClassificationResult:
    """
    Classify replacing a stored artifact's content with new_content.

    Args:
        directory: Source of prior content, thresholds and decision history
        artifact_id: Artifact to compare against
        new_content: Proposed full content
        window: Trailing window for counting recent update decisions
        now: Reference time for the window (default: now)

    Returns:
        ClassificationResult

    Raises:
        RecordNotFound: If the artifact or its session does not exist
        InvalidConfiguration: If the session's thresholds are malformed
    """
    artifact = directory.get_artifact(artifact_id)
    if artifact is None:
        raise RecordNotFound("Artifact", artifact_id)

    before = directory.get_prior_content(artifact_id)
    thresholds = directory.get_thresholds(artifact["session_id"])
    recent = directory.count_recent_updates(artifact_id, window, now=now)

    result = evaluate(before, split_lines(new_content), thresholds, recent)

    logger = get_logger()
    logger.record_evaluation(result.decision, result.violations)
    logger.info(
        "Change classified",
        artifact_id=artifact_id,
        decision=result.decision,
        lines_changed=result.stats.lines_changed,
        locations_changed=result.stats.locations_changed,
        recent_updates=recent,
        violations=list(result.violations),
    )
    return result


def apply_change(
    directory: ArtifactDirectory,
    artifact_id: str,
    new_content: str,
    window: timedelta = DEFAULT_UPDATE_WINDOW,
    mode: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Classify a change, record the decision, and write the new content.

    The artifact is locked from counting recent updates until the new
    version is stored, so concurrent callers on one artifact each see the
    previous caller's decision and content. The decision and the content
    are committed together.

    Returns:
        Tuple of (decision, updated_artifact)
    """
    with directory.artifact_lock(artifact_id):
        result = analyze_change(directory, artifact_id, new_content, window=window, now=now)
        artifact = directory.get_artifact(artifact_id)
        if artifact is None:
            raise RecordNotFound("Artifact", artifact_id)

        return directory.record_change(
            artifact_id,
            new_content,
            type=result.decision,
            reasoning=result.rationale,
            lines_changed=result.stats.lines_changed,
            locations_changed=result.stats.locations_changed,
            diff_summary=summarize_diff(
                artifact["line_count"], len(split_lines(new_content)), result.stats
            ),
            was_automatic=True,
            iteration_number=result.iteration_number,
            mode=mode,
            timestamp=now,
        )
