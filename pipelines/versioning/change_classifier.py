"""
Artifact Change Classification.

Responsibilities:
- Compute positional line-diff statistics between two versions of an artifact.
- Decide whether a proposed change is an "update" or a "rewrite".
- Emit a rationale naming every bound that was satisfied or violated.

Non-Responsibilities:
- No database access.
- No clock or window logic (the caller supplies the recent update count).
- No patch generation.

Invariant:
Given identical inputs, this module must always return
the same statistics, decision and rationale.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

UPDATE = "update"
REWRITE = "rewrite"

LINES = "lines"
LOCATIONS = "locations"
ITERATIONS = "iterations"


class InvalidConfiguration(ValueError):
    """Raised when thresholds, counts or line sequences are malformed."""
    pass


@dataclass(frozen=True)
class DiffStats:
    lines_changed: int = 0
    locations_changed: int = 0


@dataclass(frozen=True)
class Thresholds:
    """Bounds a change must stay within to be applied as an update."""

    max_lines_for_update: int
    max_locations_for_update: int
    max_iterations_per_update: int

    @classmethod
    def from_config(cls, config: Mapping) -> "Thresholds":
        """Build thresholds from a session config mapping."""
        missing = [k for k in THRESHOLD_KEYS if k not in config]
        if missing:
            raise InvalidConfiguration(f"Missing threshold(s): {', '.join(missing)}")
        return cls(**{k: config[k] for k in THRESHOLD_KEYS})


THRESHOLD_KEYS = (
    "max_lines_for_update",
    "max_locations_for_update",
    "max_iterations_per_update",
)


@dataclass(frozen=True)
class ClassificationResult:
    decision: str
    stats: DiffStats
    iteration_number: int
    current_iterations: int
    max_iterations: int
    rationale: str
    violations: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_update(self) -> bool:
        return self.decision == UPDATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision_type": self.decision,
            "lines_changed": self.stats.lines_changed,
            "locations_changed": self.stats.locations_changed,
            "iteration_number": self.iteration_number,
            "current_iterations": self.current_iterations,
            "max_iterations": self.max_iterations,
            "violations": list(self.violations),
            "reasoning": self.rationale,
        }


def split_lines(content: str) -> List[str]:
    """Split artifact content into lines. Empty content is a single empty line."""
    if not isinstance(content, str):
        raise InvalidConfiguration("Artifact content must be a string")
    return content.split("\n")


def _check_lines(name: str, lines: Any) -> None:
    if lines is None:
        raise InvalidConfiguration(f"'{name}' must be a sequence of lines, got None")
    if isinstance(lines, (str, bytes)) or not isinstance(lines, Sequence):
        raise InvalidConfiguration(
            f"'{name}' must be a sequence of lines, got {type(lines).__name__}"
        )
    for i, line in enumerate(lines):
        if not isinstance(line, str):
            raise InvalidConfiguration(
                f"'{name}' line {i} must be a string, got {type(line).__name__}"
            )


def _check_count(name: str, value: Any) -> None:
    # bool is an int subclass but never a meaningful bound
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(f"'{name}' must be an integer, got {value!r}")
    if value < 0:
        raise InvalidConfiguration(f"'{name}' must be >= 0, got {value}")


def _coerce_thresholds(thresholds: Any) -> Thresholds:
    if isinstance(thresholds, Thresholds):
        result = thresholds
    elif isinstance(thresholds, Mapping):
        result = Thresholds.from_config(thresholds)
    else:
        raise InvalidConfiguration(
            f"Thresholds must be a Thresholds or mapping, got {type(thresholds).__name__}"
        )
    for key in THRESHOLD_KEYS:
        _check_count(key, getattr(result, key))
    return result


def compute_diff_stats(before: Sequence[str], after: Sequence[str]) -> DiffStats:
    """
    Compare two line sequences position by position.

    A line past the end of the shorter sequence counts as changed. Each
    maximal run of changed positions is one location. Insertions and
    deletions shift every following line, so they over-count relative to
    an aligned diff.

    Args:
        before: Prior artifact lines
        after: Proposed artifact lines

    Returns:
        DiffStats with lines_changed and locations_changed
    """
    _check_lines("before", before)
    _check_lines("after", after)

    lines_changed = 0
    locations_changed = 0
    in_change = False

    for i in range(max(len(before), len(after))):
        old = before[i] if i < len(before) else None
        new = after[i] if i < len(after) else None
        if old is None or new is None or old != new:
            lines_changed += 1
            if not in_change:
                locations_changed += 1
                in_change = True
        else:
            in_change = False

    return DiffStats(lines_changed=lines_changed, locations_changed=locations_changed)


def classify(stats: DiffStats, thresholds: Any, recent_update_count: int) -> ClassificationResult:
    """
    Apply the update/rewrite policy to precomputed diff statistics.

    Lines and locations are inclusive bounds; the iteration cap is strict,
    so reaching it forces a rewrite even for an empty diff.

    Raises:
        InvalidConfiguration: On negative or non-integer thresholds/counts
    """
    limits = _coerce_thresholds(thresholds)
    _check_count("recent_update_count", recent_update_count)
    _check_count("lines_changed", stats.lines_changed)
    _check_count("locations_changed", stats.locations_changed)

    violations: List[str] = []
    reasons: List[str] = []

    if stats.lines_changed > limits.max_lines_for_update:
        violations.append(LINES)
        reasons.append(
            f"{stats.lines_changed} lines exceeds {limits.max_lines_for_update} limit"
        )
    if stats.locations_changed > limits.max_locations_for_update:
        violations.append(LOCATIONS)
        reasons.append(
            f"{stats.locations_changed} locations exceeds {limits.max_locations_for_update} limit"
        )
    if recent_update_count >= limits.max_iterations_per_update:
        violations.append(ITERATIONS)
        reasons.append(
            f"max iterations reached ({recent_update_count}/{limits.max_iterations_per_update})"
        )

    iteration_number = recent_update_count + 1
    if violations:
        decision = REWRITE
        rationale = "Change requires rewrite: " + "; ".join(reasons)
    else:
        decision = UPDATE
        rationale = (
            f"Change is small enough ({stats.lines_changed} lines, "
            f"{stats.locations_changed} locations) for an update. "
            f"Iteration {iteration_number}/{limits.max_iterations_per_update}."
        )

    return ClassificationResult(
        decision=decision,
        stats=stats,
        iteration_number=iteration_number,
        current_iterations=recent_update_count,
        max_iterations=limits.max_iterations_per_update,
        rationale=rationale,
        violations=tuple(violations),
    )


def evaluate(
    before: Sequence[str],
    after: Sequence[str],
    thresholds: Any,
    recent_update_count: int,
) -> ClassificationResult:
    """
    Classify a proposed change to an artifact.

    Configuration is validated before any diffing so a bad threshold is
    reported even when the line sequences are also malformed.

    Args:
        before: Prior artifact lines
        after: Proposed artifact lines
        thresholds: Thresholds instance or session config mapping
        recent_update_count: Prior "update" decisions inside the caller's window

    Returns:
        ClassificationResult

    Raises:
        InvalidConfiguration: On malformed input
    """
    limits = _coerce_thresholds(thresholds)
    _check_count("recent_update_count", recent_update_count)
    stats = compute_diff_stats(before, after)
    return classify(stats, limits, recent_update_count)
