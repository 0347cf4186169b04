"""
Tests for the update-vs-rewrite change classifier.
"""

import pytest

from pipelines.versioning.change_classifier import (
    DiffStats,
    InvalidConfiguration,
    Thresholds,
    classify,
    compute_diff_stats,
    evaluate,
    split_lines,
    UPDATE,
    REWRITE,
    LINES,
    LOCATIONS,
    ITERATIONS,
)


class TestComputeDiffStats:
    """Test positional line diff statistics."""

    def test_identical_sequences(self):
        """Identical content has no changes."""
        lines = ["a", "b", "c"]
        assert compute_diff_stats(lines, list(lines)) == DiffStats(0, 0)

    def test_empty_sequences(self):
        """Two empty sequences are identical."""
        assert compute_diff_stats([], []) == DiffStats(0, 0)

    def test_single_line_edit(self):
        """One edited line is one line in one location."""
        stats = compute_diff_stats(["a", "b", "c"], ["a", "x", "c"])
        assert stats == DiffStats(lines_changed=1, locations_changed=1)

    def test_contiguous_run_is_one_location(self):
        """Adjacent changed lines form a single location."""
        stats = compute_diff_stats(["a", "b", "c", "d", "e"], ["a", "X", "Y", "Z", "e"])
        assert stats == DiffStats(lines_changed=3, locations_changed=1)

    def test_separated_changes_are_two_locations(self):
        """Changes split by an equal line count as separate locations."""
        before = ["a", "b", "c", "d", "e", "f"]
        after = ["A", "b", "c", "d", "E", "f"]
        stats = compute_diff_stats(before, after)
        assert stats.lines_changed == 2
        assert stats.locations_changed == 2

    def test_pure_creation(self):
        """Empty before: every line differs in one run."""
        after = [f"line {i}" for i in range(32)]
        assert compute_diff_stats([], after) == DiffStats(32, 1)

    def test_full_deletion(self):
        """Empty after: every prior line counts as changed."""
        assert compute_diff_stats(["a", "b", "c"], []) == DiffStats(3, 1)

    def test_disjoint_equal_length(self):
        """Completely different content is one contiguous run."""
        assert compute_diff_stats(["a", "b", "c", "d"], ["w", "x", "y", "z"]) == DiffStats(4, 1)

    def test_appended_lines_extend_trailing_run(self):
        """Lines past the shorter sequence join the run they follow."""
        stats = compute_diff_stats(["a", "b"], ["a", "X", "c", "d"])
        assert stats == DiffStats(lines_changed=3, locations_changed=1)

    def test_appended_lines_after_equal_prefix(self):
        """Appending after an unchanged prefix is a single new location."""
        stats = compute_diff_stats(["a", "b"], ["a", "b", "c"])
        assert stats == DiffStats(lines_changed=1, locations_changed=1)

    def test_insertion_cascades_positionally(self):
        """An inserted line shifts every following line (positional, not aligned)."""
        before = ["a", "b", "c", "d"]
        after = ["a", "NEW", "b", "c", "d"]
        stats = compute_diff_stats(before, after)
        assert stats == DiffStats(lines_changed=4, locations_changed=1)

    def test_whitespace_is_significant(self):
        """Comparison is exact string equality."""
        assert compute_diff_stats(["a "], ["a"]) == DiffStats(1, 1)

    def test_inputs_not_mutated(self):
        """Inputs are left untouched."""
        before = ["a", "b"]
        after = ["a", "c", "d"]
        compute_diff_stats(before, after)
        assert before == ["a", "b"]
        assert after == ["a", "c", "d"]

    def test_accepts_tuples(self):
        """Any sequence of strings works."""
        assert compute_diff_stats(("a", "b"), ("a", "c")) == DiffStats(1, 1)

    @pytest.mark.parametrize("content", [
        [],
        [""],
        ["only"],
        ["x", "x", "x"],
        ["def f():", "    return 1", ""],
    ])
    def test_idempotence(self, content):
        """Comparing content with itself is always (0, 0)."""
        assert compute_diff_stats(content, content) == DiffStats(0, 0)


class TestClassify:
    """Test the update/rewrite policy."""

    def test_zero_change_is_update(self, thresholds):
        """No change with iterations left is an update."""
        result = classify(DiffStats(0, 0), thresholds, 0)
        assert result.decision == UPDATE
        assert result.violations == ()

    def test_line_bound_is_inclusive(self, thresholds):
        """Exactly max_lines changed still qualifies as an update."""
        result = classify(DiffStats(20, 1), thresholds, 0)
        assert result.decision == UPDATE

    def test_line_bound_exceeded(self, thresholds):
        """One line over the limit forces a rewrite."""
        result = classify(DiffStats(21, 1), thresholds, 0)
        assert result.decision == REWRITE
        assert result.violations == (LINES,)

    def test_location_bound_is_inclusive(self, thresholds):
        """Exactly max_locations still qualifies as an update."""
        assert classify(DiffStats(5, 5), thresholds, 0).decision == UPDATE

    def test_location_bound_exceeded(self, thresholds):
        """Too many locations forces a rewrite."""
        result = classify(DiffStats(6, 6), thresholds, 0)
        assert result.decision == REWRITE
        assert result.violations == (LOCATIONS,)

    def test_iteration_cap_is_strict(self, thresholds):
        """Reaching the iteration cap forces a rewrite even with no diff."""
        result = classify(DiffStats(0, 0), thresholds, 4)
        assert result.decision == REWRITE
        assert result.violations == (ITERATIONS,)

    def test_one_below_iteration_cap(self, thresholds):
        """One iteration below the cap is still an update."""
        result = classify(DiffStats(0, 0), thresholds, 3)
        assert result.decision == UPDATE
        assert result.iteration_number == 4

    def test_all_bounds_violated(self, thresholds):
        """Every violated bound is reported."""
        result = classify(DiffStats(50, 9), thresholds, 7)
        assert result.decision == REWRITE
        assert result.violations == (LINES, LOCATIONS, ITERATIONS)
        assert "50 lines exceeds 20 limit" in result.rationale
        assert "9 locations exceeds 5 limit" in result.rationale
        assert "max iterations reached" in result.rationale

    def test_update_rationale(self, thresholds):
        """Update rationale states counts and the iteration it represents."""
        result = classify(DiffStats(3, 1), thresholds, 1)
        assert result.rationale == (
            "Change is small enough (3 lines, 1 locations) for an update. Iteration 2/4."
        )

    def test_zero_thresholds(self):
        """Zero thresholds are valid: nothing qualifies as an update."""
        zero = Thresholds(0, 0, 0)
        result = classify(DiffStats(0, 0), zero, 0)
        assert result.decision == REWRITE
        assert result.violations == (ITERATIONS,)

    def test_accepts_config_mapping(self):
        """Thresholds can come straight from a session config."""
        config = {
            "max_lines_for_update": 20,
            "max_locations_for_update": 5,
            "max_iterations_per_update": 4,
            "preferred_stack": ["react"],
        }
        assert classify(DiffStats(1, 1), config, 0).decision == UPDATE

    def test_monotonic_in_lines(self, thresholds):
        """Growing lines past the limit never flips back to update."""
        decisions = [classify(DiffStats(n, 1), thresholds, 0).decision for n in range(21, 60)]
        assert set(decisions) == {REWRITE}

    def test_monotonic_in_locations(self, thresholds):
        """Growing locations past the limit never flips back to update."""
        decisions = [classify(DiffStats(20, k), thresholds, 0).decision for k in range(6, 21)]
        assert set(decisions) == {REWRITE}

    def test_result_reports_iteration_fields(self, thresholds):
        result = classify(DiffStats(1, 1), thresholds, 2)
        assert result.current_iterations == 2
        assert result.max_iterations == 4
        assert result.iteration_number == 3

    def test_to_dict(self, thresholds):
        """Dict form carries the recommendation fields."""
        data = classify(DiffStats(25, 2), thresholds, 0).to_dict()
        assert data["decision_type"] == REWRITE
        assert data["lines_changed"] == 25
        assert data["locations_changed"] == 2
        assert data["violations"] == [LINES]
        assert data["reasoning"].startswith("Change requires rewrite:")


class TestEvaluate:
    """End-to-end scenarios through evaluate()."""

    def test_scenario_single_edit(self, thresholds):
        result = evaluate(["a", "b", "c"], ["a", "x", "c"], thresholds, 0)
        assert result.stats == DiffStats(1, 1)
        assert result.decision == UPDATE

    def test_scenario_contiguous_block(self, thresholds):
        result = evaluate(["a", "b", "c", "d", "e"], ["a", "X", "Y", "Z", "e"], thresholds, 0)
        assert result.stats == DiffStats(3, 1)
        assert result.decision == UPDATE

    def test_scenario_new_file_too_large(self, thresholds):
        """A 32-line creation is a rewrite because of lines, not locations."""
        after = [f"const v{i} = {i};" for i in range(32)]
        result = evaluate([], after, thresholds, 0)
        assert result.stats == DiffStats(32, 1)
        assert result.decision == REWRITE
        assert result.violations == (LINES,)
        assert "32 lines exceeds 20 limit" in result.rationale
        assert "locations" not in result.rationale

    def test_scenario_two_locations(self, thresholds):
        before = ["a", "b", "c", "d", "e"]
        after = ["A", "b", "c", "d", "E"]
        assert evaluate(before, after, thresholds, 0).stats.locations_changed == 2

    def test_deterministic(self, thresholds):
        """Identical inputs give identical results."""
        before = ["a", "b", "c"]
        after = ["a", "q", "c", "d"]
        assert evaluate(before, after, thresholds, 1) == evaluate(before, after, thresholds, 1)

    def test_with_split_lines(self, thresholds):
        before = split_lines("one\ntwo\nthree")
        after = split_lines("one\n2\nthree")
        assert evaluate(before, after, thresholds, 0).stats == DiffStats(1, 1)


class TestInvalidConfiguration:
    """Malformed input is rejected instead of classified."""

    def test_negative_iteration_cap(self):
        with pytest.raises(InvalidConfiguration):
            evaluate(["a"], ["a"], Thresholds(20, 5, -1), 0)

    def test_negative_line_limit(self):
        with pytest.raises(InvalidConfiguration):
            evaluate(["a"], ["a"], Thresholds(-1, 5, 4), 0)

    def test_negative_location_limit(self):
        with pytest.raises(InvalidConfiguration):
            classify(DiffStats(0, 0), Thresholds(20, -3, 4), 0)

    def test_negative_recent_count(self, thresholds):
        with pytest.raises(InvalidConfiguration):
            evaluate(["a"], ["a"], thresholds, -1)

    def test_non_integer_threshold(self):
        with pytest.raises(InvalidConfiguration):
            evaluate(["a"], ["a"], Thresholds(20.5, 5, 4), 0)

    def test_missing_threshold_key(self):
        with pytest.raises(InvalidConfiguration, match="max_iterations_per_update"):
            evaluate(["a"], ["a"], {"max_lines_for_update": 1, "max_locations_for_update": 1}, 0)

    def test_none_before(self, thresholds):
        with pytest.raises(InvalidConfiguration):
            evaluate(None, ["a"], thresholds, 0)

    def test_none_after(self, thresholds):
        with pytest.raises(InvalidConfiguration):
            compute_diff_stats(["a"], None)

    def test_string_instead_of_lines(self, thresholds):
        """A raw string is not a sequence of lines."""
        with pytest.raises(InvalidConfiguration):
            evaluate("a\nb", ["a", "b"], thresholds, 0)

    def test_non_string_line(self, thresholds):
        with pytest.raises(InvalidConfiguration):
            evaluate(["a", 2], ["a", "b"], thresholds, 0)

    def test_is_value_error(self):
        """Callers catching ValueError also catch configuration errors."""
        assert issubclass(InvalidConfiguration, ValueError)


class TestSplitLines:

    def test_empty_content_is_one_empty_line(self):
        assert split_lines("") == [""]

    def test_trailing_newline_keeps_empty_last_line(self):
        assert split_lines("a\nb\n") == ["a", "b", ""]

    def test_rejects_non_string(self):
        with pytest.raises(InvalidConfiguration):
            split_lines(None)
