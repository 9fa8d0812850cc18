"""Tests for the pipeline state model."""

from __future__ import annotations

import pytest

from vecna.pipeline.states import (
    STATE_INFO,
    PipelineState,
    StateKind,
    classify,
    coerce_state,
    is_blocking,
    is_processing,
    stable_predecessor,
    status_message,
)


class TestClassify:
    def test_every_state_has_exactly_one_kind(self):
        for state in PipelineState:
            assert classify(state) in set(StateKind)
            assert not (is_blocking(state) and is_processing(state))

    def test_blocking_states(self):
        blocking = {s for s in PipelineState if is_blocking(s)}
        assert blocking == {PipelineState.rulebook_missing, PipelineState.review_pending}

    def test_processing_states(self):
        processing = {s for s in PipelineState if is_processing(s)}
        assert processing == {PipelineState.parsing, PipelineState.generating}

    def test_remaining_states_are_auto(self):
        auto = {s for s in PipelineState if classify(s) is StateKind.auto}
        assert len(auto) == 7
        assert PipelineState.published in auto


class TestOrdering:
    def test_ordered_runs_from_imported_to_published(self):
        ordered = PipelineState.ordered()
        assert len(ordered) == 11
        assert ordered[0] is PipelineState.imported
        assert ordered[-1] is PipelineState.published

    def test_every_state_has_metadata(self):
        assert set(STATE_INFO) == set(PipelineState)
        assert STATE_INFO[PipelineState.taxonomy_assigned].label == "Categorized"
        assert STATE_INFO[PipelineState.rulebook_missing].can_progress is False


class TestStablePredecessor:
    def test_parsing_rolls_back_to_rulebook_ready(self):
        assert stable_predecessor(PipelineState.parsing) is PipelineState.rulebook_ready

    def test_generating_rolls_back_to_taxonomy_assigned(self):
        assert stable_predecessor(PipelineState.generating) is PipelineState.taxonomy_assigned

    def test_non_processing_state_raises(self):
        with pytest.raises(ValueError):
            stable_predecessor(PipelineState.parsed)


class TestStatusMessage:
    def test_error_takes_precedence(self):
        assert status_message(PipelineState.parsed, "boom") == "Error: boom"

    def test_fixed_message_without_error(self):
        assert status_message(PipelineState.review_pending) == "Awaiting human review"


class TestCoerceState:
    def test_none_is_imported(self):
        assert coerce_state(None) is PipelineState.imported

    def test_string_value(self):
        assert coerce_state("generated") is PipelineState.generated

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError):
            coerce_state("archived")
