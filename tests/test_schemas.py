"""Tests for template and rep error documents."""

import json

import pytest
from pydantic import ValidationError

from repcoach.cv.rep_error_scorer import RepErrorScorer
from repcoach.schemas import (
    ExerciseTemplateSchema,
    RepErrorSchema,
    RepErrorSummarySchema,
    template_from_document,
    template_from_json,
    template_to_document,
    template_to_json,
)


def assert_states_equal(a, b):
    assert len(a.states) == len(b.states)
    for sa, sb in zip(a.states, b.states):
        assert (sa.id, sa.name, sa.description) == (sb.id, sb.name, sb.description)
        assert sa.representative_timestamp == pytest.approx(sb.representative_timestamp, abs=1e-6)
        assert sa.angle_stats.keys() == sb.angle_stats.keys()
        for name, stats in sa.angle_stats.items():
            other = sb.angle_stats[name]
            for field in ("mean", "min", "max", "std_dev"):
                assert getattr(stats, field) == pytest.approx(getattr(other, field), abs=1e-6)
        assert len(sa.occurrences) == len(sb.occurrences)
        for oa, ob in zip(sa.occurrences, sb.occurrences):
            assert oa.start_time == pytest.approx(ob.start_time, abs=1e-6)
            assert oa.end_time == pytest.approx(ob.end_time, abs=1e-6)


def assert_transitions_equal(a, b):
    assert len(a.transitions) == len(b.transitions)
    for ta, tb in zip(a.transitions, b.transitions):
        assert (ta.from_state_id, ta.to_state_id) == (tb.from_state_id, tb.to_state_id)
        assert ta.duration == pytest.approx(tb.duration, abs=1e-6)
        for name, change in ta.angle_changes.items():
            assert change.delta == pytest.approx(tb.angle_changes[name].delta, abs=1e-6)


class TestTemplateDocuments:

    def test_json_round_trip(self, learned_template):
        restored = template_from_json(template_to_json(learned_template))

        assert_states_equal(learned_template, restored)
        assert_transitions_equal(learned_template, restored)
        assert restored.canonical_state_sequence == learned_template.canonical_state_sequence
        assert restored.recommended_reps == learned_template.recommended_reps
        assert restored.metadata == learned_template.metadata

    def test_document_is_plain_json(self, learned_template):
        document = template_to_document(learned_template)
        text = json.dumps(document)
        restored = template_from_document(json.loads(text))

        assert document["exercise_type"] == "knee-extension"
        assert document["states"][0]["occurrences"][0]["duration"] == pytest.approx(0.45)
        assert_states_equal(learned_template, restored)

    def test_rejects_single_state(self, learned_template):
        document = template_to_document(learned_template)
        document["states"] = document["states"][:1]
        with pytest.raises(ValidationError):
            ExerciseTemplateSchema.model_validate(document)

    def test_rejects_unknown_sequence_state(self, learned_template):
        document = template_to_document(learned_template)
        document["canonical_state_sequence"].append("state_9")
        with pytest.raises(ValidationError):
            template_from_document(document)

    def test_rejects_out_of_range_confidence(self, learned_template):
        document = template_to_document(learned_template)
        document["confidence_score"] = 140
        with pytest.raises(ValidationError):
            template_from_document(document)


class TestRepErrorDocuments:

    def test_from_scorer_output(self, template):
        scorer = RepErrorScorer(template)
        rep_error = scorer.score({"right_knee": 100.0, "right_leg_segment": 90.0}, 1, 1.0)

        schema = RepErrorSchema.model_validate(rep_error)
        assert schema.rep_number == 1
        assert schema.per_angle_error["right_knee"].percent_error == pytest.approx(50.0)

        summary = RepErrorSummarySchema.model_validate(scorer.summary)
        assert summary.rep_count == 1
        assert summary.worst_error().rep_number == 1
        assert json.loads(summary.model_dump_json())["error_trend"] == "stable"
