"""
Tests for defensive parsing of extraction responses.

The model output is untrusted: nothing here may raise.
"""

import json
from datetime import datetime, timedelta

import pytest

from agents.extraction_parser import (
    callback_trigger_at,
    clamp_confidence,
    load_json_object,
    normalize_enum,
    parse_datetime,
    parse_extraction_response,
    strip_code_fences,
    validate_callback,
    validate_emotional_state,
    validate_goal_update,
    validate_insight_update,
    validate_new_entity,
    validate_new_goal,
    validate_new_insight,
)
from schemas.facts import ENTITY_TYPES


class TestResponseParsing:

    def test_strips_json_code_fence(self):
        raw = 'Here you go:\n```json\n{"new_insights": []}\n```\nthanks'

        assert strip_code_fences(raw) == '{"new_insights": []}'

    def test_fenced_response_parses(self):
        raw = '```json\n{"new_insights": [{"type": "preference", "content": "Likes hiking"}]}\n```'

        result = parse_extraction_response(raw)

        assert result.new_insights == [{"type": "preference", "content": "Likes hiking"}]

    def test_bare_fence_without_language(self):
        assert load_json_object('```\n{"callbacks": []}\n```') == {"callbacks": []}

    @pytest.mark.parametrize("raw", ["", None, "not json at all", "{broken", "[1, 2, 3]", '"just a string"'])
    def test_unparseable_gives_empty_result(self, raw):
        result = parse_extraction_response(raw)

        assert result.is_empty()
        assert result.emotional_state is None

    def test_unknown_keys_ignored_and_missing_keys_default(self):
        raw = json.dumps({"mood_ring": "blue", "new_entities": [{"name": "Alex", "type": "match"}]})

        result = parse_extraction_response(raw)

        assert result.new_entities == [{"name": "Alex", "type": "match"}]
        assert result.new_goals == []
        assert result.deactivated_insight_ids == []
        assert not hasattr(result, "mood_ring")

    def test_wrong_container_shapes_are_emptied(self):
        raw = json.dumps({
            "new_goals": "not a list",
            "callbacks": [{"content": "ok"}, "stray string", 42],
            "emotional_state": ["sad"],
        })

        result = parse_extraction_response(raw)

        assert result.new_goals == []
        assert result.callbacks == [{"content": "ok"}]
        assert result.emotional_state is None


class TestScalarCoercion:

    @pytest.mark.parametrize(
        "value, expected",
        [(None, 0.5), (1.5, 1.0), (-3, 0.1), (0.7, 0.7), ("0.9", 0.9), ("high", 0.5), (True, 0.5)],
    )
    def test_clamp_confidence(self, value, expected):
        assert clamp_confidence(value) == pytest.approx(expected)

    def test_normalize_enum_is_case_insensitive(self):
        assert normalize_enum("  Match ", ENTITY_TYPES) == "match"
        assert normalize_enum("stranger", ENTITY_TYPES) is None
        assert normalize_enum(None, ENTITY_TYPES) is None

    def test_parse_datetime_converts_offsets_to_naive_utc(self, fixed_now):
        parsed = parse_datetime("2026-02-07T19:00:00-05:00", fixed_now)

        assert parsed == datetime(2026, 2, 8, 0, 0)
        assert parsed.tzinfo is None

    def test_parse_datetime_accepts_z_suffix(self, fixed_now):
        assert parse_datetime("2026-02-07T19:00:00Z", fixed_now) == datetime(2026, 2, 7, 19, 0)

    def test_callback_unparseable_trigger_defaults_to_tomorrow(self, fixed_now):
        assert callback_trigger_at("not-a-date", fixed_now) == fixed_now + timedelta(hours=24)
        assert callback_trigger_at(None, fixed_now) == fixed_now + timedelta(hours=24)


class TestRowValidators:

    def test_new_entity_requires_name_and_type(self):
        assert validate_new_entity({"name": "Alex"}) is None
        assert validate_new_entity({"type": "match"}) is None
        assert validate_new_entity({"name": "  ", "type": "match"}) is None

    def test_new_entity_normalizes_bad_platform_and_status(self):
        entity = validate_new_entity({"name": "Alex", "type": "MATCH", "platform": "okcupid", "status": "vibing"})

        assert entity.type == "match"
        assert entity.platform is None
        assert entity.status == "unknown"

    def test_new_goal_interval_defaults_by_category(self, fixed_now):
        fitness = validate_new_goal({"category": "fitness", "title": "Run a 10k"}, fixed_now)
        style = validate_new_goal({"category": "style", "title": "New haircut"}, fixed_now)
        career = validate_new_goal({"category": "career", "title": "Get promoted", "check_in_interval": "bogus"}, fixed_now)

        assert fitness.check_in_interval == "weekly"
        assert style.check_in_interval == "monthly"
        assert career.check_in_interval == "biweekly"
        assert fitness.source == "inferred"
        assert fitness.confidence == 0.5

    def test_new_goal_rejects_unknown_category(self, fixed_now):
        assert validate_new_goal({"category": "hobbies", "title": "Knit"}, fixed_now) is None

    def test_goal_update_needs_a_change(self):
        assert validate_goal_update({"title": "Run a 10k"}) is None
        assert validate_goal_update({"title": "Run a 10k", "status": "finished"}) is None

        update = validate_goal_update({"title": "Run a 10k", "status": "Completed"})
        assert update.status == "completed"

    def test_emotional_state_clamps_and_defaults(self):
        reading = validate_emotional_state({"dominant_emotion": "Anxious", "valence": -4, "triggers": "work"})

        assert reading.dominant_emotion == "anxious"
        assert reading.valence == -1.0
        assert reading.arousal == 0.5
        assert reading.triggers == ["work"]

    def test_emotional_state_rejects_unknown_emotion(self):
        assert validate_emotional_state({"dominant_emotion": "meh", "valence": 0.1}) is None
        assert validate_emotional_state({}) is None

    def test_callback_defaults(self, fixed_now):
        callback = validate_callback({"content": "Ask about the interview", "trigger_at": "not-a-date"}, fixed_now)

        assert callback.trigger_at == fixed_now + timedelta(hours=24)
        assert callback.trigger_type == "time_based"
        assert callback.priority == "medium"

    def test_callback_requires_content(self, fixed_now):
        assert validate_callback({"trigger_type": "milestone"}, fixed_now) is None

    def test_new_insight_clamps_confidence(self):
        insight = validate_new_insight({"type": "personality", "content": "Dry sense of humour", "confidence": 1.5})

        assert insight.confidence == 1.0

    def test_insight_update_accepts_digit_string_id(self):
        update = validate_insight_update({"id": "7", "confidence": -3})

        assert update.id == 7
        assert update.confidence == 0.1

    def test_insight_update_without_changes_is_dropped(self):
        assert validate_insight_update({"id": 7}) is None
        assert validate_insight_update({"content": "orphan"}) is None
