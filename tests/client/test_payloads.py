"""Tests for typed outbox payloads."""

import json

import pytest

from edusync.client.payloads import (
    ENTITY_COLLECTIONS,
    LessonPayload,
    PayloadError,
    ProgressPayload,
    QuizAttemptPayload,
    collection_for,
    parse_payload,
    payload_to_dict,
    serialize_payload,
)


class TestParsePayload:
    """Tests for decoding outbox data into payload models."""

    def test_dispatches_on_entity_type(self) -> None:
        """Should build the model matching the entity type."""
        payload = parse_payload("lesson", {"id": "l1", "courseId": "c1", "order": 2})

        assert isinstance(payload, LessonPayload)
        assert payload.entity_type == "lesson"
        assert payload.course_id == "c1"
        assert payload.order == 2

    def test_parses_json_string(self) -> None:
        payload = parse_payload("progress", json.dumps({"id": "p1", "progressPercentage": 50}))

        assert isinstance(payload, ProgressPayload)
        assert payload.progress_percentage == 50

    def test_quiz_attempt_is_its_own_type(self) -> None:
        payload = parse_payload("quiz_attempt", {"id": "a1", "quizId": "q1", "score": 8})

        assert isinstance(payload, QuizAttemptPayload)
        assert payload.quiz_id == "q1"

    def test_keeps_unknown_fields(self) -> None:
        """Fields without a model attribute should survive a round trip."""
        payload = parse_payload("lesson", {"id": "l1", "customField": {"a": 1}})

        assert payload_to_dict(payload)["customField"] == {"a": 1}

    def test_entity_type_in_data_is_overridden(self) -> None:
        """The outbox entity type wins over a tag inside the data."""
        payload = parse_payload("lesson", {"id": "l1", "entityType": "course"})
        assert isinstance(payload, LessonPayload)

    def test_unknown_entity_type(self) -> None:
        with pytest.raises(PayloadError, match="Unknown entity type"):
            parse_payload("spaceship", {"id": "x"})

    def test_missing_id(self) -> None:
        with pytest.raises(PayloadError):
            parse_payload("lesson", {"title": "no id"})

    def test_invalid_json(self) -> None:
        with pytest.raises(PayloadError, match="Invalid JSON"):
            parse_payload("lesson", "{not json")

    def test_non_object_json(self) -> None:
        with pytest.raises(PayloadError, match="must be an object"):
            parse_payload("lesson", "[1, 2]")

    def test_invalid_field_type(self) -> None:
        with pytest.raises(PayloadError):
            parse_payload("lesson", {"id": "l1", "order": "first"})


class TestSerialization:
    """Tests for converting payloads back to dictionaries."""

    def test_payload_to_dict_uses_camel_case(self) -> None:
        payload = LessonPayload(id="l1", course_id="c1", pdf_url="http://x/a.pdf")

        data = payload_to_dict(payload)

        assert data["courseId"] == "c1"
        assert data["pdfUrl"] == "http://x/a.pdf"
        assert "entity_type" not in data
        assert "entityType" not in data

    def test_mapping_passthrough(self) -> None:
        assert payload_to_dict({"id": "x", "any": 1}) == {"id": "x", "any": 1}

    def test_serialize_payload(self) -> None:
        assert json.loads(serialize_payload({"id": "x"})) == {"id": "x"}


class TestCollections:
    """Tests for the entity type -> collection mapping."""

    def test_collection_for(self) -> None:
        assert collection_for("progress") == "lesson_progress"
        assert collection_for("question") == "community_questions"
        assert collection_for("skill") == "user_skills"

    def test_every_entity_type_has_a_model(self) -> None:
        """Every mapped entity type should be parseable."""
        for entity_type in ENTITY_COLLECTIONS:
            assert parse_payload(entity_type, {"id": "x"}).entity_type == entity_type

    def test_unknown_collection(self) -> None:
        with pytest.raises(PayloadError):
            collection_for("unknown")
