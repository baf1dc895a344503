"""Typed payloads for outbox entries.

This module provides:
- One pydantic model per synchronized entity type, tagged by ``entity_type``
- SyncPayload: discriminated union of all payload models
- parse_payload / serialize_payload: conversion at the outbox boundary
- ENTITY_COLLECTIONS: entity type -> local store collection

The outbox stores payloads as generic JSON strings. They are parsed into
the tagged union only when the sync driver dispatches them, so the driver
can route on ``payload.entity_type`` without inspecting raw dictionaries.

Field names are snake_case in Python and camelCase on the wire and in the
local store (``courseId``, ``updatedAt``...). Unknown fields are preserved.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

ENTITY_COLLECTIONS: dict[str, str] = {
    "course": "courses",
    "lesson": "lessons",
    "progress": "lesson_progress",
    "quiz": "quizzes",
    "quiz_attempt": "quiz_attempts",
    "timetable": "timetable",
    "community_group": "community_groups",
    "question": "community_questions",
    "answer": "community_answers",
    "mentor_session": "mentor_sessions",
    "moderation_report": "moderation_reports",
    "resume": "resumes",
    "skill": "user_skills",
    "interview_session": "interview_sessions",
}


class PayloadError(ValueError):
    """A payload cannot be decoded into a known entity model."""


class EntityPayload(BaseModel):
    """Fields shared by every synchronized record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str
    created_at: str | None = None
    updated_at: str | None = None


# === Learning ===


class CoursePayload(EntityPayload):
    entity_type: Literal["course"] = "course"
    title: str | None = None
    description: str | None = None
    instructor: str | None = None
    total_lessons: int | None = None
    estimated_duration: float | None = None
    difficulty: str | None = None
    tags: list[str] = Field(default_factory=list)


class LessonPayload(EntityPayload):
    entity_type: Literal["lesson"] = "lesson"
    title: str | None = None
    description: str | None = None
    content: str | None = None
    pdf_url: str | None = None
    duration: float | None = None
    course_id: str | None = None
    order: int | None = None


class ProgressPayload(EntityPayload):
    entity_type: Literal["progress"] = "progress"
    lesson_id: str | None = None
    user_id: str | None = None
    progress_percentage: float | None = None
    time_spent: float | None = None
    is_completed: bool | None = None
    last_position: float | None = None
    notes: str | None = None


class QuizPayload(EntityPayload):
    entity_type: Literal["quiz"] = "quiz"
    title: str | None = None
    description: str | None = None
    lesson_id: str | None = None
    course_id: str | None = None
    questions: list[dict[str, Any]] = Field(default_factory=list)
    time_limit: float | None = None
    passing_score: float | None = None


class QuizAttemptPayload(EntityPayload):
    entity_type: Literal["quiz_attempt"] = "quiz_attempt"
    quiz_id: str | None = None
    user_id: str | None = None
    answers: list[dict[str, Any]] = Field(default_factory=list)
    score: float | None = None
    total_points: float | None = None
    is_completed: bool | None = None
    is_passed: bool | None = None
    started_at: str | None = None
    completed_at: str | None = None


class TimetablePayload(EntityPayload):
    entity_type: Literal["timetable"] = "timetable"
    title: str | None = None
    type: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    location: str | None = None
    course_id: str | None = None
    is_recurring: bool | None = None
    recurring_pattern: str | None = None
    reminder_minutes: int | None = None


# === Community ===


class CommunityGroupPayload(EntityPayload):
    entity_type: Literal["community_group"] = "community_group"
    name: str | None = None
    description: str | None = None
    subject: str | None = None
    members: list[str] = Field(default_factory=list)
    created_by: str | None = None


class QuestionPayload(EntityPayload):
    entity_type: Literal["question"] = "question"
    title: str | None = None
    content: str | None = None
    subject: str | None = None
    tags: list[str] = Field(default_factory=list)
    author_id: str | None = None
    asked_at: str | None = None


class AnswerPayload(EntityPayload):
    entity_type: Literal["answer"] = "answer"
    question_id: str | None = None
    content: str | None = None
    author_id: str | None = None
    answered_at: str | None = None


class MentorSessionPayload(EntityPayload):
    entity_type: Literal["mentor_session"] = "mentor_session"
    mentor_id: str | None = None
    student_id: str | None = None
    scheduled_at: str | None = None
    duration: float | None = None
    topic: str | None = None
    status: str | None = None


class ModerationReportPayload(EntityPayload):
    entity_type: Literal["moderation_report"] = "moderation_report"
    target_id: str | None = None
    target_type: str | None = None
    reason: str | None = None
    description: str | None = None
    reporter_id: str | None = None
    status: str | None = None


# === Career tools ===


class ResumePayload(EntityPayload):
    entity_type: Literal["resume"] = "resume"
    user_id: str | None = None
    title: str | None = None
    template_id: str | None = None
    personal_info: dict[str, Any] = Field(default_factory=dict)
    sections: list[dict[str, Any]] = Field(default_factory=list)


class SkillPayload(EntityPayload):
    entity_type: Literal["skill"] = "skill"
    user_id: str | None = None
    name: str | None = None
    category: str | None = None
    level: str | None = None


class InterviewSessionPayload(EntityPayload):
    entity_type: Literal["interview_session"] = "interview_session"
    user_id: str | None = None
    role: str | None = None
    questions: list[dict[str, Any]] = Field(default_factory=list)
    score: float | None = None
    completed_at: str | None = None


SyncPayload = Annotated[
    Union[
        CoursePayload,
        LessonPayload,
        ProgressPayload,
        QuizPayload,
        QuizAttemptPayload,
        TimetablePayload,
        CommunityGroupPayload,
        QuestionPayload,
        AnswerPayload,
        MentorSessionPayload,
        ModerationReportPayload,
        ResumePayload,
        SkillPayload,
        InterviewSessionPayload,
    ],
    Field(discriminator="entity_type"),
]

_payload_adapter: TypeAdapter[Any] = TypeAdapter(SyncPayload)


def collection_for(entity_type: str) -> str:
    """Get the local store collection holding an entity type.

    Raises:
        PayloadError: If the entity type is unknown.
    """
    try:
        return ENTITY_COLLECTIONS[entity_type]
    except KeyError:
        raise PayloadError(f"Unknown entity type: {entity_type!r}") from None


def parse_payload(entity_type: str, data: Mapping[str, Any] | str) -> EntityPayload:
    """Decode raw outbox data into the payload model for its entity type.

    Args:
        entity_type: Tag selecting the model.
        data: Record as a mapping or as its JSON serialization.

    Returns:
        The typed payload.

    Raises:
        PayloadError: If the type is unknown or the data does not validate.
    """
    collection_for(entity_type)
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise PayloadError(f"Invalid JSON payload for {entity_type}: {e}") from e
    if not isinstance(data, Mapping):
        raise PayloadError(f"Payload for {entity_type} must be an object")

    try:
        return _payload_adapter.validate_python({**data, "entityType": entity_type})
    except ValidationError as e:
        raise PayloadError(f"Invalid {entity_type} payload: {e}") from e


def payload_to_dict(payload: EntityPayload | Mapping[str, Any]) -> dict[str, Any]:
    """Convert a payload into its wire/store dictionary (camelCase keys)."""
    if isinstance(payload, BaseModel):
        return payload.model_dump(by_alias=True, exclude={"entity_type"}, mode="json")
    return dict(payload)


def serialize_payload(payload: EntityPayload | Mapping[str, Any]) -> str:
    """Serialize a payload for storage in the outbox.

    Never rejects a payload because of its shape: values that are not
    JSON-serializable are stored as strings.
    """
    return json.dumps(payload_to_dict(payload), default=str, skipkeys=True)
