"""Learning content: courses, lessons, progress, quizzes and timetable."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from edusync.client.services.base import EntityService

if TYPE_CHECKING:
    from edusync.client.store import Record


class LearningService(EntityService):
    """Reads and offline-first writes for learning content.

    Usage:
        learning = LearningService(store, outbox, user_id="u1")
        learning.save_lesson({"id": "l1", "courseId": "c1", "title": "Intro", "order": 1})
        lessons = learning.get_lessons_by_course("c1")
    """

    # === Courses ===

    def get_all_courses(self) -> list[Record]:
        return self._list("course", order_by="title")

    def get_course(self, course_id: str) -> Record | None:
        return self._get("course", course_id)

    def save_course(self, course: Mapping[str, Any]) -> Record:
        return self._save("course", course)

    # === Lessons ===

    def get_all_lessons(self) -> list[Record]:
        return self._list("lesson", order_by=["courseId", "order"])

    def get_lessons_by_course(self, course_id: str) -> list[Record]:
        return self._list("lesson", {"courseId": course_id}, order_by="order")

    def get_lesson(self, lesson_id: str) -> Record | None:
        return self._get("lesson", lesson_id)

    def save_lesson(self, lesson: Mapping[str, Any]) -> Record:
        return self._save("lesson", lesson)

    # === Lesson progress ===

    def get_all_lesson_progress(self) -> list[Record]:
        """Progress records of the local user."""
        return self._list("progress", {"userId": self._user_id})

    def get_lesson_progress(self, lesson_id: str) -> Record | None:
        records = self._list("progress", {"lessonId": lesson_id, "userId": self._user_id})
        return records[0] if records else None

    def save_lesson_progress(self, progress: Mapping[str, Any]) -> Record:
        """Save progress for a lesson.

        There is one progress record per (lesson, user): saving again for
        the same lesson updates it, whatever id the caller passes.
        """
        data = {"userId": self._user_id, **progress}
        return self._save(
            "progress",
            data,
            match={"lessonId": data.get("lessonId"), "userId": data["userId"]},
        )

    # === Quizzes ===

    def get_all_quizzes(self) -> list[Record]:
        return self._list("quiz", order_by=["courseId", "title"])

    def get_quizzes_by_course(self, course_id: str) -> list[Record]:
        return self._list("quiz", {"courseId": course_id}, order_by="title")

    def get_quiz(self, quiz_id: str) -> Record | None:
        return self._get("quiz", quiz_id)

    def save_quiz(self, quiz: Mapping[str, Any]) -> Record:
        return self._save("quiz", quiz)

    # === Quiz attempts ===

    def get_all_quiz_attempts(self) -> list[Record]:
        return self._list("quiz_attempt", {"userId": self._user_id}, order_by="-startedAt")

    def get_quiz_attempts(self, quiz_id: str) -> list[Record]:
        return self._list(
            "quiz_attempt",
            {"quizId": quiz_id, "userId": self._user_id},
            order_by="-startedAt",
        )

    def save_quiz_attempt(self, attempt: Mapping[str, Any]) -> Record:
        return self._save("quiz_attempt", {"userId": self._user_id, **attempt})

    # === Timetable ===

    def get_all_timetable_entries(self) -> list[Record]:
        return self._list("timetable", order_by="startTime")

    def get_timetable_entry(self, entry_id: str) -> Record | None:
        return self._get("timetable", entry_id)

    def save_timetable_entry(self, entry: Mapping[str, Any]) -> Record:
        return self._save("timetable", entry)

    def delete_timetable_entry(self, entry_id: str) -> bool:
        return self._remove("timetable", entry_id)
