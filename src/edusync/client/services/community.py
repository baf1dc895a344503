"""Community features: peer groups, Q&A, mentoring and moderation.

All records are created locally first and reach the backend through the
outbox, so posting works the same whether the device is online or not.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from edusync.client.services.base import EntityService, new_id
from edusync.core.types import utc_now_iso

if TYPE_CHECKING:
    from collections.abc import Sequence

    from edusync.client.store import Record

MENTOR_SESSION_STATUSES = ("scheduled", "in_progress", "completed", "cancelled")


class CommunityService(EntityService):
    """Offline-first community actions of the local user."""

    # === Peer groups ===

    def create_group(
        self,
        name: str,
        description: str = "",
        subject: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> Record:
        """Create a peer group with the local user as its only member."""
        return self._save(
            "community_group",
            {
                "id": new_id("group"),
                "name": name,
                "description": description,
                "subject": subject,
                "tags": list(tags or []),
                "members": [self._user_id],
                "createdBy": self._user_id,
            },
        )

    def get_groups(self) -> list[Record]:
        return self._list("community_group", order_by="name")

    # === Q&A ===

    def post_question(
        self,
        title: str,
        content: str,
        subject: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> Record:
        return self._save(
            "question",
            {
                "id": new_id("question"),
                "title": title,
                "content": content,
                "subject": subject,
                "tags": list(tags or []),
                "authorId": self._user_id,
                "askedAt": utc_now_iso(),
            },
        )

    def get_questions(self) -> list[Record]:
        """Questions, most recent first."""
        return self._list("question", order_by="-askedAt")

    def post_answer(self, question_id: str, content: str) -> Record:
        return self._save(
            "answer",
            {
                "id": new_id("answer"),
                "questionId": question_id,
                "content": content,
                "authorId": self._user_id,
                "answeredAt": utc_now_iso(),
            },
        )

    def get_answers(self, question_id: str) -> list[Record]:
        return self._list("answer", {"questionId": question_id}, order_by="answeredAt")

    # === Mentoring ===

    def book_mentor_session(
        self,
        mentor_id: str,
        scheduled_at: str,
        duration: float = 60,
        topic: str | None = None,
    ) -> Record:
        """Book a session with a mentor for the local user.

        Args:
            mentor_id: Mentor to book.
            scheduled_at: ISO-8601 start time.
            duration: Length in minutes.
            topic: Optional subject of the session.
        """
        return self._save(
            "mentor_session",
            {
                "id": new_id("session"),
                "mentorId": mentor_id,
                "studentId": self._user_id,
                "scheduledAt": scheduled_at,
                "duration": duration,
                "topic": topic,
                "status": "scheduled",
            },
        )

    def update_session_status(self, session_id: str, status: str) -> Record:
        """Change the status of a mentor session.

        Raises:
            ValueError: If the status is unknown.
            EntityNotFoundError: If the session does not exist.
        """
        if status not in MENTOR_SESSION_STATUSES:
            raise ValueError(f"Unknown session status: {status!r}")
        return self._update("mentor_session", session_id, {"status": status})

    def get_mentor_sessions(self) -> list[Record]:
        return self._list("mentor_session", {"studentId": self._user_id}, order_by="scheduledAt")

    # === Moderation ===

    def report_content(
        self,
        target_id: str,
        target_type: str,
        reason: str,
        description: str = "",
    ) -> Record:
        return self._save(
            "moderation_report",
            {
                "id": new_id("report"),
                "targetId": target_id,
                "targetType": target_type,
                "reason": reason,
                "description": description,
                "reporterId": self._user_id,
                "status": "pending",
            },
        )

    def get_reports(self) -> list[Record]:
        return self._list("moderation_report", {"reporterId": self._user_id})
