"""Career tools: resumes, skills and interview practice sessions."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from edusync.client.services.base import EntityService

if TYPE_CHECKING:
    from edusync.client.store import Record


class CareerToolsService(EntityService):
    """Offline-first career data of the local user."""

    # === Resumes ===

    def get_resumes(self) -> list[Record]:
        return self._list("resume", {"userId": self._user_id}, order_by="-updatedAt")

    def save_resume(self, resume: Mapping[str, Any]) -> Record:
        return self._save("resume", {"userId": self._user_id, **resume})

    def delete_resume(self, resume_id: str) -> bool:
        return self._remove("resume", resume_id)

    # === Skills ===

    def get_user_skills(self) -> list[Record]:
        return self._list("skill", {"userId": self._user_id}, order_by=["category", "name"])

    def save_skill(self, skill: Mapping[str, Any]) -> Record:
        return self._save("skill", {"userId": self._user_id, **skill})

    def delete_skill(self, skill_id: str) -> bool:
        return self._remove("skill", skill_id)

    # === Interview practice ===

    def get_interview_sessions(self) -> list[Record]:
        return self._list(
            "interview_session", {"userId": self._user_id}, order_by="-createdAt"
        )

    def save_interview_session(self, session: Mapping[str, Any]) -> Record:
        return self._save("interview_session", {"userId": self._user_id, **session})
