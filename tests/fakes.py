"""In-memory test doubles shared by the client tests."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any

from edusync.client.api import RemoteRecord, TransientError


class FakeRemote:
    """Scriptable RemoteAPI recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.pull_calls: list[list[str]] = []
        self.records: list[RemoteRecord] = []
        self.healthy = True
        # entity id -> number of submissions to fail before succeeding
        self.failures: dict[str, int] = {}
        # entity ids the backend refuses (submit returns False)
        self.rejected: set[str] = set()
        # When set, submit() waits on it (simulates a slow backend)
        self.gate: threading.Event | None = None
        self.submit_started = threading.Event()
        self.pull_error: Exception | None = None

    def submit(self, entity_type: str, action: str, payload: dict[str, Any]) -> bool:
        self.calls.append((entity_type, action, dict(payload)))
        self.submit_started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        entity_id = payload.get("id", "")
        if self.failures.get(entity_id, 0) > 0:
            self.failures[entity_id] -= 1
            raise TransientError("Service unavailable", 503)
        return entity_id not in self.rejected

    def pull_all(self, entity_types: Sequence[str]) -> list[RemoteRecord]:
        self.pull_calls.append(list(entity_types))
        if self.pull_error is not None:
            raise self.pull_error
        return [r for r in self.records if r.entity_type in entity_types]

    def health_check(self) -> bool:
        return self.healthy

    def submitted_ids(self) -> list[str]:
        return [payload["id"] for _, _, payload in self.calls]
