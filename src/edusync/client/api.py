"""Remote backend API used by the sync driver.

This module provides:
- RemoteAPI: Protocol the sync driver depends on
- RemoteRecord: A record returned by a bulk pull
- HTTPRemoteAPI: httpx implementation of RemoteAPI
- APIError and subclasses: Classified remote failures

The sync driver only needs three capabilities: submit one mutation, pull
records for a set of entity types, and check that the backend is
reachable. Transport details stay in HTTPRemoteAPI.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

if TYPE_CHECKING:
    from edusync.core.config import ServerConfig

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class ConflictError(APIError):
    """The backend rejected a mutation because of a conflicting version."""


class PermanentError(APIError):
    """The backend rejected a mutation (validation error, unknown entity...)."""


class TransientError(APIError):
    """The backend failed in a way that may succeed on retry (5xx)."""


@dataclass
class RemoteRecord:
    """A record returned by a bulk pull."""

    entity_type: str
    data: dict[str, Any]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteRecord:
        """Create from API response dictionary."""
        return cls(entity_type=data["entityType"], data=dict(data["data"]))


class RemoteAPI(Protocol):
    """Capabilities of the remote backend required by the sync driver."""

    def submit(self, entity_type: str, action: str, payload: dict[str, Any]) -> bool:
        """Send one mutation.

        Returns:
            True if the backend accepted it, False if it was refused.
            Implementations may also raise to signal failure.
        """
        ...

    def pull_all(self, entity_types: Sequence[str]) -> list[RemoteRecord]:
        """Fetch every record of the given entity types."""
        ...

    def health_check(self) -> bool:
        """Check if the backend is reachable."""
        ...


def _detail(response: httpx.Response, default: str) -> str:
    try:
        return str(response.json().get("detail", default))
    except (ValueError, AttributeError):
        return response.text or default


class HTTPRemoteAPI:
    """HTTP client for the learning platform backend.

    Endpoints:
        POST /api/sync/{entity_type}   {"action", "entityId", "data"}
        GET  /api/sync/pull?types=...  {"records": [{"entityType", "data"}]}
        GET  /health
    """

    def __init__(self, config: ServerConfig) -> None:
        """Initialize the HTTP client.

        Args:
            config: Server URL, token and timeout.
        """
        self._config = config
        headers = {}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._client = httpx.Client(
            base_url=config.server_url,
            timeout=config.timeout,
            headers=headers,
            verify=config.verify_ssl,
        )

    @property
    def server_url(self) -> str:
        """Base URL of the backend."""
        return self._config.server_url

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HTTPRemoteAPI:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        status = response.status_code
        if status == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if status == 409:
            raise ConflictError(_detail(response, "Conflict"), 409)
        if status >= 500:
            raise TransientError(_detail(response, "Server error"), status)
        if status >= 400:
            raise PermanentError(_detail(response, "Request rejected"), status)
        return response

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the server is healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Sync operations ===

    def submit(self, entity_type: str, action: str, payload: dict[str, Any]) -> bool:
        """Send one mutation to the backend.

        Args:
            entity_type: Tag of the mutated entity.
            action: create, update or delete.
            payload: Record data (camelCase keys).

        Returns:
            True if the backend accepted the mutation.

        Raises:
            APIError: If the backend rejected or failed the request.
            httpx.RequestError: On network errors and timeouts.
        """
        response = self._handle_response(
            self._client.post(
                f"/api/sync/{entity_type}",
                json={
                    "action": action,
                    "entityId": payload.get("id"),
                    "data": payload,
                },
            )
        )
        if response.status_code == 204 or not response.content:
            return True
        try:
            body = response.json()
        except ValueError:
            return True
        return bool(body.get("accepted", True)) if isinstance(body, dict) else True

    def pull_all(self, entity_types: Sequence[str]) -> list[RemoteRecord]:
        """Fetch every record of the given entity types.

        Args:
            entity_types: Entity tags to pull.

        Returns:
            Records in server order.
        """
        response = self._handle_response(
            self._client.get(
                "/api/sync/pull",
                params={"types": ",".join(entity_types)},
            )
        )
        records = [RemoteRecord.from_dict(r) for r in response.json()["records"]]
        logger.debug("Pulled %d records for %s", len(records), ", ".join(entity_types))
        return records
