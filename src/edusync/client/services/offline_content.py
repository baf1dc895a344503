"""Offline copies of large assets (PDFs, media, lesson bundles).

This module provides:
- OfflineContentService: Downloads assets and tracks them in ``offline_content``
- StorageUsage: Disk usage summary
- ContentDownloadError: Download failure

References live in the local store but never go through the outbox: they
describe this device's cache, not user data. Files are written to a
temporary path and renamed on success, so an interrupted download never
leaves a partial file behind a reference.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from edusync.core.types import utc_now_iso

if TYPE_CHECKING:
    from edusync.client.store import LocalStore, Record

logger = logging.getLogger(__name__)

CONTENT_COLLECTION = "offline_content"

CONTENT_TYPES = ("lesson", "quiz", "pdf", "video", "audio")

DEFAULT_EXTENSIONS = {
    "pdf": ".pdf",
    "video": ".mp4",
    "audio": ".mp3",
    "lesson": ".json",
    "quiz": ".json",
}

_URL_EXTENSION = re.compile(r"\.([A-Za-z0-9]+)(?:\?|#|$)")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class ContentDownloadError(Exception):
    """Failed to download an asset."""


@dataclass
class StorageUsage:
    """Disk space used by offline content."""

    total_size: int
    item_count: int


def _extension_for(content_type: str, url: str) -> str:
    match = _URL_EXTENSION.search(url.rsplit("/", 1)[-1])
    if match:
        return f".{match.group(1).lower()}"
    return DEFAULT_EXTENSIONS.get(content_type, ".dat")


class OfflineContentService:
    """Manages downloaded assets in the content directory.

    Usage:
        content = OfflineContentService(store, config.content_dir)
        ref = content.download_content("pdf", "lesson_1", "https://cdn/x.pdf")
        path = content.get_local_path("lesson_1", "pdf")
        content.evict_lru(max_bytes=500 * 1024 * 1024)
    """

    def __init__(
        self,
        store: LocalStore,
        content_dir: Path,
        http_client: httpx.Client | None = None,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the service.

        Args:
            store: Local store holding ``offline_content`` references.
            content_dir: Directory receiving downloaded files.
            http_client: Client used for downloads (created if None).
            timeout: Download timeout in seconds when creating the client.
        """
        self._store = store
        self._content_dir = Path(content_dir)
        self._timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client

    @property
    def content_dir(self) -> Path:
        """Directory holding downloaded files."""
        return self._content_dir

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout, follow_redirects=True)
        return self._client

    def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    # === Download ===

    def download_content(
        self,
        content_type: str,
        entity_id: str,
        url: str,
        filename: str | None = None,
    ) -> Record:
        """Download an asset and record it as available offline.

        Downloading again for the same entity and type replaces the file.

        Args:
            content_type: lesson, quiz, pdf, video or audio.
            entity_id: Entity the asset belongs to.
            url: Source URL.
            filename: File name override (default derived from the entity).

        Returns:
            The offline content reference.

        Raises:
            ValueError: If the content type is unknown.
            ContentDownloadError: If the download fails.
        """
        if content_type not in CONTENT_TYPES:
            raise ValueError(f"Unknown content type: {content_type!r}")

        name = filename or f"{entity_id}{_extension_for(content_type, url)}"
        local_path = self._content_dir / content_type / _UNSAFE_CHARS.sub("_", name)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = local_path.with_suffix(local_path.suffix + ".tmp")

        logger.info("Downloading %s for %s from %s", content_type, entity_id, url)
        try:
            size = 0
            with self._http().stream("GET", url) as response:
                response.raise_for_status()
                with open(tmp_path, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
                        size += len(chunk)
        except httpx.HTTPError as e:
            tmp_path.unlink(missing_ok=True)
            raise ContentDownloadError(f"Failed to download {url}: {e}") from e

        # Atomic rename: tmp -> final path
        tmp_path.replace(local_path)

        now = utc_now_iso()
        reference = {
            "type": content_type,
            "entityId": entity_id,
            "localPath": str(local_path),
            "originalUrl": url,
            "fileSize": size,
            "downloadedAt": now,
            "lastAccessedAt": now,
        }
        where = {"entityId": entity_id, "type": content_type}
        with self._store.transaction():
            existing = self._store.find_one(CONTENT_COLLECTION, where)
            if existing is None:
                record = self._store.insert(
                    CONTENT_COLLECTION, {"id": f"content_{uuid.uuid4().hex}", **reference}
                )
            else:
                if existing.get("localPath") != reference["localPath"]:
                    Path(existing["localPath"]).unlink(missing_ok=True)
                self._store.update(CONTENT_COLLECTION, reference, {"id": existing["id"]})
                record = {**existing, **reference}

        logger.info("Downloaded %s (%d bytes)", local_path.name, size)
        return record

    # === Lookup ===

    def get_offline_content(
        self, entity_id: str, content_type: str | None = None
    ) -> list[Record]:
        where = {"entityId": entity_id}
        if content_type is not None:
            where["type"] = content_type
        return self._store.find_many(CONTENT_COLLECTION, where)

    def get_local_path(self, entity_id: str, content_type: str) -> Path | None:
        """Get the local file of an asset and mark it as recently used.

        Returns:
            The file path, or None if the asset is not available offline.
        """
        record = self._store.find_one(
            CONTENT_COLLECTION, {"entityId": entity_id, "type": content_type}
        )
        if record is None:
            return None
        self._store.update(
            CONTENT_COLLECTION, {"lastAccessedAt": utc_now_iso()}, {"id": record["id"]}
        )
        return Path(record["localPath"])

    def is_content_downloaded(self, entity_id: str, content_type: str) -> bool:
        return (
            self._store.find_one(
                CONTENT_COLLECTION, {"entityId": entity_id, "type": content_type}
            )
            is not None
        )

    # === Removal ===

    def _remove(self, record: Record) -> None:
        Path(record["localPath"]).unlink(missing_ok=True)
        self._store.delete(CONTENT_COLLECTION, {"id": record["id"]})

    def delete_offline_content(self, entity_id: str, content_type: str | None = None) -> int:
        """Delete the files and references of an entity's assets.

        Returns:
            Number of references deleted.
        """
        records = self.get_offline_content(entity_id, content_type)
        for record in records:
            self._remove(record)
        if records:
            logger.info("Deleted %d offline item(s) for %s", len(records), entity_id)
        return len(records)

    def get_storage_usage(self) -> StorageUsage:
        records = self._store.find_many(CONTENT_COLLECTION)
        return StorageUsage(
            total_size=sum(int(r.get("fileSize") or 0) for r in records),
            item_count=len(records),
        )

    def evict_lru(self, max_bytes: int) -> list[str]:
        """Delete least recently used assets until usage fits in max_bytes.

        Returns:
            Ids of the evicted references.
        """
        records = self._store.find_many(CONTENT_COLLECTION, order_by="lastAccessedAt")
        total = sum(int(r.get("fileSize") or 0) for r in records)
        evicted: list[str] = []
        for record in records:
            if total <= max_bytes:
                break
            self._remove(record)
            total -= int(record.get("fileSize") or 0)
            evicted.append(record["id"])
        if evicted:
            logger.info("Evicted %d offline item(s), %d bytes in use", len(evicted), total)
        return evicted

    def cleanup_orphaned_files(self) -> int:
        """Reconcile the content directory with the references.

        Deletes files no reference points to, and references whose file
        is gone.

        Returns:
            Number of files and references removed.
        """
        records = self._store.find_many(CONTENT_COLLECTION)
        referenced = {Path(r["localPath"]).resolve() for r in records}
        removed = 0

        for record in records:
            if not Path(record["localPath"]).exists():
                self._store.delete(CONTENT_COLLECTION, {"id": record["id"]})
                removed += 1

        if self._content_dir.exists():
            for path in self._content_dir.rglob("*"):
                if path.is_file() and path.resolve() not in referenced:
                    path.unlink()
                    removed += 1

        if removed:
            logger.info("Offline content cleanup: %d orphan(s) removed", removed)
        return removed
