"""Domain services writing through the local store and the outbox."""

from edusync.client.services.base import EntityNotFoundError, EntityService, new_id
from edusync.client.services.career import CareerToolsService
from edusync.client.services.community import CommunityService
from edusync.client.services.learning import LearningService
from edusync.client.services.offline_content import (
    ContentDownloadError,
    OfflineContentService,
    StorageUsage,
)

__all__ = [
    # Base
    "EntityNotFoundError",
    "EntityService",
    "new_id",
    # Services
    "CareerToolsService",
    "CommunityService",
    "LearningService",
    "OfflineContentService",
    # Offline content
    "ContentDownloadError",
    "StorageUsage",
]
