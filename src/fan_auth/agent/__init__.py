"""Document storage and signed publishing for the Agent role."""
from __future__ import annotations

from fan_auth.agent.storage import (
    DocumentPublisher,
    FileSystemStorage,
    Modified,
    NotModified,
    StorageDriver,
)

__all__ = [
    "DocumentPublisher",
    "FileSystemStorage",
    "Modified",
    "NotModified",
    "StorageDriver",
]
