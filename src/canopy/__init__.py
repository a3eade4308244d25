"""Canopy: hierarchical file and folder storage with sharing.

Ownership, per-user shares inherited down the folder tree, anonymous
share links, and cascading trash, over SQLModel and async SQLAlchemy.
"""

__version__ = "0.1.0"

from canopy._canopy import Canopy
from canopy._canopy_async import CanopyAsync
from canopy.config import CanopyConfig
from canopy.events import EventBus, EventType, ResourceEvent
from canopy.fs.blobs import LocalBlobStore, MemoryBlobStore
from canopy.fs.exceptions import (
    CanopyError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from canopy.fs.permissions import Permission, SharePermission
from canopy.fs.protocol import BlobStore, Notifier, UserDirectory
from canopy.fs.types import (
    DashboardSummary,
    DestroyResult,
    FolderListing,
    NodeInfo,
    Resource,
    ResourceKind,
    SharedByMeItem,
    SharedItem,
    ShareInfo,
    ShareLinkInfo,
    TokenGrant,
    TrashResult,
)
from canopy.fs.users import LoggingNotifier, StaticUserDirectory, UserInfo

__all__ = [
    "BlobStore",
    "Canopy",
    "CanopyAsync",
    "CanopyConfig",
    "CanopyError",
    "ConflictError",
    "DashboardSummary",
    "DestroyResult",
    "EventBus",
    "EventType",
    "FolderListing",
    "InvalidStateError",
    "LocalBlobStore",
    "LoggingNotifier",
    "MemoryBlobStore",
    "NodeInfo",
    "NotFoundError",
    "Notifier",
    "Permission",
    "Resource",
    "ResourceEvent",
    "ResourceKind",
    "ShareInfo",
    "ShareLinkInfo",
    "SharePermission",
    "SharedByMeItem",
    "SharedItem",
    "StaticUserDirectory",
    "StorageError",
    "TokenGrant",
    "TrashResult",
    "UnauthorizedError",
    "UserDirectory",
    "UserInfo",
    "ValidationError",
    "__version__",
]
