"""Storage core: tree, shares, permission resolution, lifecycle, blobs."""

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
from canopy.fs.lifecycle import LifecycleManager
from canopy.fs.permissions import Permission, SharePermission
from canopy.fs.protocol import BlobStore, Notifier, UserDirectory
from canopy.fs.registry import ShareRegistry
from canopy.fs.resolver import PermissionResolver
from canopy.fs.sharing import ShareOutcome, SharingService
from canopy.fs.tree import TreeService
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
    "CanopyError",
    "ConflictError",
    "DashboardSummary",
    "DestroyResult",
    "FolderListing",
    "InvalidStateError",
    "LifecycleManager",
    "LocalBlobStore",
    "LoggingNotifier",
    "MemoryBlobStore",
    "NodeInfo",
    "NotFoundError",
    "Notifier",
    "Permission",
    "PermissionResolver",
    "Resource",
    "ResourceKind",
    "ShareInfo",
    "ShareLinkInfo",
    "ShareOutcome",
    "ShareRegistry",
    "SharePermission",
    "SharedByMeItem",
    "SharedItem",
    "SharingService",
    "StaticUserDirectory",
    "StorageError",
    "TokenGrant",
    "TrashResult",
    "TreeService",
    "UnauthorizedError",
    "UserDirectory",
    "UserInfo",
    "ValidationError",
]
