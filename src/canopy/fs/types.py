"""Resource addressing and result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import ValidationError

if TYPE_CHECKING:
    from datetime import datetime

    from .permissions import Permission


class ResourceKind(str, Enum):
    """The two kinds of node in a storage tree."""

    FILE = "file"
    FOLDER = "folder"

    @classmethod
    def parse(cls, value: str | ResourceKind) -> ResourceKind:
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Invalid resource kind: {value!r}. Must be 'file' or 'folder'."
            ) from None


@dataclass(frozen=True, slots=True)
class Resource:
    """A file or folder, addressed uniformly by ``(kind, id)``."""

    kind: ResourceKind
    id: str

    @classmethod
    def folder(cls, folder_id: str) -> Resource:
        return cls(ResourceKind.FOLDER, folder_id)

    @classmethod
    def file(cls, file_id: str) -> Resource:
        return cls(ResourceKind.FILE, file_id)

    @property
    def is_folder(self) -> bool:
        return self.kind is ResourceKind.FOLDER

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


@dataclass
class NodeInfo:
    """File/folder metadata."""

    resource: Resource
    name: str
    owner_id: str
    parent_id: str | None = None
    size_bytes: int | None = None
    mime_type: str | None = None
    is_starred: bool = False
    is_deleted: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    permission: Permission | None = None

    @property
    def id(self) -> str:
        return self.resource.id

    @property
    def is_folder(self) -> bool:
        return self.resource.is_folder


@dataclass
class FolderListing:
    """Children of a folder (or of a user's root when ``folder`` is None)."""

    folder: NodeInfo | None
    folders: list[NodeInfo] = field(default_factory=list)
    files: list[NodeInfo] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        return len(self.folders) + len(self.files)


@dataclass
class DashboardSummary:
    """Counts of a user's live nodes plus their newest files."""

    total_files: int = 0
    folders: int = 0
    starred: int = 0
    recent_files: list[NodeInfo] = field(default_factory=list)


@dataclass
class ShareInfo:
    """Share metadata."""

    id: str
    resource: Resource
    permission: str
    shared_by: str
    shared_with: str | None = None
    shared_with_email: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass
class ShareLinkInfo:
    """A public share link on a resource."""

    token: str
    resource: Resource
    permission: str = "view"
    share_url: str | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass
class TokenGrant:
    """What an anonymous share-link token grants.

    ``root`` is the resource the link was generated for; ``resource`` is
    the node actually being accessed (the root itself or a descendant).
    """

    resource: Resource
    root: Resource
    name: str
    permission: Permission
    shared_by: str
    shared_by_name: str


@dataclass
class SharedItem:
    """A resource someone else shared with the caller."""

    share_id: str
    resource: Resource
    name: str
    owner_id: str
    permission: str
    shared_at: datetime | None = None
    is_starred: bool = False


@dataclass
class SharedByMeItem:
    """A resource the caller owns that has active shares."""

    resource: Resource
    name: str
    recipient_count: int = 0
    has_public_link: bool = False
    share_url: str | None = None


@dataclass
class TrashResult:
    """Result of moving a node (and its subtree) to the trash."""

    message: str
    resource: Resource
    deleted_at: datetime | None = None
    folders_trashed: int = 0
    files_trashed: int = 0


@dataclass
class DestroyResult:
    """Result of a permanent delete.

    ``blob_keys`` lists the blobs of every destroyed file; they are removed
    from the blob store only after the transaction commits.
    """

    message: str
    resource: Resource | None = None
    folders_deleted: int = 0
    files_deleted: int = 0
    shares_deleted: int = 0
    blob_keys: list[str] = field(default_factory=list)

    @property
    def total_deleted(self) -> int:
        return self.folders_deleted + self.files_deleted

    def merge(self, other: DestroyResult) -> None:
        self.folders_deleted += other.folders_deleted
        self.files_deleted += other.files_deleted
        self.shares_deleted += other.shares_deleted
        self.blob_keys.extend(other.blob_keys)
