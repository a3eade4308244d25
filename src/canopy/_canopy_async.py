"""CanopyAsync: primary async class wiring the storage services."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from canopy.config import CanopyConfig
from canopy.events import EventBus, EventType, ResourceEvent
from canopy.fs.blobs import MemoryBlobStore
from canopy.fs.exceptions import InvalidStateError, NotFoundError
from canopy.fs.lifecycle import LifecycleManager
from canopy.fs.permissions import Permission
from canopy.fs.registry import ShareRegistry
from canopy.fs.resolver import PermissionResolver
from canopy.fs.sharing import SharingService
from canopy.fs.tree import TreeService
from canopy.fs.types import DashboardSummary, FolderListing, Resource, ResourceKind
from canopy.fs.users import LoggingNotifier, StaticUserDirectory
from canopy.fs.utils import compute_content_hash, guess_mime_type
from canopy.models.nodes import File, Folder
from canopy.models.shares import FileShare, FolderShare

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

    from canopy.fs.permissions import SharePermission
    from canopy.fs.protocol import BlobStore, Notifier, UserDirectory
    from canopy.fs.sharing import ShareOutcome
    from canopy.fs.types import (
        DestroyResult,
        NodeInfo,
        ShareInfo,
        ShareLinkInfo,
        SharedByMeItem,
        SharedItem,
        TokenGrant,
        TrashResult,
    )
    from canopy.models.nodes import FileBase, FolderBase
    from canopy.models.shares import FileShareBase, FolderShareBase

logger = logging.getLogger(__name__)


class CanopyAsync:
    """Async facade over the tree, share, permission, and lifecycle services.

    Every public method runs in its own session and transaction: it
    commits on success and rolls back on any exception.  Side effects
    that live outside the database (blob deletion, share notifications,
    events) run only after the commit and never undo it.

    Engine-based usage::

        engine = create_async_engine("postgresql+asyncpg://...")
        canopy = CanopyAsync(engine=engine, users=directory)
        await canopy.open()
        folder = await canopy.create_folder("alice", "Reports")
        await canopy.share("alice", folder.id, "folder", "bob@example.com", "view")

    URL-based usage (the engine is owned and disposed on close)::

        async with CanopyAsync(url="sqlite+aiosqlite:///canopy.db") as canopy:
            ...
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine | None = None,
        session_factory: Callable[..., AsyncSession] | None = None,
        url: str | None = None,
        blob_store: BlobStore | None = None,
        users: UserDirectory | None = None,
        notifier: Notifier | None = None,
        config: CanopyConfig | None = None,
        event_bus: EventBus | None = None,
        folder_model: type[FolderBase] | None = None,
        file_model: type[FileBase] | None = None,
        folder_share_model: type[FolderShareBase] | None = None,
        file_share_model: type[FileShareBase] | None = None,
    ) -> None:
        given = sum(x is not None for x in (engine, session_factory, url))
        if given != 1:
            raise ValueError("Provide exactly one of engine, session_factory, or url")

        self._owns_engine = False
        if url is not None:
            engine = create_async_engine(url, echo=False)
            self._owns_engine = True
        self._engine = engine
        if session_factory is None:
            session_factory = async_sessionmaker(
                engine, class_=AsyncSession, expire_on_commit=False
            )
        self._session_factory = session_factory

        self._config = config or CanopyConfig()
        self._blobs: BlobStore = blob_store if blob_store is not None else MemoryBlobStore()
        self._users: UserDirectory = users if users is not None else StaticUserDirectory()
        self._notifier: Notifier = notifier if notifier is not None else LoggingNotifier()
        self._event_bus = event_bus if event_bus is not None else EventBus()

        self._models: list[Any] = [
            folder_model or Folder,
            file_model or File,
            folder_share_model or FolderShare,
            file_share_model or FileShare,
        ]
        fm, filem, fsm, filesm = self._models

        self._tree = TreeService(fm, filem, max_name_length=self._config.max_name_length)
        self._registry = ShareRegistry(fsm, filesm)
        self._resolver = PermissionResolver(
            self._tree,
            self._registry,
            self._users,
            max_ancestor_depth=self._config.max_ancestor_depth,
        )
        self._lifecycle = LifecycleManager(self._tree, self._registry, self._resolver)
        self._sharing = SharingService(
            self._tree,
            self._registry,
            self._resolver,
            self._lifecycle,
            self._users,
            self._config,
        )

        self._opened = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create missing tables (when configured).  Safe to call twice."""
        if self._opened:
            return
        self._opened = True
        if not self._config.create_tables:
            return
        if self._engine is None:
            logger.debug("No engine available; skipping table creation")
            return
        async with self._engine.begin() as conn:
            for model in self._models:
                await conn.run_sync(
                    lambda c, m=model: m.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_engine and self._engine is not None:
            await self._engine.dispose()

    async def __aenter__(self) -> CanopyAsync:
        await self.open()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        if not self._opened:
            await self.open()
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ------------------------------------------------------------------
    # Post-commit side effects
    # ------------------------------------------------------------------

    async def _emit(
        self,
        event_type: EventType,
        resource: Resource,
        user_id: str | None = None,
        detail: str | None = None,
    ) -> None:
        await self._event_bus.emit(ResourceEvent(event_type, resource, user_id, detail))

    async def _delete_blobs(self, keys: list[str]) -> None:
        for key in keys:
            try:
                await self._blobs.delete(key)
            except Exception:
                logger.warning("Failed to delete blob %s", key, exc_info=True)

    async def _notify(self, outcome: ShareOutcome, sharer_id: str) -> None:
        try:
            sharer = await self._users.by_id(sharer_id)
            await self._notifier.notify_share(
                outcome.recipient,
                outcome.resource_name,
                outcome.share.permission,
                sharer,
            )
        except Exception:
            logger.warning(
                "Share notification to %s failed", outcome.recipient.email, exc_info=True
            )

    @staticmethod
    def _resource(resource_id: str, kind: ResourceKind | str) -> Resource:
        return Resource(ResourceKind.parse(kind), resource_id)

    # ------------------------------------------------------------------
    # Permission resolution
    # ------------------------------------------------------------------

    async def resolve_permission(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> Permission:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            return await self._resolver.resolve(session, user_id, resource)

    async def resolve_by_token(self, token: str) -> TokenGrant:
        async with self._session() as session:
            return await self._resolver.resolve_token(session, token)

    async def resolve_descendant(
        self, token: str, descendant_id: str, kind: ResourceKind | str
    ) -> TokenGrant:
        resource = self._resource(descendant_id, kind)
        async with self._session() as session:
            return await self._resolver.resolve_descendant(session, token, resource)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def move_to_trash(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> TrashResult:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            result = await self._lifecycle.move_to_trash(session, user_id, resource)
        await self._emit(EventType.RESOURCE_TRASHED, resource, user_id)
        return result

    async def restore(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> None:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            await self._lifecycle.restore(session, user_id, resource)
        await self._emit(EventType.RESOURCE_RESTORED, resource, user_id)

    async def permanently_delete(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> DestroyResult:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            result = await self._lifecycle.permanently_delete(session, user_id, resource)
        await self._delete_blobs(result.blob_keys)
        if result.total_deleted:
            await self._emit(EventType.RESOURCE_DESTROYED, resource, user_id)
        return result

    async def list_trash(self, user_id: str) -> list[NodeInfo]:
        async with self._session() as session:
            folders, files = await self._lifecycle.list_trash(session, user_id)
            return [
                self._tree.to_info(node, Permission.OWNER) for node in [*folders, *files]
            ]

    async def empty_trash(self, user_id: str) -> DestroyResult:
        async with self._session() as session:
            result = await self._lifecycle.empty_trash(session, user_id)
        await self._delete_blobs(result.blob_keys)
        return result

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    async def share(
        self,
        user_id: str,
        resource_id: str,
        kind: ResourceKind | str,
        recipient_email: str,
        permission: str | SharePermission,
        *,
        notify: bool = False,
        expires_at: datetime | None = None,
    ) -> ShareInfo:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            outcome = await self._sharing.share_with_user(
                session,
                user_id,
                resource,
                recipient_email,
                permission,
                expires_at=expires_at,
            )
        if notify:
            await self._notify(outcome, user_id)
        await self._emit(EventType.SHARE_CREATED, resource, user_id, outcome.recipient.id)
        return outcome.share

    async def generate_link(
        self,
        user_id: str,
        resource_id: str,
        kind: ResourceKind | str,
        *,
        expires_at: datetime | None = None,
    ) -> ShareLinkInfo:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            link, created = await self._sharing.generate_share_link(
                session, user_id, resource, expires_at=expires_at
            )
        if created:
            await self._emit(EventType.LINK_CREATED, resource, user_id)
        return link

    async def get_link(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> ShareLinkInfo | None:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            return await self._sharing.get_share_link(session, user_id, resource)

    async def revoke_link(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> None:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            revoked = await self._sharing.revoke_share_link(session, user_id, resource)
        if revoked:
            await self._emit(EventType.LINK_REVOKED, resource, user_id)

    async def revoke_share(
        self, user_id: str, resource_id: str, kind: ResourceKind | str, share_id: str
    ) -> None:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            await self._sharing.revoke_share(session, user_id, resource, share_id)
        await self._emit(EventType.SHARE_REVOKED, resource, user_id, share_id)

    async def update_share_permission(
        self,
        user_id: str,
        resource_id: str,
        kind: ResourceKind | str,
        share_id: str,
        permission: str | SharePermission,
    ) -> ShareInfo:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            return await self._sharing.update_share_permission(
                session, user_id, resource, share_id, permission
            )

    async def remove_all_access(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> None:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            revoked, trashed = await self._sharing.remove_all_access(session, user_id, resource)
        events = []
        if revoked:
            events.append(ResourceEvent(EventType.SHARE_REVOKED, resource, user_id))
        if trashed is not None:
            events.append(ResourceEvent(EventType.RESOURCE_TRASHED, resource, user_id))
        await self._event_bus.emit_all(events)

    async def remove_self(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> None:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            share = await self._sharing.remove_self(session, user_id, resource)
        await self._emit(EventType.SHARE_REVOKED, resource, user_id, share.id)

    async def list_shares(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> list[ShareInfo]:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            return await self._sharing.list_shares(session, user_id, resource)

    async def shared_with_me(self, user_id: str) -> list[SharedItem]:
        async with self._session() as session:
            return await self._sharing.shared_with_me(session, user_id)

    async def shared_by_me(self, user_id: str) -> list[SharedByMeItem]:
        async with self._session() as session:
            return await self._sharing.shared_by_me(session, user_id)

    async def toggle_shared_star(self, user_id: str, file_id: str) -> bool:
        async with self._session() as session:
            return await self._sharing.toggle_shared_star(session, user_id, file_id)

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    async def get_node(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> NodeInfo:
        """Metadata of a node the caller can view."""
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            node, permission = await self._resolver.require(
                session, user_id, resource, Permission.VIEW
            )
            return self._tree.to_info(node, permission)

    async def create_folder(
        self, user_id: str, name: str, parent_id: str | None = None
    ) -> NodeInfo:
        async with self._session() as session:
            if parent_id is not None:
                parent, _ = await self._resolver.require(
                    session, user_id, Resource.folder(parent_id), Permission.EDIT
                )
                if parent.is_deleted:
                    raise InvalidStateError("Cannot create a folder inside a folder in trash")
            folder = await self._tree.create_folder(session, user_id, name, parent_id)
            return self._tree.to_info(folder, Permission.OWNER)

    async def rename(
        self, user_id: str, resource_id: str, kind: ResourceKind | str, name: str
    ) -> NodeInfo:
        resource = self._resource(resource_id, kind)
        async with self._session() as session:
            node, permission = await self._resolver.require(
                session, user_id, resource, Permission.EDIT
            )
            if node.is_deleted:
                raise InvalidStateError(f"Cannot rename a {resource.kind.value} in trash")
            await self._tree.rename(session, node, name)
            return self._tree.to_info(node, permission)

    async def move_folder(
        self, user_id: str, folder_id: str, new_parent_id: str | None = None
    ) -> NodeInfo:
        async with self._session() as session:
            folder, _ = await self._resolver.require(
                session, user_id, Resource.folder(folder_id), Permission.OWNER
            )
            if folder.is_deleted:
                raise InvalidStateError("Cannot move a folder that is in trash")
            new_parent = None
            if new_parent_id is not None:
                new_parent, _ = await self._resolver.require(
                    session, user_id, Resource.folder(new_parent_id), Permission.OWNER
                )
                if new_parent.is_deleted:
                    raise InvalidStateError("Cannot move into a folder that is in trash")
            await self._tree.move_folder(session, folder, new_parent)  # type: ignore[arg-type]
            return self._tree.to_info(folder, Permission.OWNER)

    async def move_file(
        self, user_id: str, file_id: str, folder_id: str | None = None
    ) -> NodeInfo:
        async with self._session() as session:
            file, _ = await self._resolver.require(
                session, user_id, Resource.file(file_id), Permission.OWNER
            )
            if file.is_deleted:
                raise InvalidStateError("Cannot move a file that is in trash")
            target = None
            if folder_id is not None:
                target, _ = await self._resolver.require(
                    session, user_id, Resource.folder(folder_id), Permission.EDIT
                )
                if target.is_deleted:
                    raise InvalidStateError("Cannot move into a folder that is in trash")
            await self._tree.move_file(session, file, target)  # type: ignore[arg-type]
            return self._tree.to_info(file, Permission.OWNER)

    async def upload_file(
        self,
        user_id: str,
        name: str,
        data: bytes,
        *,
        mime_type: str | None = None,
        folder_id: str | None = None,
    ) -> NodeInfo:
        """Store *data* as a new file owned by *user_id*.

        The row is flushed first so a rejected name never reaches the blob
        store; if the blob write or the commit fails, the blob is removed.
        """
        blob_key: str | None = None
        try:
            async with self._session() as session:
                if folder_id is not None:
                    folder, _ = await self._resolver.require(
                        session, user_id, Resource.folder(folder_id), Permission.EDIT
                    )
                    if folder.is_deleted:
                        raise InvalidStateError("Cannot upload into a folder that is in trash")
                content_hash, size = compute_content_hash(data)
                file = await self._tree.create_file(
                    session,
                    user_id,
                    name,
                    size_bytes=size,
                    mime_type=mime_type or guess_mime_type(name),
                    folder_id=folder_id,
                    content_hash=content_hash,
                )
                blob_key = file.blob_key
                await self._blobs.put(blob_key, data)
                info = self._tree.to_info(file, Permission.OWNER)
        except Exception:
            if blob_key is not None:
                await self._delete_blobs([blob_key])
            raise
        return info

    async def download_file(self, user_id: str, file_id: str) -> bytes:
        async with self._session() as session:
            file, permission = await self._resolver.require(
                session, user_id, Resource.file(file_id), Permission.VIEW
            )
            if file.is_deleted and permission is not Permission.OWNER:
                raise NotFoundError(f"File not found: {file_id}")
            blob_key = file.blob_key  # type: ignore[union-attr]
        return await self._blobs.get(blob_key)

    async def download_shared_file(self, token: str, file_id: str | None = None) -> bytes:
        """Download through a public link: the linked file, or a file inside a linked folder."""
        async with self._session() as session:
            if file_id is None:
                grant = await self._resolver.resolve_token(session, token)
            else:
                grant = await self._resolver.resolve_descendant(
                    session, token, Resource.file(file_id)
                )
            if grant.resource.is_folder:
                raise NotFoundError("Share link does not point to a file")
            file = await self._tree.require_file(session, grant.resource.id)
            blob_key = file.blob_key
        return await self._blobs.get(blob_key)

    async def list_folder(self, user_id: str, folder_id: str | None = None) -> FolderListing:
        """Children of a folder, or the caller's root when *folder_id* is None."""
        async with self._session() as session:
            if folder_id is None:
                folders = await self._tree.root_folders(session, user_id)
                files = await self._tree.root_files(session, user_id)
                return FolderListing(
                    folder=None,
                    folders=[self._tree.to_info(f, Permission.OWNER) for f in folders],
                    files=[self._tree.to_info(f, Permission.OWNER) for f in files],
                )

            folder, permission = await self._resolver.require(
                session, user_id, Resource.folder(folder_id), Permission.VIEW
            )
            if folder.is_deleted and permission is not Permission.OWNER:
                raise NotFoundError(f"Folder not found: {folder_id}")
            listing = FolderListing(folder=self._tree.to_info(folder, permission))
            for child in await self._tree.child_folders(session, folder_id):
                level = await self._resolver.resolve_node(
                    session, user_id, ResourceKind.FOLDER, child
                )
                listing.folders.append(self._tree.to_info(child, level))
            for child in await self._tree.child_files(session, folder_id):
                level = await self._resolver.resolve_node(
                    session, user_id, ResourceKind.FILE, child
                )
                listing.files.append(self._tree.to_info(child, level))
            return listing

    async def list_shared_folder(
        self, token: str, folder_id: str | None = None
    ) -> FolderListing:
        """List a folder reached through a public link (the root by default)."""
        async with self._session() as session:
            if folder_id is None:
                grant = await self._resolver.resolve_token(session, token)
            else:
                grant = await self._resolver.resolve_descendant(
                    session, token, Resource.folder(folder_id)
                )
            if not grant.resource.is_folder:
                raise NotFoundError("Share link does not point to a folder")
            folder = await self._tree.require_folder(session, grant.resource.id)
            view = Permission.VIEW
            return FolderListing(
                folder=self._tree.to_info(folder, view),
                folders=[
                    self._tree.to_info(f, view)
                    for f in await self._tree.child_folders(session, folder.id)
                ],
                files=[
                    self._tree.to_info(f, view)
                    for f in await self._tree.child_files(session, folder.id)
                ],
            )

    async def toggle_star(self, user_id: str, file_id: str) -> bool:
        """Flip the owner's star on a file; return the new value."""
        async with self._session() as session:
            file, _ = await self._resolver.require(
                session, user_id, Resource.file(file_id), Permission.OWNER
            )
            file.is_starred = not file.is_starred  # type: ignore[union-attr]
            await session.flush()
            return file.is_starred  # type: ignore[union-attr]

    async def list_starred(self, user_id: str) -> list[NodeInfo]:
        async with self._session() as session:
            files = await self._tree.starred_files(session, user_id)
            return [self._tree.to_info(f, Permission.OWNER) for f in files]

    async def search_files(self, user_id: str, query: str) -> list[NodeInfo]:
        """Files owned by *user_id* whose name contains *query* (case-insensitive)."""
        async with self._session() as session:
            files = await self._tree.search_files(session, user_id, query.strip())
            return [self._tree.to_info(f, Permission.OWNER) for f in files]

    async def dashboard(self, user_id: str) -> DashboardSummary:
        async with self._session() as session:
            total_files, folders, starred = await self._tree.count_nodes(session, user_id)
            recent = await self._tree.recent_files(
                session, user_id, self._config.recent_files_limit
            )
            return DashboardSummary(
                total_files=total_files,
                folders=folders,
                starred=starred,
                recent_files=[self._tree.to_info(f, Permission.OWNER) for f in recent],
            )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> CanopyConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def blob_store(self) -> BlobStore:
        return self._blobs

    @property
    def users(self) -> UserDirectory:
        return self._users
