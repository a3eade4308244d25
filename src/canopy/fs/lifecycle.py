"""LifecycleManager: trash, restore, and permanent deletion of nodes.

Stateless service that receives the tree, registry, and resolver at
construction and a session at call time.  Every method flushes but
never commits; blob removal is left to the caller, which receives the
destroyed blob keys in ``DestroyResult`` and deletes them after commit.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete as sa_delete
from sqlmodel import select

from .exceptions import InvalidStateError, UnauthorizedError
from .permissions import Permission
from .types import DestroyResult, Resource, ResourceKind, TrashResult

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import FileBase, FolderBase

    from .registry import ShareRegistry
    from .resolver import PermissionResolver
    from .tree import TreeService

logger = logging.getLogger(__name__)


def _label(resource: Resource) -> str:
    return resource.kind.value.capitalize()


class LifecycleManager:
    """ACTIVE -> TRASHED -> DESTROYED, and TRASHED -> ACTIVE for owners."""

    def __init__(
        self,
        tree: TreeService,
        registry: ShareRegistry,
        resolver: PermissionResolver,
    ) -> None:
        self._tree = tree
        self._registry = registry
        self._resolver = resolver

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    async def move_to_trash(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> TrashResult:
        """Soft-delete *resource*; folders take their live subtree with them.

        Every node trashed by one call shares the same ``deleted_at`` and
        ``deleted_by`` so the cascade can be told apart from earlier ones.
        """
        node, _ = await self._resolver.require(session, user_id, resource, Permission.EDIT)
        if node.is_deleted:
            raise InvalidStateError(f"{_label(resource)} is already in trash")

        now = datetime.now(UTC)
        self._mark_trashed(node, user_id, now)
        folders_trashed = files_trashed = 0

        if resource.is_folder:
            folders_trashed = 1
            seen = {node.id}
            worklist = [node.id]
            while worklist:
                current = worklist.pop()
                # trashed sub-folders are walked too; live nodes below them still cascade
                for child in await self._tree.child_folders(session, current, deleted=None):
                    if child.id in seen:
                        continue
                    seen.add(child.id)
                    if not child.is_deleted:
                        self._mark_trashed(child, user_id, now)
                        folders_trashed += 1
                    worklist.append(child.id)
                for file in await self._tree.child_files(session, current, deleted=False):
                    self._mark_trashed(file, user_id, now)
                    files_trashed += 1
        else:
            files_trashed = 1

        await session.flush()
        logger.info(
            "Trashed %s by %s (%d folders, %d files)",
            resource,
            user_id,
            folders_trashed,
            files_trashed,
        )
        return TrashResult(
            message=f"{_label(resource)} moved to trash",
            resource=resource,
            deleted_at=now,
            folders_trashed=folders_trashed,
            files_trashed=files_trashed,
        )

    @staticmethod
    def _mark_trashed(node: FolderBase | FileBase, user_id: str, now: datetime) -> None:
        node.is_deleted = True
        node.deleted_at = now
        node.deleted_by = user_id

    async def restore(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> FolderBase | FileBase:
        """Bring a trashed node back.  Only the node itself is restored."""
        node, _ = await self._resolver.require(session, user_id, resource, Permission.OWNER)
        if not node.is_deleted:
            raise InvalidStateError(f"{_label(resource)} is not in trash")
        node.is_deleted = False
        node.deleted_at = None
        node.deleted_by = None
        node.updated_at = datetime.now(UTC)
        await session.flush()
        logger.info("Restored %s by %s", resource, user_id)
        return node

    async def list_trash(
        self, session: AsyncSession, user_id: str
    ) -> tuple[list[FolderBase], list[FileBase]]:
        """Trashed roots owned by *user_id*.

        A trashed node is a root unless its parent was trashed by the
        same cascade; cascaded children are shown through their root.
        """
        folders, files = await self._tree.owned_nodes(session, user_id, deleted=True)
        trashed = {f.id: f for f in folders}

        def _is_root(parent_id: str | None, deleted_at: datetime | None) -> bool:
            if parent_id is None:
                return True
            parent = trashed.get(parent_id)
            return parent is None or parent.deleted_at != deleted_at

        return (
            [f for f in folders if _is_root(f.parent_id, f.deleted_at)],
            [f for f in files if _is_root(f.folder_id, f.deleted_at)],
        )

    # ------------------------------------------------------------------
    # Destroy
    # ------------------------------------------------------------------

    async def permanently_delete(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> DestroyResult:
        """Remove a trashed node, its subtree, and all their share rows.

        A node that no longer exists is treated as already destroyed.
        """
        node = await self._tree.get_node(session, resource)
        if node is None:
            return DestroyResult(message=f"{_label(resource)} already deleted", resource=resource)

        permission = await self._resolver.resolve_node(session, user_id, resource.kind, node)
        if permission is not Permission.OWNER:
            raise UnauthorizedError(f"Only the owner can permanently delete {resource}")
        if not node.is_deleted:
            raise InvalidStateError(
                f"{_label(resource)} must be in trash before it can be permanently deleted"
            )

        if resource.is_folder:
            result = await self._destroy_folder(session, node.id)
        else:
            result = await self._destroy_files(session, [node.id])
        result.resource = resource
        result.message = f"{_label(resource)} permanently deleted"

        logger.info(
            "Destroyed %s by %s (%d folders, %d files, %d shares)",
            resource,
            user_id,
            result.folders_deleted,
            result.files_deleted,
            result.shares_deleted,
        )
        return result

    async def empty_trash(self, session: AsyncSession, user_id: str) -> DestroyResult:
        """Permanently delete every trashed root owned by *user_id*."""
        folders, files = await self.list_trash(session, user_id)
        result = DestroyResult(message="Trash emptied")
        for folder in folders:
            result.merge(await self._destroy_folder(session, folder.id))
        if files:
            result.merge(await self._destroy_files(session, [f.id for f in files]))
        logger.info(
            "Emptied trash of %s (%d folders, %d files)",
            user_id,
            result.folders_deleted,
            result.files_deleted,
        )
        return result

    async def _destroy_folder(self, session: AsyncSession, folder_id: str) -> DestroyResult:
        """Delete a folder subtree, children before parents.

        Reversing the parent-first walk guarantees every folder is reached
        only after all folders beneath it are gone.
        """
        folder_model = self._tree.folder_model
        file_model = self._tree.file_model
        result = DestroyResult(message="")

        for current in reversed(await self._tree.subtree_folder_ids(session, folder_id)):
            ids = await session.execute(
                select(file_model.id).where(file_model.folder_id == current)
            )
            file_ids = [row[0] for row in ids.all()]
            if file_ids:
                result.merge(await self._destroy_files(session, file_ids))

            result.shares_deleted += await self._registry.delete_for(
                session, ResourceKind.FOLDER, [current]
            )
            deleted = await session.execute(
                sa_delete(folder_model).where(folder_model.id == current)
            )
            result.folders_deleted += deleted.rowcount or 0

        return result

    async def _destroy_files(self, session: AsyncSession, file_ids: list[str]) -> DestroyResult:
        """Delete file share rows, then the file rows; collect blob keys."""
        model = self._tree.file_model
        rows = await session.execute(
            select(model.id, model.blob_key).where(model.id.in_(file_ids))  # type: ignore[union-attr]
        )
        present = rows.all()
        result = DestroyResult(message="")
        if not present:
            return result

        ids = [row[0] for row in present]
        result.shares_deleted = await self._registry.delete_for(session, ResourceKind.FILE, ids)
        deleted = await session.execute(sa_delete(model).where(model.id.in_(ids)))  # type: ignore[union-attr]
        result.files_deleted = deleted.rowcount or 0
        result.blob_keys = [row[1] for row in present]
        return result

