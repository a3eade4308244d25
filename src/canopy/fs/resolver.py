"""PermissionResolver: effective access of a user or a share token on a node.

Folder rule: ownership, then the nearest folder on the path to the root
that carries a live share for the user.  File rule: ownership, then a
direct file share, then whatever the containing folder grants (a folder
owner may edit files other users placed in the folder).  Public-link
tokens are resolved separately and only grant VIEW.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import NotFoundError, UnauthorizedError
from .permissions import Permission
from .types import Resource, ResourceKind, TokenGrant

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import FileBase, FolderBase

    from .protocol import UserDirectory
    from .registry import ShareRegistry
    from .tree import TreeService

logger = logging.getLogger(__name__)

_INVALID_LINK = "Invalid or expired share link"


class PermissionResolver:
    """Computes ``Permission`` levels from ownership and share rows."""

    def __init__(
        self,
        tree: TreeService,
        registry: ShareRegistry,
        users: UserDirectory | None = None,
        *,
        max_ancestor_depth: int = 100,
    ) -> None:
        self._tree = tree
        self._registry = registry
        self._users = users
        self._max_ancestor_depth = max_ancestor_depth

    # ------------------------------------------------------------------
    # User resolution
    # ------------------------------------------------------------------

    async def resolve(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> Permission:
        """Effective permission of *user_id* on *resource*.

        A missing node resolves to ``NONE``.  Trashed nodes resolve exactly
        as they did before they were trashed.
        """
        node = await self._tree.get_node(session, resource)
        if node is None:
            return Permission.NONE
        return await self.resolve_node(session, user_id, resource.kind, node)

    async def resolve_node(
        self,
        session: AsyncSession,
        user_id: str,
        kind: ResourceKind,
        node: FolderBase | FileBase,
    ) -> Permission:
        """Same as :meth:`resolve` for a row the caller already loaded."""
        if kind is ResourceKind.FOLDER:
            return await self._resolve_folder(session, user_id, node)  # type: ignore[arg-type]
        return await self._resolve_file(session, user_id, node)  # type: ignore[arg-type]

    async def _resolve_folder(
        self, session: AsyncSession, user_id: str, folder: FolderBase
    ) -> Permission:
        if folder.owner_id == user_id:
            return Permission.OWNER
        async for current in self._tree.ancestors(session, folder.id):
            share = await self._registry.find_live_user_share(
                session, Resource.folder(current.id), user_id
            )
            if share is not None:
                logger.debug(
                    "Folder %s: %s via share on %s", folder.id, share.permission, current.id
                )
                return Permission.from_share(share.permission)
        return Permission.NONE

    async def _resolve_file(
        self, session: AsyncSession, user_id: str, file: FileBase
    ) -> Permission:
        if file.owner_id == user_id:
            return Permission.OWNER

        share = await self._registry.find_live_user_share(
            session, Resource.file(file.id), user_id
        )
        if share is not None:
            return Permission.from_share(share.permission)

        if file.folder_id is None:
            return Permission.NONE
        folder = await self._tree.get_folder(session, file.folder_id)
        if folder is None:
            return Permission.NONE
        inherited = await self._resolve_folder(session, user_id, folder)
        if inherited is Permission.OWNER:
            return Permission.EDIT
        return inherited

    async def require(
        self,
        session: AsyncSession,
        user_id: str,
        resource: Resource,
        needed: Permission,
    ) -> tuple[FolderBase | FileBase, Permission]:
        """Load *resource* and check that *user_id* holds at least *needed*.

        Returns the row and the resolved level.  Raises ``NotFoundError``
        if the node does not exist and ``UnauthorizedError`` if the level
        is too low.
        """
        node = await self._tree.require_node(session, resource)
        permission = await self.resolve_node(session, user_id, resource.kind, node)
        if not permission.satisfies(needed):
            raise UnauthorizedError(
                f"{needed.value.capitalize()} permission required on {resource.kind.value} "
                f"{resource.id}"
            )
        return node, permission

    # ------------------------------------------------------------------
    # Token resolution
    # ------------------------------------------------------------------

    async def resolve_token(self, session: AsyncSession, token: str) -> TokenGrant:
        """What the public-link *token* grants on its root resource."""
        found = await self._registry.find_by_token(session, token)
        if found is None:
            raise NotFoundError(_INVALID_LINK)
        kind, share = found
        if not share.is_live():
            raise NotFoundError(_INVALID_LINK)

        root = self._registry.resource_of(share, kind)
        node = await self._tree.get_node(session, root)
        if node is None or node.is_deleted:
            raise NotFoundError(_INVALID_LINK)

        return TokenGrant(
            resource=root,
            root=root,
            name=node.name,
            permission=Permission.VIEW,
            shared_by=share.shared_by,
            shared_by_name=await self._display_name(share.shared_by),
        )

    async def resolve_descendant(
        self, session: AsyncSession, token: str, resource: Resource
    ) -> TokenGrant:
        """Check that *resource* is the token's root or lies inside it.

        Membership is decided by walking at most ``max_ancestor_depth``
        folders upward; a deeper node is treated as outside the share.
        A node below a trashed folder is hidden even if it is live itself.
        """
        grant = await self.resolve_token(session, token)
        if resource == grant.root:
            return grant
        if not grant.root.is_folder:
            raise NotFoundError("Resource is not part of this share")

        not_found = f"{resource.kind.value.capitalize()} not found: {resource.id}"
        node = await self._tree.get_node(session, resource)
        if node is None or node.is_deleted:
            raise NotFoundError(not_found)

        start = node.id if resource.is_folder else node.folder_id  # type: ignore[union-attr]
        inside = False
        async for folder in self._tree.ancestors(
            session, start, max_depth=self._max_ancestor_depth
        ):
            if folder.id == grant.root.id:
                inside = True
                break
            if folder.is_deleted:
                raise NotFoundError(not_found)
        if not inside:
            raise NotFoundError("Resource is not part of this share")

        return TokenGrant(
            resource=resource,
            root=grant.root,
            name=node.name,
            permission=grant.permission,
            shared_by=grant.shared_by,
            shared_by_name=grant.shared_by_name,
        )

    async def _display_name(self, user_id: str) -> str:
        if self._users is None:
            return user_id
        user = await self._users.by_id(user_id)
        return user.name if user is not None else user_id
