"""SharingService: user shares, public links, and shared listings.

Stateless service following the same pattern as the other fs services:
collaborators are injected at construction, a session is passed per call.
Methods flush but never commit.  Notifications are not sent from here;
``share_with_user`` returns everything the caller needs to send one after
the transaction commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import InvalidStateError, NotFoundError
from .permissions import Permission, SharePermission
from .types import (
    Resource,
    ResourceKind,
    ShareInfo,
    ShareLinkInfo,
    SharedByMeItem,
    SharedItem,
    TrashResult,
)
from .utils import generate_share_token

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.config import CanopyConfig
    from canopy.models.nodes import FileBase, FolderBase
    from canopy.models.shares import ShareBase

    from .lifecycle import LifecycleManager
    from .protocol import UserDirectory
    from .registry import ShareRegistry
    from .resolver import PermissionResolver
    from .tree import TreeService
    from .users import UserInfo

logger = logging.getLogger(__name__)


@dataclass
class ShareOutcome:
    """Result of ``share_with_user``: the share plus notification inputs."""

    share: ShareInfo
    recipient: UserInfo
    resource_name: str


class SharingService:
    """Owner-side share management and recipient-side share views."""

    def __init__(
        self,
        tree: TreeService,
        registry: ShareRegistry,
        resolver: PermissionResolver,
        lifecycle: LifecycleManager,
        users: UserDirectory,
        config: CanopyConfig,
    ) -> None:
        self._tree = tree
        self._registry = registry
        self._resolver = resolver
        self._lifecycle = lifecycle
        self._users = users
        self._config = config

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _share_info(
        self, share: ShareBase, resource: Resource, email: str | None = None
    ) -> ShareInfo:
        return ShareInfo(
            id=share.id,
            resource=resource,
            permission=share.permission,
            shared_by=share.shared_by,
            shared_with=share.shared_with,
            shared_with_email=email,
            is_active=share.is_active,
            created_at=share.created_at,
            expires_at=share.expires_at,
        )

    def _link_info(self, share: ShareBase, resource: Resource) -> ShareLinkInfo:
        token = share.share_token or ""
        return ShareLinkInfo(
            token=token,
            resource=resource,
            permission=SharePermission.VIEW.value,
            share_url=self._config.share_url(token),
            created_at=share.created_at,
            expires_at=share.expires_at,
        )

    async def _owned(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> FolderBase | FileBase:
        node, _ = await self._resolver.require(session, user_id, resource, Permission.OWNER)
        return node

    # ------------------------------------------------------------------
    # User shares
    # ------------------------------------------------------------------

    async def share_with_user(
        self,
        session: AsyncSession,
        user_id: str,
        resource: Resource,
        recipient_email: str,
        permission: str | SharePermission,
        *,
        expires_at: datetime | None = None,
    ) -> ShareOutcome:
        """Grant *permission* on *resource* to the user with *recipient_email*.

        Re-sharing with the same recipient updates the existing row
        (reactivating it if it had been revoked) instead of adding one.
        """
        level = SharePermission.parse(permission)
        node = await self._owned(session, user_id, resource)

        recipient = await self._users.by_email(recipient_email)
        if recipient is None:
            raise NotFoundError(f"User not found: {recipient_email}")
        if recipient.id == user_id:
            raise InvalidStateError(f"Cannot share a {resource.kind.value} with yourself")
        if node.is_deleted:
            raise InvalidStateError(f"Cannot share a {resource.kind.value} that is in trash")

        share = await self._registry.put_user_share(
            session,
            resource,
            owner_id=node.owner_id,
            shared_by=user_id,
            shared_with=recipient.id,
            permission=level.value,
            expires_at=expires_at,
        )
        logger.debug("Shared %s with %s (%s)", resource, recipient.id, level.value)
        return ShareOutcome(
            share=self._share_info(share, resource, recipient.email),
            recipient=recipient,
            resource_name=node.name,
        )

    async def _share_on(
        self, session: AsyncSession, resource: Resource, share_id: str
    ) -> ShareBase:
        share = await self._registry.get_share(session, resource.kind, share_id)
        if share is None or self._registry.resource_of(share, resource.kind) != resource:
            raise NotFoundError(f"Share not found: {share_id}")
        return share

    async def revoke_share(
        self, session: AsyncSession, user_id: str, resource: Resource, share_id: str
    ) -> ShareInfo:
        """Deactivate one share on *resource*.  Revoking twice is a no-op."""
        await self._owned(session, user_id, resource)
        share = await self._share_on(session, resource, share_id)
        await self._registry.deactivate(session, [share])
        return self._share_info(share, resource)

    async def update_share_permission(
        self,
        session: AsyncSession,
        user_id: str,
        resource: Resource,
        share_id: str,
        permission: str | SharePermission,
    ) -> ShareInfo:
        level = SharePermission.parse(permission)
        await self._owned(session, user_id, resource)
        share = await self._share_on(session, resource, share_id)
        if not share.is_active:
            raise NotFoundError(f"Share not found: {share_id}")
        if share.is_public_link and level is SharePermission.EDIT:
            raise InvalidStateError("Public links can only grant view access")
        share.permission = level.value
        await session.flush()
        return self._share_info(share, resource)

    async def list_shares(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> list[ShareInfo]:
        """Active user shares on *resource* with recipient emails."""
        await self._owned(session, user_id, resource)
        infos = []
        for share in await self._registry.active_shares(session, resource):
            if share.shared_with is None:
                continue
            recipient = await self._users.by_id(share.shared_with)
            infos.append(
                self._share_info(share, resource, recipient.email if recipient else None)
            )
        return infos

    async def remove_all_access(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> tuple[int, TrashResult | None]:
        """Revoke every share and link, then move the resource to trash.

        Returns the number of deactivated shares and the trash result
        (``None`` when the resource was already in trash).
        """
        node = await self._owned(session, user_id, resource)
        shares = await self._registry.active_shares(session, resource)
        revoked = await self._registry.deactivate(session, shares)
        trashed = None
        if not node.is_deleted:
            trashed = await self._lifecycle.move_to_trash(session, user_id, resource)
        logger.info("Removed all access to %s (%d shares revoked)", resource, revoked)
        return revoked, trashed

    async def remove_self(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> ShareInfo:
        """Let a recipient drop their own share."""
        node = await self._tree.require_node(session, resource)
        if node.owner_id == user_id:
            raise InvalidStateError(f"The owner cannot remove themselves from a {resource.kind.value}")
        share = await self._registry.find_live_user_share(session, resource, user_id)
        if share is None:
            raise NotFoundError(f"No share found for this {resource.kind.value}")
        await self._registry.deactivate(session, [share])
        return self._share_info(share, resource)

    # ------------------------------------------------------------------
    # Public links
    # ------------------------------------------------------------------

    async def generate_share_link(
        self,
        session: AsyncSession,
        user_id: str,
        resource: Resource,
        *,
        expires_at: datetime | None = None,
    ) -> tuple[ShareLinkInfo, bool]:
        """Return the resource's live public link, creating one if needed.

        The boolean is True when a new token was minted.  An active link
        that has expired is deactivated and replaced.
        """
        node = await self._owned(session, user_id, resource)
        if node.is_deleted:
            raise InvalidStateError(f"Cannot share a {resource.kind.value} that is in trash")

        existing = await self._registry.find_public_link(session, resource)
        if existing is not None:
            if existing.is_live():
                return self._link_info(existing, resource), False
            await self._registry.deactivate(session, [existing])

        link = await self._registry.create_public_link(
            session,
            resource,
            owner_id=node.owner_id,
            shared_by=user_id,
            token=generate_share_token(self._config.token_bytes),
            expires_at=expires_at,
        )
        logger.debug("Created share link on %s", resource)
        return self._link_info(link, resource), True

    async def get_share_link(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> ShareLinkInfo | None:
        await self._owned(session, user_id, resource)
        link = await self._registry.find_public_link(session, resource)
        if link is None or not link.is_live():
            return None
        return self._link_info(link, resource)

    async def revoke_share_link(
        self, session: AsyncSession, user_id: str, resource: Resource
    ) -> int:
        """Deactivate the resource's public link(s).  No link is a no-op."""
        await self._owned(session, user_id, resource)
        links = [
            s for s in await self._registry.active_shares(session, resource) if s.is_public_link
        ]
        return await self._registry.deactivate(session, links)

    # ------------------------------------------------------------------
    # Recipient views
    # ------------------------------------------------------------------

    async def shared_with_me(self, session: AsyncSession, user_id: str) -> list[SharedItem]:
        """Live shares granted to *user_id* on resources not in trash."""
        items: list[SharedItem] = []
        for kind in (ResourceKind.FOLDER, ResourceKind.FILE):
            for share in await self._registry.shares_with_user(session, kind, user_id):
                resource = self._registry.resource_of(share, kind)
                node = await self._tree.get_node(session, resource)
                if node is None or node.is_deleted:
                    continue
                items.append(
                    SharedItem(
                        share_id=share.id,
                        resource=resource,
                        name=node.name,
                        owner_id=node.owner_id,
                        permission=share.permission,
                        shared_at=share.created_at,
                        is_starred=getattr(share, "is_starred", False),
                    )
                )
        return items

    async def shared_by_me(self, session: AsyncSession, user_id: str) -> list[SharedByMeItem]:
        """Resources owned by *user_id* that currently have live shares."""
        items: list[SharedByMeItem] = []
        for kind in (ResourceKind.FOLDER, ResourceKind.FILE):
            grouped: dict[str, SharedByMeItem] = {}
            for share in await self._registry.shares_by_owner(session, kind, user_id):
                resource = self._registry.resource_of(share, kind)
                item = grouped.get(resource.id)
                if item is None:
                    node = await self._tree.get_node(session, resource)
                    if node is None or node.is_deleted:
                        continue
                    item = grouped[resource.id] = SharedByMeItem(resource=resource, name=node.name)
                if share.is_public_link:
                    item.has_public_link = True
                    item.share_url = self._config.share_url(share.share_token or "")
                else:
                    item.recipient_count += 1
            items.extend(grouped.values())
        return items

    async def toggle_shared_star(
        self, session: AsyncSession, user_id: str, file_id: str
    ) -> bool:
        """Flip the recipient's own star on a shared file; return the new value."""
        share = await self._registry.find_live_user_share(session, Resource.file(file_id), user_id)
        if share is None:
            raise NotFoundError(f"No share found for file {file_id}")
        share.is_starred = not share.is_starred  # type: ignore[attr-defined]
        await session.flush()
        return share.is_starred  # type: ignore[attr-defined]
