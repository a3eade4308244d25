"""ShareRegistry: share-row persistence for files and folders.

Stateless service that receives the two share models at construction
and a session at call time.  Folder shares and file shares have the
same shape apart from their foreign-key column, so every query goes
through one kind-keyed lookup instead of two parallel code paths.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .exceptions import ConflictError
from .types import Resource, ResourceKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.shares import FileShareBase, FolderShareBase, ShareBase

logger = logging.getLogger(__name__)

_FK_COLUMN = {
    ResourceKind.FOLDER: "folder_id",
    ResourceKind.FILE: "file_id",
}


class ShareRegistry:
    """Reads and writes share rows; enforces no access policy."""

    def __init__(
        self,
        folder_share_model: type[FolderShareBase],
        file_share_model: type[FileShareBase],
    ) -> None:
        self._models: dict[ResourceKind, type[ShareBase]] = {
            ResourceKind.FOLDER: folder_share_model,
            ResourceKind.FILE: file_share_model,
        }

    def model_for(self, kind: ResourceKind) -> type[ShareBase]:
        return self._models[kind]

    def _fk(self, kind: ResourceKind) -> Any:
        return getattr(self.model_for(kind), _FK_COLUMN[kind])

    @staticmethod
    def resource_of(share: ShareBase, kind: ResourceKind) -> Resource:
        """The resource a share row points at."""
        return Resource(kind, getattr(share, _FK_COLUMN[kind]))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_share(
        self, session: AsyncSession, kind: ResourceKind, share_id: str
    ) -> ShareBase | None:
        return await session.get(self.model_for(kind), share_id)

    async def find_user_share(
        self, session: AsyncSession, resource: Resource, user_id: str
    ) -> ShareBase | None:
        """The (resource, user) row, active or not."""
        model = self.model_for(resource.kind)
        result = await session.execute(
            select(model).where(
                self._fk(resource.kind) == resource.id,
                model.shared_with == user_id,
            )
        )
        return result.scalars().first()

    async def find_live_user_share(
        self, session: AsyncSession, resource: Resource, user_id: str
    ) -> ShareBase | None:
        """The (resource, user) row if it is active and unexpired."""
        share = await self.find_user_share(session, resource, user_id)
        if share is None or not share.is_live():
            return None
        return share

    async def find_public_link(
        self, session: AsyncSession, resource: Resource
    ) -> ShareBase | None:
        """The active public-link row on *resource*, expired or not."""
        model = self.model_for(resource.kind)
        result = await session.execute(
            select(model)
            .where(
                self._fk(resource.kind) == resource.id,
                model.share_token.is_not(None),  # type: ignore[union-attr]
                model.shared_with.is_(None),  # type: ignore[union-attr]
                model.is_active == True,  # noqa: E712
            )
            .order_by(model.created_at.desc())  # type: ignore[union-attr]
        )
        return result.scalars().first()

    async def find_by_token(
        self, session: AsyncSession, token: str
    ) -> tuple[ResourceKind, ShareBase] | None:
        """Look up an active public-link row by token, folders first."""
        for kind in (ResourceKind.FOLDER, ResourceKind.FILE):
            model = self.model_for(kind)
            result = await session.execute(
                select(model).where(
                    model.share_token == token,
                    model.shared_with.is_(None),  # type: ignore[union-attr]
                    model.is_active == True,  # noqa: E712
                )
            )
            share = result.scalars().first()
            if share is not None:
                return kind, share
        return None

    async def active_shares(
        self, session: AsyncSession, resource: Resource
    ) -> list[ShareBase]:
        """Every active row on *resource*: user shares and public links."""
        model = self.model_for(resource.kind)
        result = await session.execute(
            select(model)
            .where(
                self._fk(resource.kind) == resource.id,
                model.is_active == True,  # noqa: E712
            )
            .order_by(model.created_at)
        )
        return list(result.scalars().all())

    async def shares_with_user(
        self, session: AsyncSession, kind: ResourceKind, user_id: str
    ) -> list[ShareBase]:
        """Live shares granted to *user_id* on resources of *kind*."""
        model = self.model_for(kind)
        result = await session.execute(
            select(model)
            .where(
                model.shared_with == user_id,
                model.is_active == True,  # noqa: E712
            )
            .order_by(model.created_at)
        )
        now = datetime.now(UTC)
        return [s for s in result.scalars().all() if s.is_live(now)]

    async def shares_by_owner(
        self, session: AsyncSession, kind: ResourceKind, owner_id: str
    ) -> list[ShareBase]:
        """Live shares on resources of *kind* owned by *owner_id*."""
        model = self.model_for(kind)
        result = await session.execute(
            select(model)
            .where(
                model.owner_id == owner_id,
                model.is_active == True,  # noqa: E712
            )
            .order_by(model.created_at)
        )
        now = datetime.now(UTC)
        return [s for s in result.scalars().all() if s.is_live(now)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put_user_share(
        self,
        session: AsyncSession,
        resource: Resource,
        *,
        owner_id: str,
        shared_by: str,
        shared_with: str,
        permission: str,
        expires_at: datetime | None = None,
    ) -> ShareBase:
        """Create or reactivate the single (resource, user) share row.

        The insert runs in a savepoint.  If a concurrent writer created the
        row first, the unique constraint fires, the savepoint rolls back,
        and the winner's row is updated instead.  Flushes but does not commit.
        """
        share = await self.find_user_share(session, resource, shared_with)
        if share is None:
            model = self.model_for(resource.kind)
            candidate = model(
                owner_id=owner_id,
                shared_by=shared_by,
                shared_with=shared_with,
                permission=permission,
                is_active=True,
                expires_at=expires_at,
                **{_FK_COLUMN[resource.kind]: resource.id},
            )
            try:
                async with session.begin_nested():
                    session.add(candidate)
                    await session.flush()
                return candidate
            except IntegrityError:
                logger.debug("Concurrent share insert on %s for %s", resource, shared_with)
                share = await self.find_user_share(session, resource, shared_with)
                if share is None:
                    raise ConflictError(
                        f"Could not create share on {resource} for {shared_with}"
                    ) from None

        share.permission = permission
        share.shared_by = shared_by
        share.expires_at = expires_at
        share.is_active = True
        await session.flush()
        return share

    async def create_public_link(
        self,
        session: AsyncSession,
        resource: Resource,
        *,
        owner_id: str,
        shared_by: str,
        token: str,
        expires_at: datetime | None = None,
    ) -> ShareBase:
        """Insert a VIEW public-link row. Flushes but does not commit."""
        model = self.model_for(resource.kind)
        link = model(
            owner_id=owner_id,
            shared_by=shared_by,
            shared_with=None,
            permission="view",
            share_token=token,
            is_active=True,
            expires_at=expires_at,
            **{_FK_COLUMN[resource.kind]: resource.id},
        )
        try:
            async with session.begin_nested():
                session.add(link)
                await session.flush()
        except IntegrityError:
            raise ConflictError("Share token collision; retry") from None
        return link

    async def deactivate(self, session: AsyncSession, shares: Iterable[ShareBase]) -> int:
        """Mark *shares* inactive. Rows are kept for the audit trail."""
        count = 0
        for share in shares:
            if share.is_active:
                share.is_active = False
                count += 1
        if count:
            await session.flush()
        return count

    async def delete_for(
        self, session: AsyncSession, kind: ResourceKind, resource_ids: list[str]
    ) -> int:
        """Hard-delete every share row (any state) on the given resources."""
        if not resource_ids:
            return 0
        model = self.model_for(kind)
        result = await session.execute(
            sa_delete(model).where(self._fk(kind).in_(resource_ids))
        )
        return result.rowcount or 0
