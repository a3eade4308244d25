"""Tests for share-link token resolution and descendant membership."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from canopy.fs.exceptions import NotFoundError
from canopy.fs.permissions import Permission
from canopy.fs.resolver import PermissionResolver
from canopy.fs.types import Resource

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.fs.registry import ShareRegistry
    from canopy.fs.tree import TreeService


async def _link(registry: ShareRegistry, session: AsyncSession, resource: Resource, token: str, **kw):
    return await registry.create_public_link(
        session, resource, owner_id="alice", shared_by="alice", token=token, **kw
    )


@pytest.fixture
async def shared_tree(tree: TreeService, registry: ShareRegistry, async_session: AsyncSession):
    """alice's Photos/2024/beach.jpg with a public link on Photos."""
    photos = await tree.create_folder(async_session, "alice", "Photos")
    year = await tree.create_folder(async_session, "alice", "2024", photos.id)
    beach = await tree.create_file(
        async_session, "alice", "beach.jpg", size_bytes=10, mime_type="image/jpeg", folder_id=year.id
    )
    await _link(registry, async_session, Resource.folder(photos.id), "photos-token")
    return photos, year, beach


class TestResolveToken:
    async def test_valid_token(
        self, resolver: PermissionResolver, async_session: AsyncSession, shared_tree
    ):
        photos, _, _ = shared_tree
        grant = await resolver.resolve_token(async_session, "photos-token")
        assert grant.root == Resource.folder(photos.id)
        assert grant.resource == grant.root
        assert grant.permission is Permission.VIEW
        assert grant.name == "Photos"
        assert grant.shared_by == "alice"
        assert grant.shared_by_name == "Alice"

    async def test_unknown_token(self, resolver: PermissionResolver, async_session: AsyncSession):
        with pytest.raises(NotFoundError, match="Invalid or expired share link"):
            await resolver.resolve_token(async_session, "nope")

    async def test_revoked_token(
        self,
        resolver: PermissionResolver,
        registry: ShareRegistry,
        async_session: AsyncSession,
        shared_tree,
    ):
        photos, _, _ = shared_tree
        link = await registry.find_public_link(async_session, Resource.folder(photos.id))
        await registry.deactivate(async_session, [link])
        with pytest.raises(NotFoundError):
            await resolver.resolve_token(async_session, "photos-token")

    async def test_expired_token(
        self,
        tree: TreeService,
        resolver: PermissionResolver,
        registry: ShareRegistry,
        async_session: AsyncSession,
    ):
        folder = await tree.create_folder(async_session, "alice", "Old")
        await _link(
            registry,
            async_session,
            Resource.folder(folder.id),
            "old-token",
            expires_at=datetime.now(UTC) - timedelta(days=1),
        )
        with pytest.raises(NotFoundError):
            await resolver.resolve_token(async_session, "old-token")

    async def test_trashed_root(
        self, resolver: PermissionResolver, async_session: AsyncSession, shared_tree
    ):
        photos, _, _ = shared_tree
        photos.is_deleted = True
        await async_session.flush()
        with pytest.raises(NotFoundError):
            await resolver.resolve_token(async_session, "photos-token")

    async def test_file_token(
        self,
        tree: TreeService,
        resolver: PermissionResolver,
        registry: ShareRegistry,
        async_session: AsyncSession,
    ):
        f = await tree.create_file(async_session, "alice", "cv.pdf", size_bytes=1, mime_type="application/pdf")
        await _link(registry, async_session, Resource.file(f.id), "file-token")
        grant = await resolver.resolve_token(async_session, "file-token")
        assert grant.root == Resource.file(f.id)
        assert grant.name == "cv.pdf"

    async def test_shared_by_name_without_directory(
        self,
        tree: TreeService,
        registry: ShareRegistry,
        async_session: AsyncSession,
        shared_tree,
    ):
        bare = PermissionResolver(tree, registry)
        grant = await bare.resolve_token(async_session, "photos-token")
        assert grant.shared_by_name == "alice"


class TestResolveDescendant:
    async def test_root_itself(
        self, resolver: PermissionResolver, async_session: AsyncSession, shared_tree
    ):
        photos, _, _ = shared_tree
        grant = await resolver.resolve_descendant(
            async_session, "photos-token", Resource.folder(photos.id)
        )
        assert grant.resource == grant.root

    async def test_nested_folder_and_file(
        self, resolver: PermissionResolver, async_session: AsyncSession, shared_tree
    ):
        photos, year, beach = shared_tree
        grant = await resolver.resolve_descendant(
            async_session, "photos-token", Resource.folder(year.id)
        )
        assert grant.resource == Resource.folder(year.id)
        assert grant.root == Resource.folder(photos.id)
        assert grant.name == "2024"

        grant = await resolver.resolve_descendant(
            async_session, "photos-token", Resource.file(beach.id)
        )
        assert grant.name == "beach.jpg"
        assert grant.permission is Permission.VIEW

    async def test_outside_the_share(
        self,
        tree: TreeService,
        resolver: PermissionResolver,
        async_session: AsyncSession,
        shared_tree,
    ):
        other = await tree.create_folder(async_session, "alice", "Private")
        secret = await tree.create_file(
            async_session, "alice", "s.txt", size_bytes=1, mime_type="text/plain", folder_id=other.id
        )
        with pytest.raises(NotFoundError, match="not part of this share"):
            await resolver.resolve_descendant(async_session, "photos-token", Resource.folder(other.id))
        with pytest.raises(NotFoundError, match="not part of this share"):
            await resolver.resolve_descendant(async_session, "photos-token", Resource.file(secret.id))

    async def test_trashed_descendant(
        self, resolver: PermissionResolver, async_session: AsyncSession, shared_tree
    ):
        _, _, beach = shared_tree
        beach.is_deleted = True
        await async_session.flush()
        with pytest.raises(NotFoundError):
            await resolver.resolve_descendant(async_session, "photos-token", Resource.file(beach.id))

    async def test_live_node_below_trashed_folder(
        self, resolver: PermissionResolver, async_session: AsyncSession, shared_tree
    ):
        _, year, beach = shared_tree
        year.is_deleted = True
        await async_session.flush()
        assert not beach.is_deleted
        with pytest.raises(NotFoundError, match="File not found"):
            await resolver.resolve_descendant(async_session, "photos-token", Resource.file(beach.id))
        with pytest.raises(NotFoundError, match="Folder not found"):
            await resolver.resolve_descendant(async_session, "photos-token", Resource.folder(year.id))

    async def test_missing_descendant(
        self, resolver: PermissionResolver, async_session: AsyncSession, shared_tree
    ):
        with pytest.raises(NotFoundError):
            await resolver.resolve_descendant(async_session, "photos-token", Resource.file("nope"))

    async def test_file_token_grants_only_its_file(
        self,
        tree: TreeService,
        resolver: PermissionResolver,
        registry: ShareRegistry,
        async_session: AsyncSession,
        shared_tree,
    ):
        _, year, beach = shared_tree
        sibling = await tree.create_file(
            async_session, "alice", "sunset.jpg", size_bytes=1, mime_type="image/jpeg", folder_id=year.id
        )
        await _link(registry, async_session, Resource.file(beach.id), "beach-token")
        grant = await resolver.resolve_descendant(async_session, "beach-token", Resource.file(beach.id))
        assert grant.resource == Resource.file(beach.id)
        with pytest.raises(NotFoundError):
            await resolver.resolve_descendant(async_session, "beach-token", Resource.file(sibling.id))

    async def test_depth_limit(
        self,
        tree: TreeService,
        registry: ShareRegistry,
        users,
        async_session: AsyncSession,
    ):
        root = await tree.create_folder(async_session, "alice", "root")
        parent_id = root.id
        for i in range(6):
            parent_id = (await tree.create_folder(async_session, "alice", f"d{i}", parent_id)).id
        await _link(registry, async_session, Resource.folder(root.id), "deep-token")

        shallow = PermissionResolver(tree, registry, users, max_ancestor_depth=3)
        with pytest.raises(NotFoundError):
            await shallow.resolve_descendant(async_session, "deep-token", Resource.folder(parent_id))

        roomy = PermissionResolver(tree, registry, users, max_ancestor_depth=100)
        grant = await roomy.resolve_descendant(async_session, "deep-token", Resource.folder(parent_id))
        assert grant.resource == Resource.folder(parent_id)
