"""Shared fixtures for Canopy tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from canopy._canopy_async import CanopyAsync
from canopy.config import CanopyConfig
from canopy.fs.blobs import MemoryBlobStore
from canopy.fs.lifecycle import LifecycleManager
from canopy.fs.registry import ShareRegistry
from canopy.fs.resolver import PermissionResolver
from canopy.fs.sharing import SharingService
from canopy.fs.tree import TreeService
from canopy.fs.users import StaticUserDirectory, UserInfo
from canopy.models import File, FileShare, Folder, FolderShare

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine

BASE_URL = "https://files.example.com"


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session, rolled back after each test."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture
def users() -> StaticUserDirectory:
    return StaticUserDirectory(
        [
            UserInfo("alice", "alice@example.com", "Alice"),
            UserInfo("bob", "bob@example.com", "Bob"),
            UserInfo("carol", "carol@example.com", "Carol"),
            UserInfo("dave", "dave@example.com"),
        ]
    )


@pytest.fixture
def config() -> CanopyConfig:
    return CanopyConfig(base_url=BASE_URL + "/")


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def tree() -> TreeService:
    return TreeService(Folder, File)


@pytest.fixture
def registry() -> ShareRegistry:
    return ShareRegistry(FolderShare, FileShare)


@pytest.fixture
def resolver(
    tree: TreeService, registry: ShareRegistry, users: StaticUserDirectory
) -> PermissionResolver:
    return PermissionResolver(tree, registry, users)


@pytest.fixture
def lifecycle(
    tree: TreeService, registry: ShareRegistry, resolver: PermissionResolver
) -> LifecycleManager:
    return LifecycleManager(tree, registry, resolver)


@pytest.fixture
def sharing(
    tree: TreeService,
    registry: ShareRegistry,
    resolver: PermissionResolver,
    lifecycle: LifecycleManager,
    users: StaticUserDirectory,
    config: CanopyConfig,
) -> SharingService:
    return SharingService(tree, registry, resolver, lifecycle, users, config)


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
async def canopy(
    async_engine: AsyncEngine,
    users: StaticUserDirectory,
    blob_store: MemoryBlobStore,
    config: CanopyConfig,
) -> AsyncIterator[CanopyAsync]:
    c = CanopyAsync(engine=async_engine, users=users, blob_store=blob_store, config=config)
    await c.open()
    yield c
    await c.close()
