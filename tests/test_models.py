"""Tests for database models."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy import inspect
from sqlmodel import select

from canopy.models import (
    File,
    FileShare,
    Folder,
    FolderBase,
    FolderShare,
)
from canopy.models.shares import FolderShareBase


class ArchiveFolder(FolderBase, table=True):
    __tablename__ = "archive_folders"


class ArchiveFolderShare(FolderShareBase, table=True):
    __tablename__ = "archive_folder_shares"


# ---------------------------------------------------------------------------
# Table creation & defaults
# ---------------------------------------------------------------------------


class TestTableCreation:
    async def test_default_tables_exist(self, async_engine):
        async with async_engine.connect() as conn:
            names = await conn.run_sync(lambda c: inspect(c).get_table_names())
        for table in (
            "canopy_folders",
            "canopy_files",
            "canopy_folder_shares",
            "canopy_file_shares",
        ):
            assert table in names

    async def test_custom_table_subclass(self, async_engine, async_session):
        async with async_engine.connect() as conn:
            names = await conn.run_sync(lambda c: inspect(c).get_table_names())
        assert "archive_folders" in names

        async_session.add(ArchiveFolder(name="Old", owner_id="alice"))
        await async_session.flush()
        rows = (await async_session.execute(select(ArchiveFolder))).scalars().all()
        assert [r.name for r in rows] == ["Old"]
        assert (await async_session.execute(select(Folder))).scalars().all() == []


class TestDefaultFactories:
    async def test_folder_defaults(self, async_session):
        folder = Folder(name="Docs", owner_id="alice")
        async_session.add(folder)
        await async_session.commit()

        assert folder.id
        assert folder.parent_id is None
        assert folder.is_deleted is False
        assert folder.deleted_at is None
        assert folder.created_at is not None

    async def test_file_defaults(self, async_session):
        f = File(name="a.bin", owner_id="alice")
        async_session.add(f)
        await async_session.commit()

        assert f.mime_type == "application/octet-stream"
        assert f.folder_id is None
        assert f.is_starred is False
        assert len(f.blob_key) == 32

    async def test_ids_and_blob_keys_are_unique(self):
        a = File(name="a", owner_id="u")
        b = File(name="b", owner_id="u")
        assert a.id != b.id
        assert a.blob_key != b.blob_key

    async def test_share_defaults(self, async_session):
        share = FileShare(file_id="x", owner_id="alice", shared_with="bob")
        async_session.add(share)
        await async_session.commit()
        assert share.permission == "view"
        assert share.is_active
        assert share.is_starred is False
        assert share.share_token is None


# ---------------------------------------------------------------------------
# Share helpers
# ---------------------------------------------------------------------------


class TestShareLiveness:
    def test_active_without_expiry(self):
        assert FolderShare(folder_id="f", owner_id="a", shared_with="b").is_live()

    def test_inactive(self):
        share = FolderShare(folder_id="f", owner_id="a", shared_with="b", is_active=False)
        assert not share.is_live()

    def test_expiry_aware(self):
        now = datetime.now(UTC)
        share = FolderShare(
            folder_id="f", owner_id="a", shared_with="b", expires_at=now + timedelta(hours=1)
        )
        assert share.is_live(now)
        assert not share.is_live(now + timedelta(hours=2))

    def test_expiry_naive_is_treated_as_utc(self):
        naive = (datetime.now(UTC) - timedelta(minutes=1)).replace(tzinfo=None)
        share = FolderShare(folder_id="f", owner_id="a", shared_with="b", expires_at=naive)
        assert not share.is_live()

    def test_public_link(self):
        link = FolderShare(folder_id="f", owner_id="a", share_token="tok")
        assert link.is_public_link
        user_share = FolderShare(folder_id="f", owner_id="a", shared_with="b")
        assert not user_share.is_public_link

    async def test_custom_share_table(self, async_session):
        async_session.add(ArchiveFolderShare(folder_id="f", owner_id="a", shared_with="b"))
        await async_session.flush()
        rows = (await async_session.execute(select(ArchiveFolderShare))).scalars().all()
        assert len(rows) == 1
        assert (await async_session.execute(select(FolderShare))).scalars().all() == []
