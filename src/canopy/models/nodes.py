"""Folder and File models: the nodes of a user's storage tree.

Provides ``FolderBase`` and ``FileBase`` non-table base classes.
Subclass with ``table=True`` and a custom ``__tablename__`` to use a
different table name per backend.

Nodes reference their parent by id only (``parent_id`` / ``folder_id``).
There are no database-level foreign keys; the services delete children
before parents and share rows before the resources they point at.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class FolderBase(SQLModel):
    """Base fields for a folder. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    owner_id: str = Field(index=True)
    parent_id: str | None = Field(default=None, index=True)
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )
    deleted_by: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class Folder(FolderBase, table=True):
    """Default folder table, ``canopy_folders``."""

    __tablename__ = "canopy_folders"


class FileBase(SQLModel):
    """Base fields for a stored file. Subclass with ``table=True`` for a concrete table.

    ``folder_id`` is ``None`` for files that live at the owner's root.
    ``blob_key`` addresses the bytes in the configured ``BlobStore``.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    size_bytes: int = Field(default=0)
    mime_type: str = Field(default="application/octet-stream")
    owner_id: str = Field(index=True)
    folder_id: str | None = Field(default=None, index=True)
    blob_key: str = Field(default_factory=lambda: uuid.uuid4().hex)
    content_hash: str | None = Field(default=None)
    is_starred: bool = Field(default=False)
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),
    )
    deleted_by: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class File(FileBase, table=True):
    """Default file table, ``canopy_files``."""

    __tablename__ = "canopy_files"
