"""Share models: per-resource grants to users and public links.

Provides ``FolderShareBase`` / ``FileShareBase`` (non-table) and
``FolderShare`` / ``FileShare`` (concrete tables).  A row either targets
one user (``shared_with`` set) or is a public link (``share_token`` set,
``shared_with`` null).  Rows are deactivated rather than deleted so the
history of who had access survives revocation.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class ShareBase(SQLModel):
    """Fields common to folder and file shares."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    owner_id: str = Field(index=True)
    shared_by: str = Field(default="")
    shared_with: str | None = Field(default=None, index=True)
    permission: str = Field(default="view")
    share_token: str | None = Field(default=None, unique=True, index=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    expires_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )

    @property
    def is_public_link(self) -> bool:
        return self.share_token is not None and self.shared_with is None

    def is_live(self, now: datetime | None = None) -> bool:
        """True when the share is active and not past its expiry."""
        if not self.is_active:
            return False
        if self.expires_at is None:
            return True
        exp = self.expires_at
        # SQLite hands back naive datetimes
        if exp.tzinfo is None:
            exp = exp.replace(tzinfo=UTC)
        return exp > (now or datetime.now(UTC))


class FolderShareBase(ShareBase):
    """Base fields for a folder share. Subclass with ``table=True`` for a concrete table."""

    folder_id: str = Field(index=True)


class FolderShare(FolderShareBase, table=True):
    """Default folder share table, ``canopy_folder_shares``."""

    __tablename__ = "canopy_folder_shares"
    __table_args__ = (UniqueConstraint("folder_id", "shared_with"),)


class FileShareBase(ShareBase):
    """Base fields for a file share. Subclass with ``table=True`` for a concrete table.

    ``is_starred`` is the recipient's own star; the owner's star lives on
    the file row and is never touched by sharing.
    """

    file_id: str = Field(index=True)
    is_starred: bool = Field(default=False)


class FileShare(FileShareBase, table=True):
    """Default file share table, ``canopy_file_shares``."""

    __tablename__ = "canopy_file_shares"
    __table_args__ = (UniqueConstraint("file_id", "shared_with"),)
