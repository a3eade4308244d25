"""SQLModel database models for Canopy."""

from canopy.models.nodes import File, FileBase, Folder, FolderBase
from canopy.models.shares import (
    FileShare,
    FileShareBase,
    FolderShare,
    FolderShareBase,
    ShareBase,
)

__all__ = [
    "File",
    "FileBase",
    "FileShare",
    "FileShareBase",
    "Folder",
    "FolderBase",
    "FolderShare",
    "FolderShareBase",
    "ShareBase",
]
