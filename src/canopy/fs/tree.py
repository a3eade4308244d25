"""TreeService: folder/file rows, parent links, and tree walks.

Stateless service that receives the node models at construction and a
session at call time.  Holds no policy: authorization lives in
``PermissionResolver`` and the facade.

All walks are iterative (explicit stack or parent-pointer loop) and
carry a visited set, so arbitrarily deep or corrupted hierarchies can
neither overflow the stack nor loop forever.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlmodel import select

from canopy.models.nodes import FileBase

from .exceptions import InvalidStateError, NotFoundError, ValidationError
from .types import NodeInfo, Resource, ResourceKind
from .utils import DEFAULT_MAX_NAME_LENGTH, validate_name

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from canopy.models.nodes import FolderBase

    from .permissions import Permission


class TreeService:
    """Persistence and traversal for Folder and File nodes."""

    def __init__(
        self,
        folder_model: type[FolderBase],
        file_model: type[FileBase],
        *,
        max_name_length: int = DEFAULT_MAX_NAME_LENGTH,
    ) -> None:
        self._folder_model = folder_model
        self._file_model = file_model
        self._max_name_length = max_name_length

    @property
    def folder_model(self) -> type[FolderBase]:
        return self._folder_model

    @property
    def file_model(self) -> type[FileBase]:
        return self._file_model

    def model_for(self, kind: ResourceKind) -> type[FolderBase] | type[FileBase]:
        return self._folder_model if kind is ResourceKind.FOLDER else self._file_model

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_folder(self, session: AsyncSession, folder_id: str) -> FolderBase | None:
        return await session.get(self._folder_model, folder_id)

    async def get_file(self, session: AsyncSession, file_id: str) -> FileBase | None:
        return await session.get(self._file_model, file_id)

    async def get_node(
        self, session: AsyncSession, resource: Resource
    ) -> FolderBase | FileBase | None:
        """Get the row for *resource*, trashed or not."""
        return await session.get(self.model_for(resource.kind), resource.id)

    async def require_node(
        self, session: AsyncSession, resource: Resource
    ) -> FolderBase | FileBase:
        """Get the row for *resource* or raise ``NotFoundError``."""
        node = await self.get_node(session, resource)
        if node is None:
            raise NotFoundError(f"{resource.kind.value.capitalize()} not found: {resource.id}")
        return node

    async def require_folder(self, session: AsyncSession, folder_id: str) -> FolderBase:
        return await self.require_node(session, Resource.folder(folder_id))  # type: ignore[return-value]

    async def require_file(self, session: AsyncSession, file_id: str) -> FileBase:
        return await self.require_node(session, Resource.file(file_id))  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------

    async def child_folders(
        self,
        session: AsyncSession,
        folder_id: str,
        deleted: bool | None = False,
    ) -> list[FolderBase]:
        """Direct sub-folders of *folder_id*.

        ``deleted`` filters on the trash flag; ``None`` returns both.
        """
        model = self._folder_model
        query = select(model).where(model.parent_id == folder_id)
        if deleted is not None:
            query = query.where(model.is_deleted == deleted)
        result = await session.execute(query.order_by(model.name))
        return list(result.scalars().all())

    async def child_files(
        self,
        session: AsyncSession,
        folder_id: str,
        deleted: bool | None = False,
    ) -> list[FileBase]:
        """Files directly inside *folder_id*."""
        model = self._file_model
        query = select(model).where(model.folder_id == folder_id)
        if deleted is not None:
            query = query.where(model.is_deleted == deleted)
        result = await session.execute(query.order_by(model.name))
        return list(result.scalars().all())

    async def root_folders(
        self, session: AsyncSession, owner_id: str, deleted: bool = False
    ) -> list[FolderBase]:
        model = self._folder_model
        result = await session.execute(
            select(model)
            .where(
                model.owner_id == owner_id,
                model.parent_id.is_(None),  # type: ignore[union-attr]
                model.is_deleted == deleted,
            )
            .order_by(model.name)
        )
        return list(result.scalars().all())

    async def root_files(
        self, session: AsyncSession, owner_id: str, deleted: bool = False
    ) -> list[FileBase]:
        model = self._file_model
        result = await session.execute(
            select(model)
            .where(
                model.owner_id == owner_id,
                model.folder_id.is_(None),  # type: ignore[union-attr]
                model.is_deleted == deleted,
            )
            .order_by(model.name)
        )
        return list(result.scalars().all())

    async def owned_nodes(
        self, session: AsyncSession, owner_id: str, *, deleted: bool
    ) -> tuple[list[FolderBase], list[FileBase]]:
        """Every folder and file owned by *owner_id* with the given trash flag."""
        fm = self._folder_model
        folders = await session.execute(
            select(fm).where(fm.owner_id == owner_id, fm.is_deleted == deleted).order_by(fm.name)
        )
        filem = self._file_model
        files = await session.execute(
            select(filem)
            .where(filem.owner_id == owner_id, filem.is_deleted == deleted)
            .order_by(filem.name)
        )
        return list(folders.scalars().all()), list(files.scalars().all())

    async def starred_files(self, session: AsyncSession, owner_id: str) -> list[FileBase]:
        model = self._file_model
        result = await session.execute(
            select(model)
            .where(
                model.owner_id == owner_id,
                model.is_starred == True,  # noqa: E712
                model.is_deleted == False,  # noqa: E712
            )
            .order_by(model.name)
        )
        return list(result.scalars().all())

    async def search_files(
        self, session: AsyncSession, owner_id: str, query: str
    ) -> list[FileBase]:
        """Live files of *owner_id* whose name contains *query*, ignoring case.

        ``%`` and ``_`` in *query* match literally.
        """
        model = self._file_model
        result = await session.execute(
            select(model)
            .where(
                model.owner_id == owner_id,
                model.is_deleted == False,  # noqa: E712
                func.lower(model.name).contains(query.lower(), autoescape=True),
            )
            .order_by(model.name)
        )
        return list(result.scalars().all())

    async def recent_files(
        self, session: AsyncSession, owner_id: str, limit: int = 5
    ) -> list[FileBase]:
        """Newest live files of *owner_id*, most recent first."""
        model = self._file_model
        result = await session.execute(
            select(model)
            .where(model.owner_id == owner_id, model.is_deleted == False)  # noqa: E712
            .order_by(model.created_at.desc())  # type: ignore[union-attr]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_nodes(
        self, session: AsyncSession, owner_id: str
    ) -> tuple[int, int, int]:
        """(live files, live folders, starred live files) owned by *owner_id*."""
        filem = self._file_model
        fm = self._folder_model
        live_file = (filem.owner_id == owner_id) & (filem.is_deleted == False)  # noqa: E712
        files = await session.execute(select(func.count()).select_from(filem).where(live_file))
        starred = await session.execute(
            select(func.count())
            .select_from(filem)
            .where(live_file, filem.is_starred == True)  # noqa: E712
        )
        folders = await session.execute(
            select(func.count())
            .select_from(fm)
            .where(fm.owner_id == owner_id, fm.is_deleted == False)  # noqa: E712
        )
        return files.scalar_one(), folders.scalar_one(), starred.scalar_one()

    # ------------------------------------------------------------------
    # Walks
    # ------------------------------------------------------------------

    async def subtree_folder_ids(self, session: AsyncSession, folder_id: str) -> list[str]:
        """Ids of *folder_id* and every folder below it, parents before children.

        Includes trashed folders.  Explicit worklist, no recursion.
        """
        model = self._folder_model
        ordered: list[str] = []
        seen: set[str] = set()
        stack = [folder_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            ordered.append(current)
            result = await session.execute(select(model.id).where(model.parent_id == current))
            stack.extend(row[0] for row in result.all())
        return ordered

    async def ancestors(
        self,
        session: AsyncSession,
        folder_id: str | None,
        *,
        include_self: bool = True,
        max_depth: int | None = None,
    ) -> AsyncIterator[FolderBase]:
        """Yield folders from *folder_id* up to its root.

        Stops at the root, at a missing parent row, on a cycle, or after
        *max_depth* folders when a limit is given.
        """
        seen: set[str] = set()
        current_id = folder_id
        depth = 0
        first = True
        while current_id is not None and current_id not in seen:
            if max_depth is not None and depth >= max_depth:
                return
            seen.add(current_id)
            folder = await self.get_folder(session, current_id)
            if folder is None:
                return
            if include_self or not first:
                yield folder
                depth += 1
            first = False
            current_id = folder.parent_id

    async def is_within(
        self,
        session: AsyncSession,
        folder_id: str | None,
        ancestor_id: str,
        *,
        max_depth: int | None = None,
    ) -> bool:
        """True if *folder_id* is *ancestor_id* or lies below it."""
        async for folder in self.ancestors(session, folder_id, max_depth=max_depth):
            if folder.id == ancestor_id:
                return True
        return False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _validated_name(self, name: str) -> str:
        name = name.strip()
        valid, error = validate_name(name, self._max_name_length)
        if not valid:
            raise ValidationError(error)
        return name

    async def create_folder(
        self,
        session: AsyncSession,
        owner_id: str,
        name: str,
        parent_id: str | None = None,
    ) -> FolderBase:
        """Insert a folder row. Flushes but does not commit."""
        folder = self._folder_model(
            name=self._validated_name(name),
            owner_id=owner_id,
            parent_id=parent_id,
        )
        session.add(folder)
        await session.flush()
        return folder

    async def create_file(
        self,
        session: AsyncSession,
        owner_id: str,
        name: str,
        *,
        size_bytes: int,
        mime_type: str,
        folder_id: str | None = None,
        content_hash: str | None = None,
    ) -> FileBase:
        """Insert a file row. Flushes but does not commit."""
        file = self._file_model(
            name=self._validated_name(name),
            owner_id=owner_id,
            folder_id=folder_id,
            size_bytes=size_bytes,
            mime_type=mime_type,
            content_hash=content_hash,
        )
        session.add(file)
        await session.flush()
        return file

    async def rename(
        self, session: AsyncSession, node: FolderBase | FileBase, name: str
    ) -> FolderBase | FileBase:
        node.name = self._validated_name(name)
        node.updated_at = datetime.now(UTC)
        await session.flush()
        return node

    async def move_folder(
        self,
        session: AsyncSession,
        folder: FolderBase,
        new_parent: FolderBase | None,
    ) -> FolderBase:
        """Re-parent *folder*, keeping the parent chain acyclic."""
        if new_parent is not None:
            if await self.is_within(session, new_parent.id, folder.id):
                raise InvalidStateError("Cannot move folder into itself or its subfolder")
        new_parent_id = new_parent.id if new_parent is not None else None
        if folder.parent_id == new_parent_id:
            raise InvalidStateError("Folder is already in this location")
        folder.parent_id = new_parent_id
        folder.updated_at = datetime.now(UTC)
        await session.flush()
        return folder

    async def move_file(
        self,
        session: AsyncSession,
        file: FileBase,
        new_folder: FolderBase | None,
    ) -> FileBase:
        new_folder_id = new_folder.id if new_folder is not None else None
        if file.folder_id == new_folder_id:
            raise InvalidStateError("File is already in this location")
        file.folder_id = new_folder_id
        file.updated_at = datetime.now(UTC)
        await session.flush()
        return file

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @staticmethod
    def to_info(
        node: FolderBase | FileBase, permission: Permission | None = None
    ) -> NodeInfo:
        """Convert a node row to a ``NodeInfo``."""
        if isinstance(node, FileBase):
            return NodeInfo(
                resource=Resource.file(node.id),
                name=node.name,
                owner_id=node.owner_id,
                parent_id=node.folder_id,  # type: ignore[union-attr]
                size_bytes=node.size_bytes,  # type: ignore[union-attr]
                mime_type=node.mime_type,  # type: ignore[union-attr]
                is_starred=node.is_starred,  # type: ignore[union-attr]
                is_deleted=node.is_deleted,
                created_at=node.created_at,
                updated_at=node.updated_at,
                deleted_at=node.deleted_at,
                permission=permission,
            )
        return NodeInfo(
            resource=Resource.folder(node.id),
            name=node.name,
            owner_id=node.owner_id,
            parent_id=node.parent_id,  # type: ignore[union-attr]
            is_deleted=node.is_deleted,
            created_at=node.created_at,
            updated_at=node.updated_at,
            deleted_at=node.deleted_at,
            permission=permission,
        )
