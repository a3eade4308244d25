"""Canopy: synchronous wrapper around CanopyAsync."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, Any

from canopy._canopy_async import CanopyAsync

if TYPE_CHECKING:
    from datetime import datetime

    from canopy.config import CanopyConfig
    from canopy.events import EventBus
    from canopy.fs.permissions import Permission, SharePermission
    from canopy.fs.types import (
        DashboardSummary,
        DestroyResult,
        FolderListing,
        NodeInfo,
        ResourceKind,
        ShareInfo,
        ShareLinkInfo,
        SharedByMeItem,
        SharedItem,
        TokenGrant,
        TrashResult,
    )


class Canopy:
    """Synchronous Canopy API backed by a private event loop in a background thread.

    Accepts the same keyword arguments as :class:`CanopyAsync`.  Usable
    from plain sync code or from inside a running event loop (the calls
    block the caller's thread, not the private loop).

    Usage::

        with Canopy(url="sqlite+aiosqlite:///canopy.db", users=directory) as c:
            folder = c.create_folder("alice", "Reports")
            link = c.generate_link("alice", folder.id, "folder")
    """

    def __init__(self, **kwargs: Any) -> None:
        self._closed = False

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        self._async = CanopyAsync(**kwargs)
        try:
            self._run(self._async.open())
        except BaseException:
            self._stop_loop()
            raise

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    def close(self) -> None:
        """Dispose owned resources, stop the event loop and join the thread."""
        if self._closed:
            return
        self._closed = True
        try:
            self._run(self._async.close())
        finally:
            self._stop_loop()

    def __enter__(self) -> Canopy:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    @property
    def config(self) -> CanopyConfig:
        return self._async.config

    @property
    def event_bus(self) -> EventBus:
        return self._async.event_bus

    # ------------------------------------------------------------------
    # Permission resolution
    # ------------------------------------------------------------------

    def resolve_permission(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> Permission:
        return self._run(self._async.resolve_permission(user_id, resource_id, kind))

    def resolve_by_token(self, token: str) -> TokenGrant:
        return self._run(self._async.resolve_by_token(token))

    def resolve_descendant(
        self, token: str, descendant_id: str, kind: ResourceKind | str
    ) -> TokenGrant:
        return self._run(self._async.resolve_descendant(token, descendant_id, kind))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def move_to_trash(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> TrashResult:
        return self._run(self._async.move_to_trash(user_id, resource_id, kind))

    def restore(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> None:
        self._run(self._async.restore(user_id, resource_id, kind))

    def permanently_delete(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> DestroyResult:
        return self._run(self._async.permanently_delete(user_id, resource_id, kind))

    def list_trash(self, user_id: str) -> list[NodeInfo]:
        return self._run(self._async.list_trash(user_id))

    def empty_trash(self, user_id: str) -> DestroyResult:
        return self._run(self._async.empty_trash(user_id))

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    def share(
        self,
        user_id: str,
        resource_id: str,
        kind: ResourceKind | str,
        recipient_email: str,
        permission: str | SharePermission,
        *,
        notify: bool = False,
        expires_at: datetime | None = None,
    ) -> ShareInfo:
        return self._run(
            self._async.share(
                user_id,
                resource_id,
                kind,
                recipient_email,
                permission,
                notify=notify,
                expires_at=expires_at,
            )
        )

    def generate_link(
        self,
        user_id: str,
        resource_id: str,
        kind: ResourceKind | str,
        *,
        expires_at: datetime | None = None,
    ) -> ShareLinkInfo:
        return self._run(
            self._async.generate_link(user_id, resource_id, kind, expires_at=expires_at)
        )

    def get_link(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> ShareLinkInfo | None:
        return self._run(self._async.get_link(user_id, resource_id, kind))

    def revoke_link(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> None:
        self._run(self._async.revoke_link(user_id, resource_id, kind))

    def revoke_share(
        self, user_id: str, resource_id: str, kind: ResourceKind | str, share_id: str
    ) -> None:
        self._run(self._async.revoke_share(user_id, resource_id, kind, share_id))

    def update_share_permission(
        self,
        user_id: str,
        resource_id: str,
        kind: ResourceKind | str,
        share_id: str,
        permission: str | SharePermission,
    ) -> ShareInfo:
        return self._run(
            self._async.update_share_permission(user_id, resource_id, kind, share_id, permission)
        )

    def remove_all_access(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> None:
        self._run(self._async.remove_all_access(user_id, resource_id, kind))

    def remove_self(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> None:
        self._run(self._async.remove_self(user_id, resource_id, kind))

    def list_shares(
        self, user_id: str, resource_id: str, kind: ResourceKind | str
    ) -> list[ShareInfo]:
        return self._run(self._async.list_shares(user_id, resource_id, kind))

    def shared_with_me(self, user_id: str) -> list[SharedItem]:
        return self._run(self._async.shared_with_me(user_id))

    def shared_by_me(self, user_id: str) -> list[SharedByMeItem]:
        return self._run(self._async.shared_by_me(user_id))

    def toggle_shared_star(self, user_id: str, file_id: str) -> bool:
        return self._run(self._async.toggle_shared_star(user_id, file_id))

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    def get_node(self, user_id: str, resource_id: str, kind: ResourceKind | str) -> NodeInfo:
        return self._run(self._async.get_node(user_id, resource_id, kind))

    def create_folder(self, user_id: str, name: str, parent_id: str | None = None) -> NodeInfo:
        return self._run(self._async.create_folder(user_id, name, parent_id))

    def rename(
        self, user_id: str, resource_id: str, kind: ResourceKind | str, name: str
    ) -> NodeInfo:
        return self._run(self._async.rename(user_id, resource_id, kind, name))

    def move_folder(
        self, user_id: str, folder_id: str, new_parent_id: str | None = None
    ) -> NodeInfo:
        return self._run(self._async.move_folder(user_id, folder_id, new_parent_id))

    def move_file(self, user_id: str, file_id: str, folder_id: str | None = None) -> NodeInfo:
        return self._run(self._async.move_file(user_id, file_id, folder_id))

    def upload_file(
        self,
        user_id: str,
        name: str,
        data: bytes,
        *,
        mime_type: str | None = None,
        folder_id: str | None = None,
    ) -> NodeInfo:
        return self._run(
            self._async.upload_file(
                user_id, name, data, mime_type=mime_type, folder_id=folder_id
            )
        )

    def download_file(self, user_id: str, file_id: str) -> bytes:
        return self._run(self._async.download_file(user_id, file_id))

    def download_shared_file(self, token: str, file_id: str | None = None) -> bytes:
        return self._run(self._async.download_shared_file(token, file_id))

    def list_folder(self, user_id: str, folder_id: str | None = None) -> FolderListing:
        return self._run(self._async.list_folder(user_id, folder_id))

    def list_shared_folder(self, token: str, folder_id: str | None = None) -> FolderListing:
        return self._run(self._async.list_shared_folder(token, folder_id))

    def toggle_star(self, user_id: str, file_id: str) -> bool:
        return self._run(self._async.toggle_star(user_id, file_id))

    def list_starred(self, user_id: str) -> list[NodeInfo]:
        return self._run(self._async.list_starred(user_id))

    def search_files(self, user_id: str, query: str) -> list[NodeInfo]:
        return self._run(self._async.search_files(user_id, query))

    def dashboard(self, user_id: str) -> DashboardSummary:
        return self._run(self._async.dashboard(user_id))
