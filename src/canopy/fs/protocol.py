"""Collaborator protocols: runtime-checkable interfaces.

The storage core owns the tree, share, and lifecycle rows.  Everything
else it touches lives behind one of these protocols: the bytes of each
file, the user directory, and the share notification hook.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .users import UserInfo


@runtime_checkable
class BlobStore(Protocol):
    """Byte storage keyed by a file's opaque blob key."""

    async def get(self, key: str) -> bytes:
        """Return the bytes stored under *key*.  Raises ``StorageError`` if absent."""
        ...

    async def put(self, key: str, data: bytes) -> None:
        """Store *data* under *key*, replacing any previous value."""
        ...

    async def delete(self, key: str) -> None:
        """Remove *key*.  Missing keys are not an error."""
        ...


@runtime_checkable
class UserDirectory(Protocol):
    """Lookup of user identities by id or email."""

    async def by_id(self, user_id: str) -> UserInfo | None: ...

    async def by_email(self, email: str) -> UserInfo | None: ...


@runtime_checkable
class Notifier(Protocol):
    """Best-effort notification when a resource is shared with a user.

    Called after the share has been committed.  Implementations may
    raise; the caller logs the failure and carries on.
    """

    async def notify_share(
        self,
        recipient: UserInfo,
        resource_name: str,
        permission: str,
        shared_by: UserInfo | None,
    ) -> None: ...
