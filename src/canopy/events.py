"""EventBus and event types for post-commit side effects."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from canopy.fs.types import Resource, ResourceKind

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of committed mutations that handlers can observe."""

    RESOURCE_TRASHED = "resource_trashed"
    RESOURCE_RESTORED = "resource_restored"
    RESOURCE_DESTROYED = "resource_destroyed"
    SHARE_CREATED = "share_created"
    SHARE_REVOKED = "share_revoked"
    LINK_CREATED = "link_created"
    LINK_REVOKED = "link_revoked"


@dataclass(frozen=True, slots=True)
class ResourceEvent:
    """Immutable record of a committed mutation.

    Attributes:
        event_type: The kind of mutation that occurred.
        resource: The file or folder the mutation was applied to.
        user_id: The user who performed it.
        detail: Extra context (share id, recipient id, token), if any.
    """

    event_type: EventType
    resource: Resource
    user_id: str | None = None
    detail: str | None = None

    @property
    def kind(self) -> ResourceKind:
        return self.resource.kind


Handler = Callable[[ResourceEvent], Awaitable[Any]]


class EventBus:
    """Routes committed mutations to handlers by event type and node kind.

    A handler registered without *kind* sees events on files and folders
    alike.  The events of one transaction are delivered together by
    :meth:`emit_all` once it has committed; a failing handler is logged
    and the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._routes: list[tuple[EventType, ResourceKind | None, Handler]] = []

    def register(
        self, event_type: EventType, handler: Handler, *, kind: ResourceKind | None = None
    ) -> None:
        self._routes.append((event_type, kind, handler))

    def unregister(
        self, event_type: EventType, handler: Handler, *, kind: ResourceKind | None = None
    ) -> bool:
        """Drop the first route matching all three keys. Return True if one was dropped."""
        for i, route in enumerate(self._routes):
            if route[0] is event_type and route[1] is kind and route[2] == handler:
                del self._routes[i]
                return True
        return False

    def handlers_for(self, event: ResourceEvent) -> list[Handler]:
        return [
            handler
            for event_type, kind, handler in self._routes
            if event_type is event.event_type and kind in (None, event.kind)
        ]

    async def emit(self, event: ResourceEvent) -> None:
        await self.emit_all([event])

    async def emit_all(self, events: Iterable[ResourceEvent]) -> int:
        """Deliver *events* in order. Returns the number of handler failures."""
        failures = 0
        for event in events:
            for handler in self.handlers_for(event):
                try:
                    await handler(event)
                except Exception:
                    failures += 1
                    logger.warning(
                        "Handler %r failed for %s on %s %s",
                        handler,
                        event.event_type.value,
                        event.kind.value,
                        event.resource.id,
                        exc_info=True,
                    )
        return failures

    @property
    def handler_count(self) -> int:
        return len(self._routes)

    def clear(self) -> None:
        self._routes.clear()
