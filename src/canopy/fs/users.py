"""User identities and the in-process directory and notifier."""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserInfo:
    """A principal as seen by the storage core."""

    id: str
    email: str
    display_name: str = ""

    @property
    def name(self) -> str:
        """Display name, falling back to the email address."""
        return self.display_name or self.email


class StaticUserDirectory:
    """In-process ``UserDirectory`` backed by a dict.

    Emails are matched case-insensitively.
    """

    def __init__(self, users: list[UserInfo] | None = None) -> None:
        self._by_id: dict[str, UserInfo] = {}
        self._by_email: dict[str, UserInfo] = {}
        for user in users or []:
            self.add(user)

    def add(self, user: UserInfo) -> None:
        """Register or replace *user*."""
        old = self._by_id.get(user.id)
        if old is not None:
            self._by_email.pop(old.email.lower(), None)
        self._by_id[user.id] = user
        self._by_email[user.email.lower()] = user

    def remove(self, user_id: str) -> bool:
        """Remove a user. Return True if found."""
        user = self._by_id.pop(user_id, None)
        if user is None:
            return False
        self._by_email.pop(user.email.lower(), None)
        return True

    async def by_id(self, user_id: str) -> UserInfo | None:
        return self._by_id.get(user_id)

    async def by_email(self, email: str) -> UserInfo | None:
        return self._by_email.get(email.strip().lower())

    def __len__(self) -> int:
        return len(self._by_id)


class LoggingNotifier:
    """``Notifier`` that only records share notifications in the log."""

    async def notify_share(
        self,
        recipient: UserInfo,
        resource_name: str,
        permission: str,
        shared_by: UserInfo | None,
    ) -> None:
        logger.info(
            "Share notification: %s shared %r with %s (%s)",
            shared_by.name if shared_by else "unknown",
            resource_name,
            recipient.email,
            permission,
        )
