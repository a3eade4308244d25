"""Permission levels and share grants."""

from __future__ import annotations

from enum import Enum

from .exceptions import ValidationError


class SharePermission(str, Enum):
    """Level granted by a share row."""

    VIEW = "view"
    EDIT = "edit"

    @classmethod
    def parse(cls, value: str | SharePermission) -> SharePermission:
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Invalid permission: {value!r}. Must be 'view' or 'edit'."
            ) from None


class Permission(str, Enum):
    """Effective permission of a user on a resource."""

    OWNER = "owner"
    EDIT = "edit"
    VIEW = "view"
    NONE = "none"

    @property
    def can_edit(self) -> bool:
        return self in (Permission.OWNER, Permission.EDIT)

    @property
    def can_view(self) -> bool:
        return self is not Permission.NONE

    def satisfies(self, required: Permission) -> bool:
        """True if this level is at least *required*."""
        return _RANK[self] >= _RANK[required]

    @classmethod
    def from_share(cls, permission: str | SharePermission) -> Permission:
        """Map a share row's permission string 1:1 onto an effective level."""
        return cls(SharePermission.parse(permission).value)


_RANK = {
    Permission.NONE: 0,
    Permission.VIEW: 1,
    Permission.EDIT: 2,
    Permission.OWNER: 3,
}
