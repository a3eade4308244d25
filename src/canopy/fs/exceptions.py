"""Custom exception hierarchy for the Canopy storage core."""


class CanopyError(Exception):
    """Base exception for all Canopy errors."""


class NotFoundError(CanopyError):
    """Raised when a resource, share, user, or share token does not exist.

    Public share-link paths also raise this for inactive or expired tokens
    so that callers cannot tell which tokens once existed.
    """


class UnauthorizedError(CanopyError):
    """Raised when the caller lacks the permission level an operation needs."""


class InvalidStateError(CanopyError):
    """Raised when an operation is not valid for the node's current state.

    Examples: restoring a node that is not in the trash, permanently
    deleting an active node, sharing with oneself, or moving a folder
    into its own subtree.
    """


class ConflictError(CanopyError):
    """Raised when a uniqueness rule is violated and cannot be merged."""


class ValidationError(CanopyError):
    """Raised for malformed input such as empty names or unknown permissions."""


class StorageError(CanopyError):
    """Raised on blob store failures (disk I/O, missing blobs, etc.)."""
