"""CanopyConfig: tunables for a Canopy instance."""

from __future__ import annotations

from dataclasses import dataclass

from canopy.fs.utils import DEFAULT_MAX_NAME_LENGTH, DEFAULT_TOKEN_BYTES


@dataclass
class CanopyConfig:
    """Configuration shared by the services of one Canopy instance."""

    base_url: str = ""
    """Prefix for public share URLs, e.g. "https://files.example.com"."""

    max_ancestor_depth: int = 100
    """Upper bound on ancestor walks when checking share-link membership."""

    token_bytes: int = DEFAULT_TOKEN_BYTES
    """Random bytes per share-link token (16 = 128 bits)."""

    max_name_length: int = DEFAULT_MAX_NAME_LENGTH
    """Longest file or folder name accepted."""

    recent_files_limit: int = 5
    """Number of newest files in a dashboard summary."""

    create_tables: bool = True
    """If True, ``CanopyAsync.open()`` creates missing tables."""

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        if self.max_ancestor_depth < 1:
            raise ValueError("max_ancestor_depth must be at least 1")
        if self.token_bytes < 16:
            raise ValueError("token_bytes must be at least 16")

    def share_url(self, token: str) -> str:
        """Public URL for a share-link *token*."""
        return f"{self.base_url}/s/{token}"
