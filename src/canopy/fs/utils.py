"""Name validation, share tokens, MIME detection, hashing."""

from __future__ import annotations

import hashlib
import mimetypes
import secrets

# Reserved filenames (Windows compatibility)
RESERVED_NAMES = {
    "CON", "PRN", "AUX", "NUL",
    "COM1", "COM2", "COM3", "COM4", "COM5", "COM6", "COM7", "COM8", "COM9",
    "LPT1", "LPT2", "LPT3", "LPT4", "LPT5", "LPT6", "LPT7", "LPT8", "LPT9",
}

DEFAULT_MAX_NAME_LENGTH = 255
DEFAULT_TOKEN_BYTES = 16  # 128 bits


def validate_name(name: str, max_length: int = DEFAULT_MAX_NAME_LENGTH) -> tuple[bool, str]:
    """Validate a file or folder name.

    Returns:
        (is_valid, error_message) - error_message is empty if valid
    """
    if not name or not name.strip():
        return False, "Name must not be empty"

    if "\x00" in name:
        return False, "Name contains null bytes"

    # Reject ASCII control characters (0x01-0x1f)
    for ch in name:
        code = ord(ch)
        if 0x01 <= code <= 0x1F:
            return False, f"Name contains control character: 0x{code:02x}"

    if "/" in name or "\\" in name:
        return False, "Name must not contain path separators"

    if name in (".", ".."):
        return False, f"Reserved name: {name}"

    if len(name) > max_length:
        return False, f"Name too long (max {max_length} characters)"

    name_upper = name.upper()
    base_name = name_upper.split(".")[0] if "." in name_upper else name_upper
    if base_name in RESERVED_NAMES:
        return False, f"Reserved filename: {name}"

    return True, ""


def generate_share_token(nbytes: int = DEFAULT_TOKEN_BYTES) -> str:
    """Mint an opaque public-link token with *nbytes* of randomness."""
    return secrets.token_hex(nbytes)


def guess_mime_type(filename: str) -> str:
    """Guess the MIME type of a file based on its name."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"


def compute_content_hash(data: bytes) -> tuple[str, int]:
    """Return (sha256_hex, size_bytes) for *data*."""
    return hashlib.sha256(data).hexdigest(), len(data)
