"""Deterministic names derived from an extension identifier."""

import re
from typing import Optional

from .exceptions import ValidationError

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_UNSAFE_SCHEMA_CHARS = re.compile(r"[^a-z0-9_]")


def to_safe_name(value: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with ``-``."""
    return _UNSAFE_CHARS.sub("-", value)


def require_identifier(identifier: Optional[str]) -> str:
    if not identifier or not identifier.strip():
        raise ValidationError("Extension identifier is required")
    return identifier


def build_package_basename(identifier: str, version: Optional[str] = None) -> str:
    """
    Build the cache file basename (without suffix) for a package.

    Args:
        identifier: Extension identifier
        version: Package version, omitted from the name when None

    Returns:
        ``<safe identifier>-<safe version>`` or ``<safe identifier>``
    """
    safe_identifier = to_safe_name(identifier)
    if version:
        return f"{safe_identifier}-{to_safe_name(version)}"
    return safe_identifier


def schema_name(identifier: str) -> str:
    """
    Map an identifier to its private database schema name.

    Schema names may only contain lower-case letters, digits and underscores
    and must start with a letter or underscore.
    """
    sanitized = _UNSAFE_SCHEMA_CHARS.sub("_", identifier.lower())
    if not re.match(r"^[a-z_]", sanitized):
        sanitized = f"ext_{sanitized}"
    return sanitized
