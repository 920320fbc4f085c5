"""Secret lookup helpers shared by the session signer and the storage gateways."""
from __future__ import annotations

import os
from typing import Final

__all__ = ["MissingSecretError", "is_placeholder", "optional_secret", "require_secret"]


class MissingSecretError(RuntimeError):
    """Raised when a secret is absent or still set to a template value."""


# Values shipped in sample env files; never accept them as real credentials.
_TEMPLATE_VALUES: Final[frozenset[str]] = frozenset(
    {
        "changeme",
        "change-me",
        "placeholder",
        "secret",
        "your-key-here",
        "your-mapbox-token",
    }
)


def is_placeholder(value: str | None) -> bool:
    normalized = (value or "").strip().lower()
    return not normalized or normalized in _TEMPLATE_VALUES


def optional_secret(name: str) -> str | None:
    """Return the trimmed value of ``name`` or ``None`` when unset or templated."""

    value = os.getenv(name)
    if is_placeholder(value):
        return None
    return value.strip()


def require_secret(name: str) -> str:
    """Return the trimmed value of ``name`` or raise :class:`MissingSecretError`."""

    value = optional_secret(name)
    if value is None:
        raise MissingSecretError(f"Environment variable {name} is required and must not use placeholder defaults")
    return value
