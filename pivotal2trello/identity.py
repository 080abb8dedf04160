"""Content-addressed identity for stories and cards.

A card is recognised as "the same logical item" as a story when both hash to
the same key over (name, description). Nothing is persisted between runs, so
this key is the only link between a story and the card imported from it.
Editing either field after an import therefore produces a new key, and the
next run creates a fresh card instead of updating the old one.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import Protocol, TypeVar

# ASCII unit separator: never typed into a story title or description
SEPARATOR = "\x1f"


class _HasIdentity(Protocol):
    @property
    def identity_key(self) -> str: ...


T = TypeVar("T", bound=_HasIdentity)


def identity_key(name: str, description: str | None) -> str:
    """Return a stable hex digest for a (name, description) pair

    Example:
        >>> identity_key("Login page", "As a user...") == identity_key("Login page", "As a user...")
        True
    """
    content = f"{name}{SEPARATOR}{description or ''}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def group_by_identity(records: Iterable[T]) -> dict[str, list[T]]:
    """Group records by identity key, keeping input order within each group"""
    groups: dict[str, list[T]] = {}
    for record in records:
        groups.setdefault(record.identity_key, []).append(record)
    return groups
