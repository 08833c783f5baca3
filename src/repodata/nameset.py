"""Unordered set of distinct names.

Used for allowlists, dependency edges and the filename/package-name indexes.
Iteration order is arbitrary; callers that need a stable order use
``sorted_items``.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Set


class NameSet:
    """A set of strings with the handful of operations the pipeline needs."""

    def __init__(self, items: Optional[Iterable[str]] = None):
        self._items: Set[str] = set()
        if items is not None:
            self.update(items)

    def add(self, name: str) -> None:
        self._items.add(name)

    def update(self, names: Iterable[str]) -> None:
        """Add every name from ``names``."""
        self._items.update(names)

    def remove(self, name: str) -> None:
        """Remove ``name``; absent names are ignored."""
        self._items.discard(name)

    def pop(self) -> str:
        """Remove and return an arbitrary name.

        Raises:
            KeyError: If the set is empty.
        """
        return self._items.pop()

    def union(self, other: Iterable[str]) -> "NameSet":
        """Return a new set holding the names of both sets."""
        merged = NameSet(self._items)
        merged.update(other)
        return merged

    def items(self) -> List[str]:
        """Names in arbitrary order."""
        return list(self._items)

    def sorted_items(self) -> List[str]:
        return sorted(self._items)

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, NameSet):
            return self._items == other._items
        if isinstance(other, (set, frozenset)):
            return self._items == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"NameSet({self.sorted_items()!r})"
