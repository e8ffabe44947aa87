from __future__ import annotations

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")

# Keeps IN (...) lists well below the bind limits of every backend
DEFAULT_CHUNK = 500


def chunked(items: Sequence[T], size: int = DEFAULT_CHUNK) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
