"""
Batch planning: content items -> Telegram-sized batches, resumable by index.
"""
from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Consecutive chunks of at most size items, order preserved."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def pending_batches(items: Sequence[T], size: int, already_sent: int) -> list[tuple[int, list[T]]]:
    """(index, batch) pairs not yet recorded; already_sent = len(sent_messages)."""
    return [(i, batch) for i, batch in enumerate(partition(items, size)) if i >= already_sent]
