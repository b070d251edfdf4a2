"""Helpers for splitting large id lists into bounded batches"""

from typing import Iterable, Iterator, List, TypeVar

T = TypeVar("T")


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """
    Yield consecutive lists of at most `size` items

    Args:
        items: Items to split
        size: Maximum batch length

    Yields:
        Batches in input order
    """
    if size <= 0:
        raise ValueError("Batch size must be positive")

    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch
