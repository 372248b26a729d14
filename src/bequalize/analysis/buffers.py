"""
Fixed-capacity ring buffers.

Storage is allocated once at construction and indexed with head/size
counters; appends past capacity overwrite the oldest entry.
"""

from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

import numpy as np

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """
    Fixed-capacity ring buffer of arbitrary objects.

    Example:
        >>> buf = RingBuffer[int](3)
        >>> buf.extend([1, 2, 3, 4])
        >>> buf.to_list()
        [2, 3, 4]
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"Ring buffer capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._items: list[T | None] = [None] * capacity
        self._head = 0  # index of the oldest item
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[T]:
        for i in range(self._size):
            item = self._items[(self._head + i) % self.capacity]
            yield item  # type: ignore[misc]

    @property
    def is_full(self) -> bool:
        return self._size == self.capacity

    def append(self, item: T) -> None:
        tail = (self._head + self._size) % self.capacity
        self._items[tail] = item
        if self._size < self.capacity:
            self._size += 1
        else:
            self._head = (self._head + 1) % self.capacity

    def extend(self, items: Iterable[T]) -> None:
        for item in items:
            self.append(item)

    def latest(self, n: int | None = None) -> list[T]:
        """Most recent n items in arrival order (all items when n is None)."""
        items = self.to_list()
        if n is None:
            return items
        return items[-n:] if n > 0 else []

    def to_list(self) -> list[T]:
        return list(self)

    def clear(self) -> None:
        self._items = [None] * self.capacity
        self._head = 0
        self._size = 0


class NumericRingBuffer:
    """Fixed-capacity ring buffer of floats backed by a preallocated array."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"Ring buffer capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._data = np.zeros(capacity, dtype=float)
        self._head = 0
        self._size = 0

    def __len__(self) -> int:
        return self._size

    @property
    def is_full(self) -> bool:
        return self._size == self.capacity

    def append(self, value: float) -> None:
        tail = (self._head + self._size) % self.capacity
        self._data[tail] = value
        if self._size < self.capacity:
            self._size += 1
        else:
            self._head = (self._head + 1) % self.capacity

    def extend(self, values: Iterable[float]) -> None:
        for value in values:
            self.append(float(value))

    def to_array(self) -> np.ndarray:
        """Copy of the buffered values, oldest first."""
        idx = (self._head + np.arange(self._size)) % self.capacity
        return self._data[idx].copy()

    def clear(self) -> None:
        self._data.fill(0.0)
        self._head = 0
        self._size = 0
