"""
ridgegaze/core/data_window.py — Fixed-capacity FIFO ring buffer.

Used for prediction smoothing (4 slots), stored diagnostic points (50 slots)
and for bounding the regression training sets.
"""

from __future__ import annotations

from typing import Generic, Iterator, TypeVar, overload

T = TypeVar("T")


class DataWindow(Generic[T]):
    """
    Ring buffer that keeps the most recent ``capacity`` elements.

    Pushing onto a full window overwrites the oldest element. Indexing is in
    insertion order: ``window[0]`` is the oldest retained element and
    ``window[len(window) - 1]`` the newest.

    Args:
        capacity: Maximum number of retained elements (must be ≥ 1).
        initial: Optional elements to push in order at construction.

    Example::

        w = DataWindow[int](3)
        for i in range(5):
            w.push(i)
        list(w)   # [2, 3, 4]
    """

    def __init__(self, capacity: int, initial: list[T] | None = None) -> None:
        if capacity < 1:
            raise ValueError(f"DataWindow capacity must be ≥ 1, got {capacity}")
        self._capacity = int(capacity)
        self._buffer: list[T] = []
        self._index = 0  # slot the next push overwrites once full
        for item in initial or []:
            self.push(item)

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, item: T) -> None:
        """Append ``item``, evicting the oldest element if the window is full."""
        if len(self._buffer) < self._capacity:
            self._buffer.append(item)
        else:
            self._buffer[self._index] = item
        self._index = (self._index + 1) % self._capacity

    def get(self, index: int) -> T:
        """
        Return the element at ``index`` in insertion order.

        Raises:
            IndexError: If ``index`` is outside ``0..len-1``.
        """
        n = len(self._buffer)
        if not 0 <= index < n:
            raise IndexError(f"DataWindow index {index} out of range (length {n})")
        if n < self._capacity:
            return self._buffer[index]
        return self._buffer[(self._index + index) % self._capacity]

    def add_all(self, items: list[T]) -> None:
        for item in items:
            self.push(item)

    def clear(self) -> None:
        self._buffer.clear()
        self._index = 0

    @property
    def data(self) -> list[T]:
        """A copy of the retained elements, oldest first."""
        return [self.get(i) for i in range(len(self._buffer))]

    def __len__(self) -> int:
        return len(self._buffer)

    def __iter__(self) -> Iterator[T]:
        return iter(self.data)

    @overload
    def __getitem__(self, index: int) -> T: ...

    @overload
    def __getitem__(self, index: slice) -> list[T]: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return self.data[index]
        if index < 0:
            index += len(self._buffer)
        return self.get(index)

    def __repr__(self) -> str:
        return f"DataWindow(capacity={self._capacity}, length={len(self)})"
