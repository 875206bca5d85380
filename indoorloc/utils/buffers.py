"""
Bounded sample buffers.

Every window in the pipeline is a fixed-capacity FIFO: appending to a full
buffer evicts the oldest entry, so memory use never grows with session
length. Two flavours are provided:

    - RingBuffer: capped by entry count
    - TimeWindowBuffer: capped by age (relative to the newest timestamp)
      and, optionally, by entry count

Both are thin wrappers around collections.deque(maxlen=...).
"""

from collections import deque
from typing import Any, Deque, Generic, Iterator, List, Optional, Tuple, TypeVar

import numpy as np

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """
    Fixed-capacity FIFO buffer.

    Example:
        >>> buf = RingBuffer(3)
        >>> for v in range(5):
        ...     buf.append(v)
        >>> buf.to_list()
        [2, 3, 4]
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)

    def append(self, item: T) -> None:
        self._items.append(item)

    def clear(self) -> None:
        self._items.clear()

    def last(self, n: Optional[int] = None) -> List[T]:
        """Return the newest n entries in insertion order (all if n is None)."""
        if n is None or n >= len(self._items):
            return list(self._items)
        if n <= 0:
            return []
        return list(self._items)[-n:]

    def latest(self) -> T:
        if not self._items:
            raise IndexError("latest() on empty buffer")
        return self._items[-1]

    def to_list(self) -> List[T]:
        return list(self._items)

    def resized(self, capacity: int) -> "RingBuffer[T]":
        """Return a new buffer of ``capacity`` holding the newest entries of this one."""
        buf: RingBuffer[T] = RingBuffer(capacity)
        for item in self.last(capacity):
            buf.append(item)
        return buf

    def is_full(self) -> bool:
        return len(self._items) == self.capacity

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __bool__(self) -> bool:
        return bool(self._items)


class TimeWindowBuffer:
    """
    Buffer of (timestamp_ms, value) pairs spanning a sliding time window.

    Entries older than ``window_ms`` relative to the newest timestamp are
    evicted on every append (an entry is kept while ``t > t_newest - window_ms``).
    An optional ``max_entries`` caps the count as well, which keeps the
    buffer bounded even if timestamps stall.

    Args:
        window_ms: Window length in milliseconds.
        max_entries: Optional hard cap on stored entries.
    """

    def __init__(self, window_ms: float, max_entries: Optional[int] = None):
        if window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {window_ms}")
        if max_entries is not None and max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.window_ms = float(window_ms)
        self.max_entries = max_entries
        self._items: Deque[Tuple[float, Any]] = deque(maxlen=max_entries)

    def append(self, t_ms: float, value: Any) -> None:
        self._items.append((float(t_ms), value))
        cutoff = float(t_ms) - self.window_ms
        while self._items and self._items[0][0] <= cutoff:
            self._items.popleft()

    def clear(self) -> None:
        self._items.clear()

    def values(self, last_n: Optional[int] = None) -> List[Any]:
        items = list(self._items)
        if last_n is not None:
            items = items[-last_n:] if last_n > 0 else []
        return [v for _, v in items]

    def timestamps(self, last_n: Optional[int] = None) -> np.ndarray:
        items = list(self._items)
        if last_n is not None:
            items = items[-last_n:] if last_n > 0 else []
        return np.array([t for t, _ in items], dtype=float)

    def items(self) -> List[Tuple[float, Any]]:
        return list(self._items)

    def span_ms(self) -> float:
        """Time between the oldest and newest entry (0 for fewer than 2)."""
        if len(self._items) < 2:
            return 0.0
        return self._items[-1][0] - self._items[0][0]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)
