# window.py
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, List, Union

from stats import mean

Number = Union[int, float]


@dataclass
class WindowUpdate:
    """Outcome of one window update, as reported to the HTTP layer."""

    previous: List[Number]
    current: List[Number]
    numbers: List[Number] = field(default_factory=list)

    @property
    def average(self) -> float:
        return mean(self.current)


class SlidingWindowStore:
    """Fixed-capacity window of unique numbers, oldest first.

    New values that are already in the window are dropped. When the window
    overflows, the oldest entries are evicted to make room, so a batch with
    more unique values than the capacity leaves only its last ``capacity``
    values behind.
    """

    def __init__(self, capacity: int = 10):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        # deque(maxlen) evicts from the left on append
        self._values: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def update(self, new_values: Iterable[Number]) -> WindowUpdate:
        new_values = list(new_values)
        with self._lock:
            previous = list(self._values)
            seen = set(self._values)
            unique: List[Number] = []
            for v in new_values:
                if v not in seen:
                    seen.add(v)
                    unique.append(v)
            # No-op when nothing new arrived
            self._values.extend(unique)
            current = list(self._values)
        return WindowUpdate(previous=previous, current=current, numbers=new_values)

    def snapshot(self) -> List[Number]:
        with self._lock:
            return list(self._values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def __len__(self) -> int:
        return len(self._values)
