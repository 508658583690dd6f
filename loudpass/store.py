import threading
from typing import Iterator, List, Optional

from .models.specs import Result


class ResultStore:
    """Completed results in completion order.  Append-only for the process lifetime."""

    def __init__(self):
        self._items: List[Result] = []
        self._lock = threading.Lock()

    def append(self, result: Result) -> None:
        with self._lock:
            self._items.append(result)

    def __iter__(self) -> Iterator[Result]:
        with self._lock:
            snapshot = list(self._items)
        return iter(snapshot)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get(self, result_id: str) -> Optional[Result]:
        with self._lock:
            return next((r for r in self._items if r.result_id == result_id), None)
