import itertools
import threading
from typing import Dict, Generic, TypeVar

T = TypeVar("T")


class UnknownHandleError(LookupError):
    """The handle was never issued, or has been removed."""

    def __init__(self, handle: int) -> None:
        super().__init__(handle)
        self.handle = handle

    def __str__(self) -> str:
        return f"Unknown process handle: {self.handle}"


class HandleRegistry(Generic[T]):
    """
    Maps opaque integer handles to records. Handles start at 1 and are never
    reused, so a stale handle can only ever miss.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[int, T] = {}
        self._next_handle = itertools.count(1)

    def register(self, record: T) -> int:
        with self._lock:
            handle = next(self._next_handle)
            self._records[handle] = record
        return handle

    def lookup(self, handle: int) -> T:
        with self._lock:
            try:
                return self._records[handle]
            except KeyError:
                raise UnknownHandleError(handle) from None

    def remove(self, handle: int) -> T:
        with self._lock:
            try:
                return self._records.pop(handle)
            except KeyError:
                raise UnknownHandleError(handle) from None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, handle: int) -> bool:
        with self._lock:
            return handle in self._records
