from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock


class KeyedLock:
    """
    One mutex per key, created on demand and dropped once no thread holds or waits on it.
    Work on different keys never contends beyond the short bookkeeping section.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)
