"""Explicitly owned caches for repo labels and users."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedCache(Generic[K, V]):
    """A small dict cache that loaders may fill from worker threads."""

    def __init__(self, name: str):
        self.name = name
        self._values: dict[K, V] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._values[key] = value

    def get_or_load(self, key: K, loader: Callable[[K], V]) -> V:
        """Return the cached value, calling ``loader`` on a miss."""
        cached = self.get(key)
        if cached is not None:
            return cached
        logger.debug("%s cache miss: %s", self.name, key)
        value = loader(key)
        self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def clear_for(self, key: K) -> None:
        with self._lock:
            self._values.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)


@dataclass
class Caches:
    """Caches injected into the section host.

    ``labels`` maps ``owner/name`` to the repo's labels, ``users`` maps a
    name to its login (``"@me"`` to the viewer).
    """

    labels: KeyedCache = field(default_factory=lambda: KeyedCache("labels"))
    users: KeyedCache = field(default_factory=lambda: KeyedCache("users"))

    def clear(self) -> None:
        self.labels.clear()
        self.users.clear()

    def clear_for(self, repo: str) -> None:
        self.labels.clear_for(repo)
