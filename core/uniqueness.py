"""
core/uniqueness.py
────────────────────────────────────────────────────────────────────────
Batch-scoped recipe-name registry.

One tracker lives for exactly one generation batch and is shared by all
of its concurrently running slot tasks: they read `names()` to build the
exclude list for the prompt, and call `try_reserve()` when a candidate
passes structural validation. Reservation is check-and-insert under a
lock, so two tasks racing for the same name cannot both win.
"""
from __future__ import annotations

import threading
from typing import Iterable


def _normalise(name: str) -> str:
    return " ".join(name.split()).casefold()


class UniqueNameTracker:
    def __init__(self, seed: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._keys: set[str] = set()
        self._names: list[str] = []
        for name in seed:
            self.try_reserve(name)

    def try_reserve(self, name: str) -> bool:
        key = _normalise(name)
        if not key:
            return False
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            self._names.append(name.strip())
            return True

    def names(self) -> list[str]:
        with self._lock:
            return list(self._names)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return _normalise(name) in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
