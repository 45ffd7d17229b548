"""In-process adapter, mostly useful for tests and dry runs."""

from __future__ import annotations

import copy
from typing import Any

from .base import KeyValueAdapter


class MemoryAdapter(KeyValueAdapter):
    """Dictionary-backed key-value area.

    Values are deep-copied on the way in and out so callers never hold a
    reference into the store, mirroring a real serialisation boundary.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
