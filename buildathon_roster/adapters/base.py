"""Base adapter interface for key-value storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class KeyValueAdapter(ABC):
    """Abstract key-value area holding whole JSON-compatible blobs."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value stored under ``key`` or ``None``."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
