"""Key-value backends for roster storage."""

from .base import KeyValueAdapter
from .json_file import JSONFileAdapter
from .memory import MemoryAdapter

__all__ = ["KeyValueAdapter", "JSONFileAdapter", "MemoryAdapter"]
