"""Key-value area persisted to a single JSON document on disk."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from ..errors import ValidationError
from .base import KeyValueAdapter


class JSONFileAdapter(KeyValueAdapter):
    """Persist every key of the area into one JSON file.

    The file is rewritten on every :meth:`set`.  Writes go to a temporary
    file first and are moved into place with :func:`os.replace`, so a crash
    mid-write leaves the previous document intact.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    # ------------------------------------------------------------------
    # Internal helpers
    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ValidationError(
                    f"Storage file {self.path} is not valid JSON: {exc}"
                ) from exc
        if not isinstance(data, dict):
            raise ValidationError(f"Storage file {self.path} must hold a JSON object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)

    # ------------------------------------------------------------------
    async def get(self, key: str) -> Any | None:
        return self._read().get(key)

    async def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)
