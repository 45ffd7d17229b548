"""Typed access to the three roster collections kept in a key-value area."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..adapters.base import KeyValueAdapter
from ..errors import ValidationError
from .models import Participant, Team

log = logging.getLogger(__name__)

KEYS = {
    "participants": "buildathon_participants",
    "teams": "buildathon_teams",
    "checkins": "buildathon_checkins",
}

_CHECKINS = TypeAdapter(dict[str, datetime.datetime])


def parse_participants(records: Iterable[Mapping[str, Any]]) -> list[Participant]:
    try:
        return [Participant.model_validate(r) for r in records]
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid participant record: {exc}") from exc


def parse_teams(records: Iterable[Mapping[str, Any]]) -> list[Team]:
    try:
        return [Team.model_validate(r) for r in records]
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid team record: {exc}") from exc


def parse_checkins(records: Mapping[str, Any]) -> dict[str, datetime.datetime]:
    try:
        return _CHECKINS.validate_python(dict(records))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid check-in record: {exc}") from exc


def dump_checkins(checkins: Mapping[str, datetime.datetime]) -> dict[str, str]:
    return _CHECKINS.dump_python(dict(checkins), mode="json")


class RosterStorage:
    """Persist participants, teams and check-ins as three whole blobs.

    Every read returns fresh model instances and every write replaces the
    full collection.  ``lock`` is held by callers that need a read-modify-write
    cycle over one or more collections to appear atomic.
    """

    def __init__(self, adapter: KeyValueAdapter) -> None:
        self.adapter = adapter
        self.lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        """Create empty collections for any key that is missing."""
        if self._initialized:
            return
        defaults: dict[str, Any] = {"participants": [], "teams": [], "checkins": {}}
        for name, default in defaults.items():
            if await self.adapter.get(KEYS[name]) is None:
                log.debug("Initialising empty %s collection", name)
                await self.adapter.set(KEYS[name], default)
        self._initialized = True

    # ------------------------------------------------------------------
    # Reads
    async def load_participants(self) -> list[Participant]:
        await self.initialize()
        return parse_participants(await self.adapter.get(KEYS["participants"]) or [])

    async def load_teams(self) -> list[Team]:
        await self.initialize()
        return parse_teams(await self.adapter.get(KEYS["teams"]) or [])

    async def load_checkins(self) -> dict[str, datetime.datetime]:
        await self.initialize()
        return parse_checkins(await self.adapter.get(KEYS["checkins"]) or {})

    # ------------------------------------------------------------------
    # Writes
    async def save_participants(self, participants: Iterable[Participant]) -> None:
        await self.adapter.set(
            KEYS["participants"], [p.to_record() for p in participants]
        )

    async def save_teams(self, teams: Iterable[Team]) -> None:
        await self.adapter.set(KEYS["teams"], [t.to_record() for t in teams])

    async def save_checkins(self, checkins: Mapping[str, datetime.datetime]) -> None:
        await self.adapter.set(KEYS["checkins"], dump_checkins(checkins))
