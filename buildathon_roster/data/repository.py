"""CRUD operations over participants, teams and check-ins.

The repository checks that referenced entities exist but leaves cross-entity
rules (team membership, lead assignment) to :mod:`buildathon_roster.data.roster`.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.models import Participant, Team, new_id, utcnow
from ..core.storage import RosterStorage
from ..errors import NotFoundError, ValidationError

log = logging.getLogger(__name__)

# Descriptive team fields that are set when the team is created and frozen after.
FROZEN_TEAM_FIELDS = ("college", "theme_preference", "experience_level")
# Fields owned by the roster engine.
ENGINE_TEAM_FIELDS = ("members", "leader_id", "leader_name")


@dataclass
class Roster:
    """In-memory working set of all three collections."""

    participants: list[Participant]
    teams: list[Team]
    checkins: dict[str, datetime.datetime] = field(default_factory=dict)

    def find_participant(self, participant_id: str | None) -> Participant | None:
        return next((p for p in self.participants if p.id == participant_id), None)

    def find_team(self, team_id: str | None) -> Team | None:
        return next((t for t in self.teams if t.id == team_id), None)

    def participant(self, participant_id: str) -> Participant:
        found = self.find_participant(participant_id)
        if found is None:
            raise NotFoundError("Participant", participant_id)
        return found

    def team(self, team_id: str) -> Team:
        found = self.find_team(team_id)
        if found is None:
            raise NotFoundError("Team", team_id)
        return found

    def team_name_for(self, participant: Participant) -> str:
        team = self.find_team(participant.team_id)
        return team.name if team else "another team"


def _coerce(model: type, data: Mapping[str, Any] | Any) -> dict[str, Any]:
    """Return ``data`` as a dict keyed by field name (aliases translated)."""
    if isinstance(data, model):
        return data.model_dump(exclude_unset=True)
    names = {f.alias: name for name, f in model.model_fields.items() if f.alias}
    return {names.get(k, k): v for k, v in dict(data).items()}


class EntityRepository:
    """Participant, team and check-in storage operations."""

    def __init__(self, storage: RosterStorage) -> None:
        self.storage = storage

    @asynccontextmanager
    async def transaction(self, *, write: bool = True) -> AsyncIterator[Roster]:
        """Load all collections, yield them, and write them back on success.

        The storage lock is held for the whole block.  If the block raises,
        nothing is written.
        """
        async with self.storage.lock:
            roster = Roster(
                participants=await self.storage.load_participants(),
                teams=await self.storage.load_teams(),
                checkins=await self.storage.load_checkins(),
            )
            yield roster
            if write:
                await self.storage.save_participants(roster.participants)
                await self.storage.save_teams(roster.teams)
                await self.storage.save_checkins(roster.checkins)

    async def snapshot(self) -> Roster:
        async with self.transaction(write=False) as roster:
            return roster

    # ------------------------------------------------------------------
    # Participant operations
    # ------------------------------------------------------------------
    async def get_all_participants(self) -> list[Participant]:
        async with self.storage.lock:
            return await self.storage.load_participants()

    async def get_participant(self, participant_id: str) -> Participant:
        async with self.transaction(write=False) as roster:
            return roster.participant(participant_id)

    async def add_participant(self, data: Mapping[str, Any] | Participant) -> Participant:
        values = _coerce(Participant, data)
        values.pop("id", None)
        values.pop("created_at", None)
        values.pop("createdAt", None)
        try:
            participant = Participant.model_validate(values)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid participant: {exc}") from exc
        participant.id = new_id()
        participant.created_at = utcnow()
        if participant.is_team_lead or participant.is_team_member:
            participant.seeking_team = False
        if participant.is_team_lead:
            participant.is_team_member = False

        async with self.transaction() as roster:
            roster.participants.append(participant)
        log.info("Added participant %s (%s)", participant.name, participant.id)
        return participant

    async def update_participant(
        self, participant_id: str, data: Mapping[str, Any]
    ) -> Participant:
        """Merge ``data`` into the participant, keeping role flags exclusive."""
        values = _coerce(Participant, data)
        values.pop("id", None)
        flags = {
            k: values.get(k)
            for k in ("is_team_lead", "is_team_member", "seeking_team")
        }
        if flags["is_team_lead"] is True:
            values["seeking_team"] = False
            values["is_team_member"] = False
        elif flags["is_team_member"] is True:
            values["seeking_team"] = False
            values["is_team_lead"] = False
        elif flags["seeking_team"] is True:
            values["is_team_lead"] = False
            values["is_team_member"] = False

        async with self.transaction() as roster:
            current = roster.participant(participant_id)
            merged = current.model_dump() | values
            try:
                updated = Participant.model_validate(merged)
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid participant: {exc}") from exc
            updated.touch()
            index = roster.participants.index(current)
            roster.participants[index] = updated
        return updated

    async def delete_participant(self, participant_id: str) -> Participant:
        """Remove the participant record only.

        Team membership and check-ins are left untouched; use
        :meth:`RosterEngine.delete_participant` for the cascading variant.
        """
        async with self.transaction() as roster:
            participant = roster.participant(participant_id)
            roster.participants.remove(participant)
        log.info("Deleted participant %s (%s)", participant.name, participant_id)
        return participant

    # ------------------------------------------------------------------
    # Team operations
    # ------------------------------------------------------------------
    async def get_all_teams(self) -> list[Team]:
        async with self.storage.lock:
            return await self.storage.load_teams()

    async def get_team(self, team_id: str) -> Team:
        async with self.transaction(write=False) as roster:
            return roster.team(team_id)

    async def add_team(self, data: Mapping[str, Any] | Team) -> Team:
        values = _coerce(Team, data)
        values.pop("id", None)
        values.pop("created_at", None)
        values.pop("createdAt", None)
        try:
            team = Team.model_validate(values)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid team: {exc}") from exc
        team.id = new_id()
        team.created_at = utcnow()

        async with self.transaction() as roster:
            roster.teams.append(team)
        log.info("Added team %s (%s)", team.name, team.id)
        return team

    async def update_team(self, team_id: str, data: Mapping[str, Any]) -> Team:
        """Update editable team fields (name and recruitment status).

        Descriptive metadata is frozen once the team exists and membership is
        managed by the roster engine; attempts to change either raise
        :class:`ValidationError`.
        """
        values = _coerce(Team, data)
        values.pop("id", None)
        async with self.transaction() as roster:
            current = roster.team(team_id)
            for name in FROZEN_TEAM_FIELDS + ENGINE_TEAM_FIELDS:
                if name in values and values[name] != getattr(current, name):
                    raise ValidationError(
                        f"Team field '{name}' cannot be changed after creation"
                    )
            try:
                updated = Team.model_validate(current.model_dump() | values)
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid team: {exc}") from exc
            updated.touch()
            roster.teams[roster.teams.index(current)] = updated
        return updated

    # ------------------------------------------------------------------
    # Check-in operations
    # ------------------------------------------------------------------
    async def get_checkins(self) -> dict[str, datetime.datetime]:
        async with self.storage.lock:
            return await self.storage.load_checkins()

    async def is_checked_in(self, participant_id: str) -> bool:
        return participant_id in await self.get_checkins()

    async def check_in(self, participant_id: str) -> tuple[str, datetime.datetime]:
        async with self.transaction() as roster:
            roster.participant(participant_id)
            timestamp = utcnow()
            roster.checkins[participant_id] = timestamp
        log.info("Checked in participant %s", participant_id)
        return participant_id, timestamp

    async def remove_checkin(self, participant_id: str) -> None:
        async with self.transaction() as roster:
            if participant_id not in roster.checkins:
                raise NotFoundError(
                    "Checkin",
                    participant_id,
                    f"Checkin for participant with ID {participant_id} not found",
                )
            del roster.checkins[participant_id]
        log.info("Removed check-in for participant %s", participant_id)

    # ------------------------------------------------------------------
    # Bulk replacement
    # ------------------------------------------------------------------
    async def replace_all(
        self,
        participants: Iterable[Participant],
        teams: Iterable[Team],
        checkins: Mapping[str, datetime.datetime] | None = None,
    ) -> None:
        """Overwrite every collection.  The previous contents are discarded."""
        participants = list(participants)
        teams = list(teams)
        async with self.storage.lock:
            await self.storage.initialize()
            await self.storage.save_participants(participants)
            await self.storage.save_teams(teams)
            await self.storage.save_checkins(dict(checkins or {}))
        log.info(
            "Replaced roster: %d participants, %d teams", len(participants), len(teams)
        )
