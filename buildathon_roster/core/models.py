"""Data models for the roster's core entities.

The models are implemented using :mod:`pydantic` so that they provide
runtime validation and convenient serialisation to and from the JSON
documents kept in storage and in backup files.  Python attributes are
snake_case; the serialised form uses the camelCase keys of the stored
records (``seekingTeam``, ``leaderId``, ``createdAt`` ...).
"""

from __future__ import annotations

import datetime
import re
import uuid
from datetime import UTC
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=UTC)


def new_id() -> str:
    return uuid.uuid4().hex


class RecordModel(BaseModel):
    """Shared configuration for persisted records.

    Unknown keys are kept so that a restored backup carries any extra fields
    through unchanged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_record(self) -> dict:
        """Return the JSON-compatible dictionary stored for this record."""
        return self.model_dump(mode="json", by_alias=True)


class Participant(RecordModel):
    """An individual registrant.

    Attributes
    ----------
    id:
        Opaque identifier assigned at creation. Defaults to a random UUID4
        hex string.
    name, email, college:
        Free text collected from the registration form.
    experience_level, theme_preference:
        Survey answers, kept as the raw category labels.
    seeking_team, is_team_lead, is_team_member:
        Mutually exclusive role flags.  Use :meth:`mark_seeking`,
        :meth:`mark_member` and :meth:`mark_lead` rather than setting them one
        at a time.
    team_id:
        The team currently joined, ``None`` when seeking.

    """

    id: str = Field(default_factory=new_id)
    name: str
    email: str = ""
    college: str = ""
    experience_level: str = ""
    theme_preference: str = ""
    seeking_team: bool = True
    is_team_lead: bool = False
    is_team_member: bool = False
    team_id: str | None = None
    created_at: datetime.datetime = Field(default_factory=utcnow)
    updated_at: datetime.datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_seeking(cls, data: Any) -> Any:
        # a record without a seeking flag is seeking only if it holds no team role
        if isinstance(data, dict) and "seekingTeam" not in data and "seeking_team" not in data:
            on_team = any(
                data.get(key)
                for key in ("isTeamLead", "is_team_lead", "isTeamMember", "is_team_member")
            )
            data = {**data, "seeking_team": not on_team}
        return data

    @property
    def first_name(self) -> str:
        return (self.name or "").split(" ", 1)[0]

    @property
    def last_name(self) -> str:
        parts = (self.name or "").split(" ", 1)
        return parts[1] if len(parts) > 1 else ""

    def touch(self) -> None:
        self.updated_at = utcnow()

    def mark_seeking(self) -> None:
        self.seeking_team = True
        self.is_team_lead = False
        self.is_team_member = False
        self.team_id = None
        self.touch()

    def mark_member(self, team_id: str) -> None:
        self.seeking_team = False
        self.is_team_lead = False
        self.is_team_member = True
        self.team_id = team_id
        self.touch()

    def mark_lead(self, team_id: str) -> None:
        self.seeking_team = False
        self.is_team_lead = True
        self.is_team_member = False
        self.team_id = team_id
        self.touch()


_DIGITS = re.compile(r"\D")


def team_number(name: str | None) -> int:
    """Number encoded in a team label: every digit in ``name`` concatenated."""
    digits = _DIGITS.sub("", name or "")
    return int(digits) if digits else 0


class Team(RecordModel):
    """A group with one lead and an ordered, duplicate-free member list."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    leader_id: str | None = None
    leader_name: str | None = None
    members: list[str] = Field(default_factory=list)
    college: str = ""
    theme_preference: str = ""
    experience_level: str = ""
    seeking_members: bool = False
    slots_needed: int = Field(default=0, ge=0)
    created_at: datetime.datetime = Field(default_factory=utcnow)
    updated_at: datetime.datetime | None = None

    @field_validator("members")
    @classmethod
    def _dedupe_members(cls, value: list[str]) -> list[str]:
        # keep first occurrence order
        return list(dict.fromkeys(value))

    @property
    def number(self) -> int:
        return team_number(self.name)

    def has_member(self, participant_id: str) -> bool:
        return participant_id in self.members

    def touch(self) -> None:
        self.updated_at = utcnow()


Checkins = dict[str, datetime.datetime]


class DiagnosticDiscrepancy(BaseModel):
    """A team row whose declared member count does not match what was found."""

    team_name: str
    leader_name: str
    declared: int
    actual: int
    missing_names: int = 0


class ImportDiagnostics(BaseModel):
    """Non-fatal counters produced by a CSV import."""

    total_rows_processed: int = 0
    individuals: int = 0
    team_leads: int = 0
    declared_additional_members: int = 0
    actual_members_created: int = 0
    missing_member_names: int = 0
    participants: int = 0
    discrepancies: list[DiagnosticDiscrepancy] = Field(default_factory=list)

    @property
    def expected_participants(self) -> int:
        return self.individuals + self.team_leads + self.declared_additional_members


class BackupSnapshot(BaseModel):
    """Full-state backup document."""

    timestamp: datetime.datetime = Field(default_factory=utcnow)
    participants: list[Participant]
    teams: list[Team]
    checkins: dict[str, datetime.datetime] = Field(default_factory=dict)

    def to_document(self) -> dict:
        dates = self.model_dump(mode="json", include={"timestamp", "checkins"})
        return {
            "timestamp": dates["timestamp"],
            "participants": [p.to_record() for p in self.participants],
            "teams": [t.to_record() for t in self.teams],
            "checkins": dates["checkins"],
        }
