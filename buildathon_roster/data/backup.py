"""Full-state backup and restore, plus the attendance export."""

from __future__ import annotations

import datetime
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.models import BackupSnapshot, Participant, utcnow
from ..errors import RosterError, ValidationError
from .repository import EntityRepository

log = logging.getLogger(__name__)

REQUIRED_COLLECTIONS = ("participants", "teams")
ATTENDANCE_HEADERS = ("First Name", "Last Name", "School", "Email")
# characters that force a CSV field to be quoted
_QUOTE_TRIGGERS = (",", '"', "\n", "\r", " ")


@dataclass(frozen=True)
class RestoreSummary:
    participants: int
    teams: int
    checkins: int


def format_csv_field(value: Any) -> str:
    """Quote ``value`` for CSV output when it holds a delimiter, quote, line
    break or space; embedded quotes are doubled."""
    if value is None:
        return ""
    text = str(value)
    if any(ch in text for ch in _QUOTE_TRIGGERS):
        return '"' + text.replace('"', '""') + '"'
    return text


def attendance_row(participant: Participant) -> str:
    return ",".join(
        format_csv_field(v)
        for v in (
            participant.first_name,
            participant.last_name,
            participant.college or "",
            participant.email or "",
        )
    )


def backup_filename(kind: str = "backup", today: datetime.date | None = None) -> str:
    """Suggested download name, e.g. ``buildathon-backup-2024-03-01.json``."""
    today = today or utcnow().date()
    extension = "csv" if kind == "attendance" else "json"
    return f"buildathon-{kind}-{today.isoformat()}.{extension}"


def parse_backup(payload: str | bytes | Mapping[str, Any]) -> BackupSnapshot:
    """Validate a backup document without touching storage."""
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Failed to import data: {exc}") from exc
    else:
        data = payload
    if not isinstance(data, Mapping):
        raise ValidationError("Failed to import data: backup must be a JSON object")
    missing = [k for k in REQUIRED_COLLECTIONS if data.get(k) is None]
    if missing:
        raise ValidationError(
            "Failed to import data: Invalid backup data: missing required collections "
            + ", ".join(missing)
        )
    document = dict(data)
    if document.get("checkins") is None:
        document["checkins"] = {}
    if document.get("timestamp") is None:
        document.pop("timestamp", None)
    try:
        return BackupSnapshot.model_validate(document)
    except PydanticValidationError as exc:
        raise ValidationError(f"Failed to import data: {exc}") from exc


class BackupCodec:
    """Serialise the whole roster to JSON and restore it again."""

    def __init__(self, repository: EntityRepository) -> None:
        self.repository = repository

    async def snapshot(self) -> BackupSnapshot:
        roster = await self.repository.snapshot()
        return BackupSnapshot(
            timestamp=utcnow(),
            participants=roster.participants,
            teams=roster.teams,
            checkins=roster.checkins,
        )

    async def export_all_data(self) -> str:
        """Return the full roster as an indented JSON document."""
        snapshot = await self.snapshot()
        return json.dumps(snapshot.to_document(), indent=2, ensure_ascii=False)

    async def import_all_data(
        self, payload: str | bytes | Mapping[str, Any]
    ) -> RestoreSummary:
        """Replace every collection with the contents of a backup.

        The payload is validated completely before anything is written; a
        malformed backup leaves storage untouched.
        """
        try:
            snapshot = parse_backup(payload)
        except RosterError:
            log.error("Rejected backup payload", exc_info=True)
            raise
        await self.repository.replace_all(
            snapshot.participants, snapshot.teams, snapshot.checkins
        )
        summary = RestoreSummary(
            participants=len(snapshot.participants),
            teams=len(snapshot.teams),
            checkins=len(snapshot.checkins),
        )
        log.info(
            "Restored backup: %d participants, %d teams, %d check-ins",
            summary.participants, summary.teams, summary.checkins,
        )
        return summary

    async def export_checked_in_csv(self) -> str:
        """Attendance sheet of every checked-in participant, for accounting."""
        roster = await self.repository.snapshot()
        lines = [",".join(ATTENDANCE_HEADERS)]
        lines.extend(
            attendance_row(p) for p in roster.participants if p.id in roster.checkins
        )
        return "\n".join(lines)
