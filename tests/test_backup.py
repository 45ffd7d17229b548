"""Tests for full backups, restores and the attendance export."""

import asyncio
import datetime
import json
from typing import Any

import pytest

from buildathon_roster.data.backup import (
    backup_filename,
    format_csv_field,
    parse_backup,
)
from buildathon_roster.errors import ValidationError


def run(coro: Any) -> Any:
    """Run an async coroutine synchronously for tests."""
    return asyncio.run(coro)


def seed(services) -> dict:
    repo = services.repository
    alice = run(repo.add_participant({"name": "Alice Smith", "college": "State"}))
    bob = run(repo.add_participant({"name": "Bob", "email": "bob@state.edu"}))
    team = run(services.engine.create_team(alice.id, [bob.id], college="State"))
    run(repo.check_in(bob.id))
    return {"alice": alice, "bob": bob, "team": team}


def collections(document: str) -> dict:
    data = json.loads(document)
    data.pop("timestamp")
    return data


def test_export_document_shape(services) -> None:
    seed(services)
    data = json.loads(run(services.backup.export_all_data()))
    assert set(data) == {"timestamp", "participants", "teams", "checkins"}
    assert data["participants"][0]["seekingTeam"] is False
    assert data["teams"][0]["leaderName"] == "Alice Smith"
    assert len(data["checkins"]) == 1


def test_export_import_round_trip(services) -> None:
    seed(services)
    first = run(services.backup.export_all_data())

    run(services.repository.add_participant({"name": "Later"}))
    summary = run(services.backup.import_all_data(first))
    assert (summary.participants, summary.teams, summary.checkins) == (2, 1, 1)

    second = run(services.backup.export_all_data())
    assert collections(second) == collections(first)


def test_restore_keeps_unknown_fields(services) -> None:
    payload = {
        "participants": [{"id": "p1", "name": "Ann", "shirtSize": "M"}],
        "teams": [],
    }
    run(services.backup.import_all_data(payload))
    data = json.loads(run(services.backup.export_all_data()))
    assert data["participants"][0]["shirtSize"] == "M"
    assert data["checkins"] == {}


def test_missing_collections_rejected_without_write(services) -> None:
    seed(services)
    before = run(services.backup.export_all_data())

    with pytest.raises(ValidationError, match="missing required collections"):
        run(services.backup.import_all_data({"participants": []}))
    with pytest.raises(ValidationError, match="Failed to import data"):
        run(services.backup.import_all_data("{not json"))
    with pytest.raises(ValidationError):
        run(services.backup.import_all_data('{"participants": [{"id": 1}], "teams": []}'))

    assert collections(run(services.backup.export_all_data())) == collections(before)


def test_parse_backup_defaults_checkins() -> None:
    snapshot = parse_backup(b'{"participants": [], "teams": [], "checkins": null}')
    assert snapshot.checkins == {}
    with pytest.raises(ValidationError):
        parse_backup("[1, 2]")


def test_attendance_csv(services) -> None:
    repo = services.repository
    mary = run(
        repo.add_participant(
            {"name": "Mary Jane Watson", "college": "Empire State", "email": "mj@esu.edu"}
        )
    )
    odd = run(repo.add_participant({"name": 'O"Neil', "college": "Tech, Inc"}))
    run(repo.add_participant({"name": "Absent"}))
    run(repo.check_in(mary.id))
    run(repo.check_in(odd.id))

    lines = run(services.backup.export_checked_in_csv()).split("\n")
    assert lines == [
        "First Name,Last Name,School,Email",
        'Mary,"Jane Watson","Empire State",mj@esu.edu',
        '"O""Neil",,"Tech, Inc",',
    ]


def test_attendance_csv_empty(services) -> None:
    assert run(services.backup.export_checked_in_csv()) == "First Name,Last Name,School,Email"


def test_format_csv_field() -> None:
    assert format_csv_field("plain") == "plain"
    assert format_csv_field(None) == ""
    assert format_csv_field("a,b") == '"a,b"'
    assert format_csv_field("line\nbreak") == '"line\nbreak"'


def test_backup_filename() -> None:
    day = datetime.date(2024, 3, 1)
    assert backup_filename(today=day) == "buildathon-backup-2024-03-01.json"
    assert backup_filename("attendance", day) == "buildathon-attendance-2024-03-01.csv"


def test_restore_records_without_seeking_flag(services) -> None:
    """Records that only carry a team role are not treated as seeking."""
    payload = {
        "participants": [
            {"id": "L", "name": "Lead", "isTeamLead": True, "teamId": "t1"},
            {"id": "M", "name": "Mem", "isTeamMember": True, "teamId": "t1"},
            {"id": "S", "name": "Solo"},
        ],
        "teams": [{"id": "t1", "name": "Team 1", "leaderId": "L", "members": ["L", "M"]}],
    }
    run(services.backup.import_all_data(payload))

    people = {p.id: p for p in run(services.repository.get_all_participants())}
    assert not people["L"].seeking_team
    assert not people["M"].seeking_team
    assert people["S"].seeking_team
    assert run(services.engine.audit()) == []


def test_export_uses_one_datetime_format(services) -> None:
    payload = {
        "timestamp": "2024-03-01T12:00:00.000Z",
        "participants": [
            {"id": "p1", "name": "Ann", "createdAt": "2024-03-01T10:00:00.000Z"}
        ],
        "teams": [],
        "checkins": {"p1": "2024-03-01T11:00:00.000Z"},
    }
    run(services.backup.import_all_data(payload))
    data = json.loads(run(services.backup.export_all_data()))
    assert data["participants"][0]["createdAt"] == "2024-03-01T10:00:00Z"
    assert data["checkins"] == {"p1": "2024-03-01T11:00:00Z"}
    assert data["timestamp"].endswith("Z")
