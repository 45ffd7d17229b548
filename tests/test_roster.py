"""Tests for the ``RosterEngine`` membership and naming operations."""

import asyncio
import datetime
from datetime import UTC
from typing import Any

import pytest

from buildathon_roster.core.models import Participant, Team
from buildathon_roster.data.roster import (
    ALREADY_IN_TEAM,
    audit_roster,
    migrate_names,
    renumber,
)
from buildathon_roster.errors import ConflictError, NotFoundError


def run(coro: Any) -> Any:
    """Run an async coroutine synchronously for tests."""
    return asyncio.run(coro)


def add_people(services, *names: str) -> list[Participant]:
    return [run(services.repository.add_participant({"name": n})) for n in names]


def assert_consistent(services) -> None:
    assert run(services.engine.audit()) == []


def roles(p: Participant) -> tuple[bool, bool, bool]:
    return (p.seeking_team, p.is_team_lead, p.is_team_member)


def test_create_team_sets_roles(services) -> None:
    alice, bob, cara = add_people(services, "Alice", "Bob", "Cara")
    team = run(services.engine.create_team(alice.id, [bob.id, cara.id], college="State"))

    assert team.name == "Team 1"
    assert team.members == [alice.id, bob.id, cara.id]
    assert team.leader_name == "Alice"

    repo = services.repository
    assert roles(run(repo.get_participant(alice.id))) == (False, True, False)
    assert roles(run(repo.get_participant(bob.id))) == (False, False, True)
    assert run(repo.get_participant(cara.id)).team_id == team.id
    assert_consistent(services)


def test_add_member_then_idempotent(services) -> None:
    alice, bob = add_people(services, "Alice", "Bob")
    team = run(services.engine.create_team(alice.id))

    first = run(services.engine.add_member_to_team(team.id, bob.id))
    assert first.status == "added"
    after_first = run(services.repository.snapshot())

    second = run(services.engine.add_member_to_team(team.id, bob.id))
    assert second.status == ALREADY_IN_TEAM
    after_second = run(services.repository.snapshot())

    assert after_second.teams == after_first.teams
    assert after_second.participants == after_first.participants
    assert run(services.repository.get_team(team.id)).members == [alice.id, bob.id]


def test_add_member_on_other_team_conflicts(services) -> None:
    alice, bob, cara = add_people(services, "Alice", "Bob", "Cara")
    team1 = run(services.engine.create_team(alice.id, [cara.id]))
    team2 = run(services.engine.create_team(bob.id))

    with pytest.raises(ConflictError) as excinfo:
        run(services.engine.add_member_to_team(team2.id, cara.id))
    assert excinfo.value.team_name == team1.name
    assert team1.name in str(excinfo.value)
    assert run(services.repository.get_team(team2.id)).members == [bob.id]
    assert_consistent(services)


def test_add_member_unknown_ids(services) -> None:
    (alice,) = add_people(services, "Alice")
    team = run(services.engine.create_team(alice.id))
    with pytest.raises(NotFoundError):
        run(services.engine.add_member_to_team("missing", alice.id))
    with pytest.raises(NotFoundError):
        run(services.engine.add_member_to_team(team.id, "missing"))


def test_remove_member_returns_to_seeking(services) -> None:
    alice, bob = add_people(services, "Alice", "Bob")
    team = run(services.engine.create_team(alice.id, [bob.id]))

    result = run(services.engine.remove_member_from_team(team.id, bob.id))
    assert result.team.members == [alice.id]
    bob = run(services.repository.get_participant(bob.id))
    assert roles(bob) == (True, False, False)
    assert bob.team_id is None
    assert_consistent(services)


def test_remove_member_not_on_team(services) -> None:
    alice, bob = add_people(services, "Alice", "Bob")
    team = run(services.engine.create_team(alice.id))
    with pytest.raises(NotFoundError):
        run(services.engine.remove_member_from_team(team.id, bob.id))
    with pytest.raises(NotFoundError):
        run(services.engine.remove_member_from_team("missing", bob.id))


def test_removing_lead_clears_lead_flag(services, caplog) -> None:
    """Regression: a removed lead must not stay flagged as lead."""
    alice, bob = add_people(services, "Alice", "Bob")
    team = run(services.engine.create_team(alice.id, [bob.id]))

    with caplog.at_level("WARNING", logger="buildathon_roster"):
        run(services.engine.remove_member_from_team(team.id, alice.id))
    assert "Team should assign a new leader" in caplog.text

    alice = run(services.repository.get_participant(alice.id))
    assert roles(alice) == (True, False, False)
    assert alice.team_id is None

    # the team waits for a new lead; the audit reports exactly that
    team = run(services.repository.get_team(team.id))
    assert team.leader_id == alice.id
    issues = run(services.engine.audit())
    assert issues == [f"{team.name} ({team.id}) leader is not a member"]

    run(services.engine.change_team_lead(team.id, bob.id))
    assert_consistent(services)
    assert roles(run(services.repository.get_participant(alice.id))) == (True, False, False)


def test_change_team_lead(services) -> None:
    alice, bob, cara = add_people(services, "Alice", "Bob", "Cara")
    team = run(services.engine.create_team(alice.id, [bob.id]))

    result = run(services.engine.change_team_lead(team.id, bob.id))
    assert result.previous_lead.id == alice.id
    assert result.team.leader_id == bob.id
    assert result.team.leader_name == "Bob"
    assert roles(run(services.repository.get_participant(alice.id))) == (False, False, True)
    assert roles(run(services.repository.get_participant(bob.id))) == (False, True, False)

    # a seeking participant is added to the team when promoted
    result = run(services.engine.change_team_lead(team.id, cara.id))
    assert result.team.members == [alice.id, bob.id, cara.id]
    assert result.team.leader_id in result.team.members
    assert_consistent(services)


def test_change_team_lead_conflict(services) -> None:
    alice, bob = add_people(services, "Alice", "Bob")
    team1 = run(services.engine.create_team(alice.id))
    run(services.engine.create_team(bob.id))
    with pytest.raises(ConflictError):
        run(services.engine.change_team_lead(team1.id, bob.id))
    assert run(services.repository.get_team(team1.id)).leader_id == alice.id


def test_delete_team_cascade(services) -> None:
    alice, bob, cara = add_people(services, "Alice", "Bob", "Cara")
    team = run(services.engine.create_team(alice.id, [bob.id, cara.id]))

    deletion = run(services.engine.delete_team(team.id))
    assert deletion.deleted_team.id == team.id
    assert {p.id for p in deletion.updated_participants} == {alice.id, bob.id, cara.id}

    for p in run(services.repository.get_all_participants()):
        assert roles(p) == (True, False, False)
        assert p.team_id is None
    assert run(services.repository.get_all_teams()) == []
    with pytest.raises(NotFoundError):
        run(services.engine.delete_team(team.id))


def test_set_team_members_diff(services) -> None:
    alice, bob, cara, dan = add_people(services, "Alice", "Bob", "Cara", "Dan")
    team = run(services.engine.create_team(alice.id, [bob.id, cara.id]))

    team = run(services.engine.set_team_members(team.id, [cara.id, dan.id]))
    assert team.members == [alice.id, cara.id, dan.id]
    assert roles(run(services.repository.get_participant(bob.id))) == (True, False, False)
    assert_consistent(services)


def test_create_team_conflict_writes_nothing(services) -> None:
    alice, bob, cara = add_people(services, "Alice", "Bob", "Cara")
    run(services.engine.create_team(alice.id, [bob.id]))
    with pytest.raises(ConflictError):
        run(services.engine.create_team(cara.id, [bob.id]))
    assert len(run(services.repository.get_all_teams())) == 1
    assert roles(run(services.repository.get_participant(cara.id))) == (True, False, False)


def test_delete_participant_cascade(services) -> None:
    alice, bob, solo = add_people(services, "Alice", "Bob", "Solo")
    team = run(services.engine.create_team(alice.id, [bob.id]))
    lone = run(services.engine.create_team(solo.id))
    run(services.repository.check_in(bob.id))

    with pytest.raises(ConflictError):
        run(services.engine.delete_participant(alice.id))

    run(services.engine.delete_participant(bob.id))
    assert run(services.repository.get_team(team.id)).members == [alice.id]
    assert run(services.repository.get_checkins()) == {}

    run(services.engine.delete_participant(solo.id))
    assert lone.id not in {t.id for t in run(services.repository.get_all_teams())}
    assert_consistent(services)


def _team(name: str, minutes: int) -> Team:
    created = datetime.datetime(2024, 3, 1, tzinfo=UTC) + datetime.timedelta(minutes=minutes)
    return Team(name=name, created_at=created)


def test_renumber_orders_by_number_then_created() -> None:
    teams = [_team("Team 7", 0), _team("Team 3", 5), _team("Team 3", 1), _team("Team 10", 2)]
    ids = [t.id for t in teams]
    ordered, changed = renumber(teams)

    assert [t.name for t in ordered] == ["Team 1", "Team 2", "Team 3", "Team 4"]
    assert [t.id for t in ordered] == [ids[2], ids[1], ids[0], ids[3]]
    assert len(changed) == 4

    again, changed_again = renumber(ordered)
    assert changed_again == []
    assert [t.name for t in again] == ["Team 1", "Team 2", "Team 3", "Team 4"]


def test_renumber_only_touches_changed() -> None:
    teams = [_team("Team 1", 0), _team("Team 2", 1), _team("Team 4", 2)]
    _, changed = renumber(teams)
    assert [t.name for t in changed] == ["Team 3"]
    assert teams[0].updated_at is None


def test_renumber_teams_after_delete(services) -> None:
    people = add_people(services, "A", "B", "C")
    teams = [run(services.engine.create_team(p.id)) for p in people]
    assert [t.name for t in teams] == ["Team 1", "Team 2", "Team 3"]

    run(services.engine.delete_team(teams[1].id))
    ordered = run(services.engine.renumber_teams())
    assert [(t.id, t.name) for t in ordered] == [
        (teams[0].id, "Team 1"),
        (teams[2].id, "Team 2"),
    ]
    stored = {t.id: t.name for t in run(services.repository.get_all_teams())}
    assert stored == {teams[0].id: "Team 1", teams[2].id: "Team 2"}


def test_migrate_legacy_names() -> None:
    leader = Participant(name="Zed")
    teams = [
        Team(name="Alice's Team", leader_id="x"),
        Team(name="Team 2", leader_id=leader.id),
        Team(name="Team 3", leader_id=leader.id, leader_name="Kept"),
    ]
    migrated, changed = migrate_names(teams, [leader])
    assert migrated[0].name == "Team 1"
    assert migrated[0].leader_name == "Alice"
    assert migrated[1].leader_name == "Zed"
    assert migrated[2].leader_name == "Kept"
    assert len(changed) == 2


def test_audit_detects_problems() -> None:
    p = Participant(name="Odd", is_team_lead=True, seeking_team=True)
    team = Team(name="Team 1", leader_id="ghost", members=["ghost"])
    issues = audit_roster([p], [team])
    assert any("2 role flags" in i for i in issues)
    assert any("missing participant ghost" in i for i in issues)
