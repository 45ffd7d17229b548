"""Operations that keep participants and teams consistent with each other.

Every participant is in exactly one role state:

* seeking a team (``team_id`` is ``None``),
* leading exactly one team, or
* a non-lead member of exactly one team.

Every team lists its members once, in joining order, and each member's
``team_id`` points back at the team.  The methods of :class:`RosterEngine`
each run as a single repository transaction so both collections are written
together, and all preconditions are checked before anything is modified.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC

from pydantic import ValidationError as PydanticValidationError

from ..core.models import Participant, Team, team_number
from ..errors import ConflictError, NotFoundError, ValidationError
from .repository import EntityRepository, Roster

log = logging.getLogger(__name__)

ADDED = "added"
ALREADY_IN_TEAM = "already-in-team"
REMOVED = "removed"

_EPOCH = datetime.datetime.fromtimestamp(0, tz=UTC)
LEGACY_SUFFIX = "'s Team"


@dataclass
class MembershipResult:
    team: Team
    participant: Participant | None
    status: str = ADDED


@dataclass
class LeadChangeResult:
    team: Team
    previous_lead: Participant | None
    new_lead: Participant


@dataclass
class TeamDeletion:
    deleted_team: Team
    updated_participants: list[Participant] = field(default_factory=list)


# ----------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------
def _created(team: Team) -> datetime.datetime:
    ts = team.created_at or _EPOCH
    # legacy records may carry naive timestamps
    return ts if ts.tzinfo else ts.replace(tzinfo=UTC)


def renumber(teams: Iterable[Team]) -> tuple[list[Team], list[Team]]:
    """Assign contiguous ``Team N`` labels.

    Teams are ordered by the number currently in their name, then by creation
    time.  Returns ``(ordered_teams, changed_teams)``; only teams whose number
    differs from their rank are renamed.  Applying it twice changes nothing
    the second time.
    """
    ordered = sorted(teams, key=lambda t: (team_number(t.name), _created(t)))
    changed: list[Team] = []
    for rank, team in enumerate(ordered, start=1):
        if team_number(team.name) != rank or team.name != f"Team {rank}":
            log.debug("Renumbered %r to Team %d", team.name or "Unnamed team", rank)
            team.name = f"Team {rank}"
            team.touch()
            changed.append(team)
    return ordered, changed


def migrate_names(
    teams: Sequence[Team], participants: Sequence[Participant]
) -> tuple[list[Team], list[Team]]:
    """Rewrite legacy ``"<leader>'s Team"`` names and backfill ``leader_name``.

    A legacy name becomes ``Team {position}`` and its leader part is kept as
    the denormalised leader name.  Teams with a leader id but no leader name
    get the name looked up from ``participants``.
    """
    by_id = {p.id: p for p in participants}
    changed: list[Team] = []
    for index, team in enumerate(teams):
        dirty = False
        if LEGACY_SUFFIX in team.name:
            team.leader_name = team.name.replace(LEGACY_SUFFIX, "")
            team.name = f"Team {index + 1}"
            dirty = True
        if not team.leader_name and team.leader_id:
            leader = by_id.get(team.leader_id)
            if leader is not None:
                team.leader_name = leader.name
                dirty = True
        if dirty:
            team.touch()
            changed.append(team)
    return list(teams), changed


def audit_roster(participants: Sequence[Participant], teams: Sequence[Team]) -> list[str]:
    """Describe every way the two collections disagree with each other."""
    issues: list[str] = []
    teams_by_id = {t.id: t for t in teams}
    for p in participants:
        flags = sum((p.seeking_team, p.is_team_lead, p.is_team_member))
        if flags != 1:
            issues.append(f"Participant {p.name} ({p.id}) has {flags} role flags set")
        on_team = p.is_team_lead or p.is_team_member
        if on_team and not p.team_id:
            issues.append(f"Participant {p.name} ({p.id}) is on a team but has no team id")
        if not on_team and p.team_id:
            issues.append(f"Participant {p.name} ({p.id}) has a team id but no team role")
        if p.team_id:
            team = teams_by_id.get(p.team_id)
            if team is None:
                issues.append(f"Participant {p.name} ({p.id}) references missing team {p.team_id}")
            elif p.id not in team.members:
                issues.append(f"Participant {p.name} ({p.id}) is not listed on {team.name}")

    participants_by_id = {p.id: p for p in participants}
    for team in teams:
        if team.leader_id not in team.members:
            issues.append(f"{team.name} ({team.id}) leader is not a member")
        for pid in team.members:
            member = participants_by_id.get(pid)
            if member is None:
                issues.append(f"{team.name} ({team.id}) lists missing participant {pid}")
            elif member.team_id != team.id:
                issues.append(f"{team.name} ({team.id}) lists {member.name} whose team id differs")
            elif (pid == team.leader_id) != member.is_team_lead:
                issues.append(f"{team.name} ({team.id}) lead flag mismatch for {member.name}")
    return issues


def _ensure_free(roster: Roster, participant: Participant, team: Team) -> None:
    if participant.team_id and participant.team_id != team.id:
        other = roster.find_team(participant.team_id)
        raise ConflictError(
            f"Participant {participant.name} is already on {roster.team_name_for(participant)}. "
            "Please remove them from that team first.",
            participant_id=participant.id,
            team_id=participant.team_id,
            team_name=other.name if other else None,
        )


def _join(team: Team, participant: Participant) -> None:
    team.members.append(participant.id)
    team.touch()
    if participant.id == team.leader_id:
        participant.mark_lead(team.id)
    else:
        participant.mark_member(team.id)


class RosterEngine:
    """Invariant-preserving team membership operations."""

    def __init__(self, repository: EntityRepository) -> None:
        self.repository = repository

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    async def add_member_to_team(self, team_id: str, participant_id: str) -> MembershipResult:
        """Put a participant on a team.

        Adding someone who is already listed is a no-op reported with status
        ``"already-in-team"``.  A participant on a different team raises
        :class:`ConflictError`; remove them from that team first.
        """
        async with self.repository.transaction() as roster:
            team = roster.team(team_id)
            participant = roster.participant(participant_id)
            if team.has_member(participant_id):
                return MembershipResult(team, participant, ALREADY_IN_TEAM)
            _ensure_free(roster, participant, team)
            _join(team, participant)
        log.info("Added %s to %s", participant.name, team.name)
        return MembershipResult(team, participant, ADDED)

    async def remove_member_from_team(
        self, team_id: str, participant_id: str
    ) -> MembershipResult:
        """Take a participant off a team and return them to the seeking pool.

        The current leader may be removed; the team then keeps a leader id
        that is no longer a member until :meth:`change_team_lead` or
        :meth:`delete_team` is called.  The removed participant is always left
        in the plain seeking state.
        """
        async with self.repository.transaction() as roster:
            team = roster.team(team_id)
            if not team.has_member(participant_id):
                raise NotFoundError(
                    "Participant", participant_id,
                    f"Participant {participant_id} is not in {team.name}",
                )
            participant = roster.find_participant(participant_id)
            if team.leader_id == participant_id:
                log.warning(
                    "Removing %s as team lead of %s. Team should assign a new leader.",
                    participant.name if participant else "Team lead",
                    team.name,
                )
            team.members.remove(participant_id)
            team.touch()
            if participant is not None:
                participant.mark_seeking()
        log.info("Removed %s from %s", participant_id, team.name)
        return MembershipResult(team, participant, REMOVED)

    async def change_team_lead(self, team_id: str, new_leader_id: str) -> LeadChangeResult:
        """Promote ``new_leader_id`` and demote the current lead to member."""
        async with self.repository.transaction() as roster:
            team = roster.team(team_id)
            new_lead = roster.participant(new_leader_id)
            _ensure_free(roster, new_lead, team)

            previous = roster.find_participant(team.leader_id)
            if previous is new_lead and team.has_member(new_lead.id):
                return LeadChangeResult(team, previous, new_lead)
            if not team.has_member(new_lead.id):
                team.members.append(new_lead.id)
            if previous is not None and team.has_member(previous.id):
                previous.mark_member(team.id)
            elif previous is not None and previous.team_id in (None, team.id):
                # previous lead was already removed from the team
                previous.mark_seeking()
            new_lead.mark_lead(team.id)
            team.leader_id = new_lead.id
            team.leader_name = new_lead.name
            team.touch()
        log.info("%s is now lead of %s", new_lead.name, team.name)
        return LeadChangeResult(team, previous, new_lead)

    async def set_team_members(self, team_id: str, member_ids: Iterable[str]) -> Team:
        """Make the team's non-lead members exactly ``member_ids``.

        Members missing from ``member_ids`` are returned to the seeking pool,
        new ones are added in the given order.  The leader always stays.
        """
        wanted = list(dict.fromkeys(member_ids))
        async with self.repository.transaction() as roster:
            team = roster.team(team_id)
            joining = [roster.participant(pid) for pid in wanted if not team.has_member(pid)]
            for participant in joining:
                _ensure_free(roster, participant, team)

            for pid in [m for m in team.members if m != team.leader_id and m not in wanted]:
                team.members.remove(pid)
                leaving = roster.find_participant(pid)
                if leaving is not None:
                    leaving.mark_seeking()
            for participant in joining:
                _join(team, participant)
            team.touch()
        log.info("Updated members of %s: %d total", team.name, len(team.members))
        return team

    # ------------------------------------------------------------------
    # Team lifecycle
    # ------------------------------------------------------------------
    async def create_team(
        self, leader_id: str, member_ids: Iterable[str] = (), **metadata
    ) -> Team:
        """Create a team led by ``leader_id`` with optional extra members.

        Every id is checked before anything is written.  The new team is
        numbered after the existing ones and the whole set is renumbered.
        """
        others = [m for m in dict.fromkeys(member_ids) if m != leader_id]
        async with self.repository.transaction() as roster:
            leader = roster.participant(leader_id)
            joining = [roster.participant(pid) for pid in others]
            next_number = max((t.number for t in roster.teams), default=0) + 1
            try:
                team = Team.model_validate(
                    {
                        **metadata,
                        "name": f"Team {next_number}",
                        "leader_id": leader.id,
                        "leader_name": leader.name,
                        "members": [],
                    }
                )
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid team: {exc}") from exc
            for participant in [leader, *joining]:
                _ensure_free(roster, participant, team)

            for participant in [leader, *joining]:
                _join(team, participant)
            roster.teams.append(team)
            renumber(roster.teams)
        log.info("Created %s led by %s", team.name, leader.name)
        return team

    async def delete_team(self, team_id: str) -> TeamDeletion:
        """Delete a team and return all of its members to the seeking pool."""
        async with self.repository.transaction() as roster:
            team = roster.team(team_id)
            updated: list[Participant] = []
            for pid in team.members:
                participant = roster.find_participant(pid)
                if participant is not None:
                    participant.mark_seeking()
                    updated.append(participant)
            roster.teams.remove(team)
        log.info("Deleted %s and reset %d participants", team.name, len(updated))
        return TeamDeletion(team, updated)

    async def delete_participant(self, participant_id: str) -> Participant:
        """Delete a participant after detaching them from their team.

        A lead who still has teammates must hand over leadership first; a
        lead who is the only member takes the team with them.  Any check-in
        is dropped as well.
        """
        async with self.repository.transaction() as roster:
            participant = roster.participant(participant_id)
            team = roster.find_team(participant.team_id)
            if team is not None:
                if team.leader_id == participant.id:
                    remaining = [m for m in team.members if m != participant.id]
                    if remaining:
                        raise ConflictError(
                            f"Participant {participant.name} leads {team.name}. "
                            "Assign a new team lead before deleting them.",
                            participant_id=participant.id,
                            team_id=team.id,
                            team_name=team.name,
                        )
                    roster.teams.remove(team)
                    log.info("Deleted %s with its last member", team.name)
                elif team.has_member(participant.id):
                    team.members.remove(participant.id)
                    team.touch()
            roster.checkins.pop(participant.id, None)
            roster.participants.remove(participant)
        log.info("Deleted participant %s (%s)", participant.name, participant.id)
        return participant

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------
    async def renumber_teams(self) -> list[Team]:
        """Renumber all stored teams, writing only those that changed."""
        async with self.repository.transaction() as roster:
            ordered, changed = renumber(roster.teams)
        if changed:
            log.info("Renumbered %d teams", len(changed))
        return ordered

    async def migrate_team_names(self) -> list[Team]:
        async with self.repository.transaction() as roster:
            teams, changed = migrate_names(roster.teams, roster.participants)
        if changed:
            log.info("Migrated %d legacy team records", len(changed))
        return teams

    async def audit(self) -> list[str]:
        roster = await self.repository.snapshot()
        return audit_roster(roster.participants, roster.teams)


__all__ = [
    "ADDED",
    "ALREADY_IN_TEAM",
    "REMOVED",
    "LeadChangeResult",
    "MembershipResult",
    "RosterEngine",
    "TeamDeletion",
    "audit_roster",
    "migrate_names",
    "renumber",
]
