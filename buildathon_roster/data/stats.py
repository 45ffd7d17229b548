"""Counts and filtered views over the roster and the raw survey rows."""

from __future__ import annotations

import datetime
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..core.models import Participant, Team
from ..errors import ValidationError
from .csv_import import ColumnResolver, parse_count

PARTICIPANT_STATUSES = ("all", "seeking-team", "in-team", "checked-in", "not-checked-in")
TEAM_STATUSES = ("all", "seeking-members", "complete")

THEME_LABELS = (
    ("AI-Powered Smart Living", "AI-Powered Smart Living"),
    ("AI-Powered Biomedical", "AI-Powered Biomedical"),
    ("Entrepreneurial AI", "Entrepreneurial AI"),
    ("Open to any", "Open to any theme"),
    ("still deciding", "Still deciding"),
)
INDIVIDUAL_LEVELS = ("Beginner", "Intermediate", "Advanced", "Expert")
TEAM_LEVELS = (
    ("Using AI tools", "Beginner"),
    ("Implementing AI solutions", "Intermediate"),
    ("Building/modifying AI models", "Advanced"),
    ("No prior AI experience", "No Experience"),
)


@dataclass(frozen=True)
class RosterSummary:
    total_participants: int
    total_teams: int
    participants_without_team: int
    teams_seeking_members: int
    checked_in_count: int
    team_leads: int
    team_members: int


def roster_summary(
    participants: Sequence[Participant],
    teams: Sequence[Team],
    checkins: Mapping[str, datetime.datetime],
) -> RosterSummary:
    return RosterSummary(
        total_participants=len(participants),
        total_teams=len(teams),
        participants_without_team=sum(
            1
            for p in participants
            if not p.team_id and not p.is_team_lead and not p.is_team_member
        ),
        teams_seeking_members=sum(1 for t in teams if t.seeking_members),
        checked_in_count=len(checkins),
        team_leads=sum(1 for p in participants if p.is_team_lead),
        team_members=sum(1 for p in participants if p.is_team_member),
    )


def _team_number_for(participant: Participant, teams_by_id: Mapping[str, Team]) -> str:
    team = teams_by_id.get(participant.team_id or "")
    return str(team.number) if team else "-"


def filter_participants(
    participants: Sequence[Participant],
    teams: Sequence[Team],
    checkins: Mapping[str, datetime.datetime],
    search: str = "",
    status: str = "all",
) -> list[Participant]:
    """Participants matching ``search`` (name, college or team number) and
    ``status``, sorted by name."""
    if status not in PARTICIPANT_STATUSES:
        raise ValidationError(f"Unknown participant status filter: {status}")
    teams_by_id = {t.id: t for t in teams}
    term = search.lower()

    def matches(p: Participant) -> bool:
        if term and not (
            term in (p.name or "").lower()
            or term in (p.college or "").lower()
            or search in _team_number_for(p, teams_by_id)
        ):
            return False
        if status == "seeking-team":
            return p.seeking_team and not p.team_id and not p.is_team_lead
        if status == "in-team":
            return bool(p.team_id or p.is_team_lead or p.is_team_member)
        if status == "checked-in":
            return p.id in checkins
        if status == "not-checked-in":
            return p.id not in checkins
        return True

    return sorted(filter(matches, participants), key=lambda p: (p.name or "").lower())


def filter_teams(teams: Sequence[Team], search: str = "", status: str = "all") -> list[Team]:
    if status not in TEAM_STATUSES:
        raise ValidationError(f"Unknown team status filter: {status}")
    term = search.lower()

    def matches(t: Team) -> bool:
        if term and not any(
            term in (value or "").lower() for value in (t.name, t.college, t.leader_name)
        ):
            return False
        if status == "seeking-members":
            return t.seeking_members
        if status == "complete":
            return not t.seeking_members
        return True

    return sorted(filter(matches, teams), key=lambda t: t.number)


# ----------------------------------------------------------------------
# Survey-level statistics
# ----------------------------------------------------------------------
@dataclass
class RegistrationStats:
    total_registrants: int = 0
    individual_signups: int = 0
    total_teams: int = 0
    teams_seeking: int = 0
    total_open_slots: int = 0
    schools: Counter = field(default_factory=Counter)
    themes: Counter = field(default_factory=Counter)
    experience: Counter = field(default_factory=Counter)
    team_status: Counter = field(
        default_factory=lambda: Counter(
            {
                "Complete Teams": 0,
                "Teams Seeking Members": 0,
                "Individuals Seeking Teams": 0,
            }
        )
    )


def normalize_theme(answer: str) -> str:
    if not answer:
        return "Unknown"
    for needle, label in THEME_LABELS:
        if needle in answer:
            return label
    return answer


def normalize_individual_experience(answer: str) -> str:
    if not answer:
        return "Unknown"
    return next((level for level in INDIVIDUAL_LEVELS if level in answer), answer)


def team_experience_levels(answer: str) -> list[str]:
    levels = [label for needle, label in TEAM_LEVELS if needle in (answer or "")]
    return levels or ["Unknown"]


def registration_stats(rows: Sequence[Mapping[str, Any]]) -> RegistrationStats:
    """Headcounts from the raw survey, counting declared (not found) members."""
    stats = RegistrationStats()
    if not rows:
        return stats
    resolver = ColumnResolver.from_rows(rows)

    def get(row: Mapping[str, Any], column: str) -> str:
        header = resolver.column(column)
        value = row.get(header) if header is not None else None
        return "" if value is None else str(value)

    for row in rows:
        if not get(row, "full_name").strip():
            continue
        registration = get(row, "registration_type")
        school = get(row, "college") or "Unknown"
        if "individual" in registration:
            stats.total_registrants += 1
            stats.individual_signups += 1
            stats.team_status["Individuals Seeking Teams"] += 1
            stats.schools[school] += 1
            stats.themes[normalize_theme(get(row, "individual_theme"))] += 1
            stats.experience[
                normalize_individual_experience(get(row, "individual_experience"))
            ] += 1
        elif "team" in registration:
            headcount = parse_count(get(row, "additional_members")) + 1
            stats.total_teams += 1
            stats.total_registrants += headcount
            stats.schools[school] += headcount
            if "Yes" in get(row, "seeking_members"):
                stats.teams_seeking += 1
                stats.team_status["Teams Seeking Members"] += 1
                stats.total_open_slots += parse_count(get(row, "slots_needed"))
            else:
                stats.team_status["Complete Teams"] += 1
            stats.themes[normalize_theme(get(row, "team_theme"))] += headcount
            for level in team_experience_levels(get(row, "team_experience")):
                stats.experience[level] += headcount
    return stats
