"""Turn registration survey rows into participants and teams.

Survey exports use the question text as the column header, and that text
drifts between form revisions: leading and trailing spaces, doubled spaces,
renamed member questions.  :class:`ColumnResolver` maps the header set to the
columns the import needs once, before any row is processed, so every row is
read through the same stable mapping.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..core.models import DiagnosticDiscrepancy, ImportDiagnostics, Participant, Team
from ..errors import ValidationError
from .repository import EntityRepository

log = logging.getLogger(__name__)

FULL_NAME = "Full Name"
MIN_MEMBER_SLOTS = 4

# column id -> (known header text, fragments that identify renamed variants)
FIXED_COLUMNS: dict[str, tuple[str, tuple[str, ...]]] = {
    "full_name": (FULL_NAME, ()),
    "email": (
        "Email Address (please use your college's .edu email)",
        ("email address",),
    ),
    "college": ("College", ()),
    "registration_type": (
        " Are you registering as an individual or as a team? ",
        ("are you registering",),
    ),
    "individual_experience": (" AI Experience Level ", ("ai experience level",)),
    "individual_theme": (
        " Which theme(s) are you most interested in? (We'll use this for team matching)  ",
        ("are you most interested in",),
    ),
    "team_experience": (
        "What is your team's collective experience with AI? (Select all that apply)",
        ("team's collective experience", "teams collective experience"),
    ),
    "team_theme": (
        "Which theme(s) is your team interested in?",
        ("is your team interested in",),
    ),
    "seeking_members": (
        " Does your team need any additional members?",
        ("need any additional members",),
    ),
    "slots_needed": (
        "How many more team members do you want to be matched with?",
        ("how many more team members",),
    ),
    "additional_members": (
        " How many additional team members do you have? (not including yourself)",
        ("how many additional",),
    ),
}

NAME_PATTERNS = (
    "Full Name - Additional Team Member {i}",
    "Additional Team Member {i} - Full Name",
    "Full Name Additional Team Member {i}",
    "Team Member {i} Name",
    "Member {i} Name",
    "Additional Member {i} Name",
    "Team Member {i}",
)

EMAIL_PATTERNS = (
    "Email - Additional Team Member {i}",
    "Additional Team Member {i} - Email",
    "Email Additional Team Member {i}",
    "Team Member {i} Email",
    "Member {i} Email",
    "Additional Member {i} Email",
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def normalize_header(key: str) -> str:
    """Collapse whitespace and case so header variants compare equal."""
    return " ".join(str(key).split()).lower()


def parse_count(value: Any) -> int:
    """Read a leading integer the way survey answers are written.

    ``"2"`` and ``"2 members"`` give 2; blanks, words and negatives give 0.
    """
    match = _LEADING_INT.match(str(value or ""))
    if not match:
        return 0
    return max(int(match.group(1)), 0)


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


class ColumnResolver:
    """Resolve logical columns against one import's header set.

    Fixed columns are matched on their normalised header text first, then on
    a distinctive fragment.  Member slot columns go through a prioritised
    list of matchers: each known pattern compared exactly, then each pattern
    contained in a header, then any header mentioning ``member {i}`` together
    with ``name`` or ``email``.
    """

    def __init__(self, headers: Iterable[str]) -> None:
        self.headers: list[str] = list(dict.fromkeys(headers))
        self._normalized = [(h, normalize_header(h)) for h in self.headers]
        self.columns: dict[str, str | None] = {
            name: self._resolve_fixed(known, fragments)
            for name, (known, fragments) in FIXED_COLUMNS.items()
        }
        self._member_cache: dict[tuple[int, str], str | None] = {}

    @classmethod
    def from_rows(cls, rows: Sequence[Mapping[str, Any]]) -> ColumnResolver:
        headers: list[str] = []
        for row in rows:
            headers.extend(row.keys())
        return cls(headers)

    def _resolve_fixed(self, known: str, fragments: tuple[str, ...]) -> str | None:
        target = normalize_header(known)
        for header, norm in self._normalized:
            if norm == target:
                return header
        for fragment in fragments:
            for header, norm in self._normalized:
                if fragment in norm:
                    return header
        return None

    def column(self, name: str) -> str | None:
        return self.columns.get(name)

    def member_column(self, index: int, kind: str = "name") -> str | None:
        key = (index, kind)
        if key not in self._member_cache:
            self._member_cache[key] = self._resolve_member(index, kind)
        return self._member_cache[key]

    def _resolve_member(self, index: int, kind: str) -> str | None:
        patterns = NAME_PATTERNS if kind == "name" else EMAIL_PATTERNS
        wanted = [normalize_header(p.format(i=index)) for p in patterns]
        # the email column of a slot also mentions "team member {i}"
        other = "email" if kind == "name" else "name"
        slot = re.compile(rf"\bmember\s*{index}\b")

        def usable(norm: str) -> bool:
            return kind in norm or other not in norm

        for pattern in wanted:
            for header, norm in self._normalized:
                if norm == pattern:
                    return header
        for pattern in wanted:
            for header, norm in self._normalized:
                if re.search(rf"{re.escape(pattern)}(?!\d)", norm) and usable(norm):
                    return header
        for header, norm in self._normalized:
            if slot.search(norm) and kind in norm:
                return header
        return None


def read_csv_rows(text: str) -> list[dict[str, str]]:
    """Parse CSV text with a header row into a list of row dictionaries."""
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValidationError("Invalid CSV data: no header row")
    rows = []
    for row in reader:
        if all(_blank(v) for k, v in row.items() if k is not None):
            continue
        rows.append({k: (v if v is not None else "") for k, v in row.items() if k is not None})
    return rows


@dataclass
class ImportResult:
    participants: list[Participant] = field(default_factory=list)
    teams: list[Team] = field(default_factory=list)
    diagnostics: ImportDiagnostics = field(default_factory=ImportDiagnostics)


def _validate_rows(rows: Any) -> list[Mapping[str, Any]]:
    if not isinstance(rows, Sequence) or isinstance(rows, (str, bytes)) or not rows:
        raise ValidationError("Invalid CSV data")
    if not all(isinstance(r, Mapping) for r in rows):
        raise ValidationError("Invalid CSV data: every row must be a mapping")
    return list(rows)


class _RowReader:
    """Read logical columns out of one row."""

    def __init__(self, resolver: ColumnResolver, row: Mapping[str, Any]) -> None:
        self.resolver = resolver
        self.row = row

    def get(self, column: str) -> str:
        header = self.resolver.column(column)
        value = self.row.get(header) if header is not None else None
        return "" if value is None else str(value)

    def member(self, index: int, kind: str) -> str:
        header = self.resolver.member_column(index, kind)
        value = self.row.get(header) if header is not None else None
        return "" if value is None else str(value)


def reconcile_rows(rows: Sequence[Mapping[str, Any]]) -> ImportResult:
    """Build participants, teams and diagnostics from survey rows.

    Individual rows become seeking participants.  Team rows become a lead,
    a team numbered in processing order, and one member per non-blank member
    slot.  Blank slots within the declared member count are tallied in the
    diagnostics instead of failing the import.
    """
    rows = _validate_rows(rows)
    resolver = ColumnResolver.from_rows(rows)
    if resolver.column("full_name") is None:
        raise ValidationError(f"Invalid CSV data: no '{FULL_NAME}' column")

    result = ImportResult()
    stats = result.diagnostics

    for row in rows:
        reader = _RowReader(resolver, row)
        name = reader.get("full_name")
        if _blank(name):
            continue
        stats.total_rows_processed += 1

        if "team" in reader.get("registration_type"):
            _import_team_row(reader, name, result)
        else:
            stats.individuals += 1
            result.participants.append(
                Participant(
                    name=name,
                    email=reader.get("email"),
                    college=reader.get("college"),
                    experience_level=reader.get("individual_experience"),
                    theme_preference=reader.get("individual_theme"),
                    seeking_team=True,
                )
            )
            stats.participants += 1

    return result


def _import_team_row(reader: _RowReader, name: str, result: ImportResult) -> None:
    stats = result.diagnostics
    stats.team_leads += 1

    college = reader.get("college")
    theme = reader.get("team_theme")
    experience = reader.get("team_experience")

    lead = Participant(
        name=name,
        email=reader.get("email"),
        college=college,
        experience_level=experience,
        theme_preference=theme,
    )
    team = Team(
        name=f"Team {len(result.teams) + 1}",
        leader_id=lead.id,
        leader_name=name,
        college=college,
        theme_preference=theme,
        experience_level=experience,
        seeking_members="Yes" in reader.get("seeking_members"),
        slots_needed=parse_count(reader.get("slots_needed")),
        members=[lead.id],
    )
    lead.mark_lead(team.id)
    lead.updated_at = None
    result.participants.append(lead)
    result.teams.append(team)
    stats.participants += 1

    declared = parse_count(reader.get("additional_members"))
    stats.declared_additional_members += declared

    created = 0
    missing = 0
    for i in range(1, max(MIN_MEMBER_SLOTS, declared) + 1):
        member_name = reader.member(i, "name")
        if _blank(member_name):
            if i <= declared:
                missing += 1
                log.warning(
                    "Team %s declared %d members but member %d has no name",
                    name, declared, i,
                )
            continue
        member = Participant(
            name=member_name,
            email=reader.member(i, "email"),
            college=college,
            experience_level=experience,
            theme_preference=theme,
        )
        member.mark_member(team.id)
        member.updated_at = None
        result.participants.append(member)
        team.members.append(member.id)
        created += 1
        stats.participants += 1

    stats.actual_members_created += created
    stats.missing_member_names += missing
    if created != declared or missing:
        log.warning(
            "Discrepancy: team %s declared %d members but %d were created",
            name, declared, created,
        )
        stats.discrepancies.append(
            DiagnosticDiscrepancy(
                team_name=team.name,
                leader_name=name,
                declared=declared,
                actual=created,
                missing_names=missing,
            )
        )


class CsvImporter:
    """Replace the stored roster with the contents of a registration export."""

    def __init__(self, repository: EntityRepository) -> None:
        self.repository = repository

    async def import_rows(self, rows: Sequence[Mapping[str, Any]]) -> ImportResult:
        log.info("Starting CSV import with %d rows", len(rows) if rows else 0)
        result = reconcile_rows(rows)
        await self.repository.replace_all(result.participants, result.teams, {})
        stats = result.diagnostics
        log.info(
            "CSV import finished: %d rows, %d individuals, %d team leads, "
            "%d/%d additional members, %d missing names, %d participants",
            stats.total_rows_processed,
            stats.individuals,
            stats.team_leads,
            stats.actual_members_created,
            stats.declared_additional_members,
            stats.missing_member_names,
            stats.participants,
        )
        return result

    async def import_text(self, text: str) -> ImportResult:
        return await self.import_rows(read_csv_rows(text))
