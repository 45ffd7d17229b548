from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from .config import load_settings
from .data.stats import roster_summary
from .errors import RosterError
from .logging_config import setup_logging
from .services import RosterServices, open_roster


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildathon-roster",
        description="Manage buildathon participants, teams and check-ins.",
    )
    parser.add_argument("--data", help="Path of the JSON data file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import-csv", help="Replace the roster with a registration export")
    p.add_argument("file", type=Path)

    p = sub.add_parser("export", help="Write a full JSON backup")
    p.add_argument("-o", "--output", type=Path)

    p = sub.add_parser("restore", help="Replace ALL data with a JSON backup")
    p.add_argument("file", type=Path)
    p.add_argument("--yes", action="store_true", help="Confirm the overwrite")

    p = sub.add_parser("attendance", help="Write the checked-in participants CSV")
    p.add_argument("-o", "--output", type=Path)

    sub.add_parser("summary", help="Print roster counts")
    sub.add_parser("renumber", help="Renumber teams sequentially")
    sub.add_parser("audit", help="Report participant/team inconsistencies")
    return parser


def _emit(text: str, output: Path | None) -> None:
    if output is None:
        print(text)
    else:
        output.write_text(text, encoding="utf-8")


async def run_command(args: argparse.Namespace, services: RosterServices) -> int:
    log = logging.getLogger("buildathon_roster")

    if args.command == "import-csv":
        result = await services.importer.import_text(
            args.file.read_text(encoding="utf-8-sig")
        )
        await services.engine.renumber_teams()
        d = result.diagnostics
        print(
            f"Import successful! {d.total_rows_processed} records processed: "
            f"{d.participants} participants, {len(result.teams)} teams, "
            f"{d.missing_member_names} missing member names."
        )
    elif args.command == "export":
        _emit(await services.backup.export_all_data(), args.output)
    elif args.command == "restore":
        if not args.yes:
            log.error("Restoring replaces ALL current data; re-run with --yes to confirm.")
            return 2
        summary = await services.backup.import_all_data(args.file.read_text(encoding="utf-8"))
        print(
            f"Backup restored successfully! {summary.participants} participants, "
            f"{summary.teams} teams, {summary.checkins} check-ins"
        )
    elif args.command == "attendance":
        _emit(await services.backup.export_checked_in_csv(), args.output)
    elif args.command == "summary":
        roster = await services.repository.snapshot()
        s = roster_summary(roster.participants, roster.teams, roster.checkins)
        print(
            f"Participants: {s.total_participants} "
            f"(leads {s.team_leads}, members {s.team_members}, "
            f"without team {s.participants_without_team})\n"
            f"Teams: {s.total_teams} ({s.teams_seeking_members} seeking members)\n"
            f"Checked in: {s.checked_in_count}"
        )
    elif args.command == "renumber":
        await services.engine.migrate_team_names()
        teams = await services.engine.renumber_teams()
        print(f"{len(teams)} teams numbered")
    elif args.command == "audit":
        issues = await services.engine.audit()
        for issue in issues:
            print(issue)
        return 1 if issues else 0
    return 0


def main(argv: list[str] | None = None) -> int:
    settings = load_settings()
    log = setup_logging(settings.log_level)
    args = build_parser().parse_args(argv)
    services = open_roster(args.data or settings.data_path)
    try:
        return asyncio.run(run_command(args, services))
    except RosterError as exc:
        log.error("Failed to %s: %s", args.command, exc)
        return 1
    except OSError as exc:
        log.error("Failed to %s: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
