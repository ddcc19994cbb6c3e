"""
HikePAD Sales Dashboard: command-line entry point.

Uploads branch sheets, cleans duplicate records, prints dashboard summaries,
writes simulated sheets, and serves the HTTP API.

Usage:
    python main.py upload SHEET.xlsx --branch "Hyderabad Branch"
    python main.py cleanup
    python main.py summary [--branch B] [--month APRIL]
    python main.py simulate out.csv [--months 6]
    python main.py serve [--port 5000]
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from hikepad_dashboard.config import DEFAULT_DRIVE, LOG_DATEFMT, LOG_FORMAT, LOG_LEVEL
from hikepad_dashboard.db import check_connection, ensure_indexes, get_db
from hikepad_dashboard.kpis import get_kpi_cards, get_team_summary, get_top_achievers
from hikepad_dashboard.pipeline import UploadRejectedError, ingest_upload
from hikepad_dashboard.records import cleanup_duplicates, load_records_frame
from hikepad_dashboard.simulator import generate_upload_sheet

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=LOG_LEVEL,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT,
)
logger = logging.getLogger(__name__)


def _connect():
    ok, error = check_connection()
    if not ok:
        logger.error(error)
        sys.exit(1)
    db = get_db()
    ensure_indexes(db)
    return db


def cmd_upload(args: argparse.Namespace) -> int:
    path = Path(args.file)
    db = _connect()
    try:
        report = ingest_upload(db, path.read_bytes(), path.name, args.branch, drive=args.drive)
    except UploadRejectedError as e:
        print(f"Upload rejected: {e.payload['error']}")
        print(f"  {e.payload['details']}")
        for key in ("missing_headers", "rejected_rows"):
            if e.payload.get(key):
                print(f"  {key}: {e.payload[key]}")
        return 1

    print(report["message"])
    for key, value in report["summary"].items():
        print(f"  {key:20s} {value}")
    for row in report["rejected_rows"] or []:
        print(f"  row {row['row_number']}: {row['reason']}")
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    result = cleanup_duplicates(_connect())
    print(f"Deleted {result['deleted']} records in {result['duplicate_groups']} duplicate groups")
    for detail in result["details"]:
        print(f"  {detail['group']}: kept {detail['kept_record']['id']}, deleted {detail['deleted_count']}")
    return 0


def cmd_summary(args: argparse.Namespace) -> int:
    records = load_records_frame(_connect())
    if records.empty:
        print("No records in the database. Upload a sheet first.")
        return 1

    print("=" * 70)
    print("  HIKEPAD SALES DASHBOARD: Summary")
    print("=" * 70)

    print("\nKPI cards:")
    for card in get_kpi_cards(records, month=args.month, branch=args.branch):
        print(f"  {card['label']:18s} {card['value']:>12,.0f}  ({card['change']:+.2f}% {card['change_type']})")

    print("\nTeams:")
    for team in get_team_summary(records, branch=args.branch, month=args.month):
        print(
            f"  {team['dbm']:20s} {team['team_leader']:20s} "
            f"BDEs={team['bde_count']:<3d} achievement={team['avg_achievement']}%"
        )

    print("\nTop achievers:")
    for rank, bde in enumerate(get_top_achievers(records, count=args.top), start=1):
        print(f"  {rank:2d}. {bde['name']:25s} {bde['branch']:20s} {bde['achievement']}%")
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    sheet = generate_upload_sheet(n_months=args.months, n_teams=args.teams, seed=args.seed)
    out = Path(args.output)
    if out.suffix.lower() == ".xlsx":
        sheet.to_excel(out, index=False, engine="openpyxl")
    else:
        sheet.to_csv(out, index=False)
    logger.info("Wrote %d simulated rows to %s", len(sheet), out)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("hikepad_dashboard.api:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="HikePAD sales dashboard tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("upload", help="Upload a branch sheet (CSV/XLSX/XLS)")
    p.add_argument("file")
    p.add_argument("--branch", required=True)
    p.add_argument("--drive", default=DEFAULT_DRIVE)
    p.set_defaults(func=cmd_upload)

    p = sub.add_parser("cleanup", help="Remove duplicate sales records")
    p.set_defaults(func=cmd_cleanup)

    p = sub.add_parser("summary", help="Print KPI cards, teams and top achievers")
    p.add_argument("--branch")
    p.add_argument("--month")
    p.add_argument("--top", type=int, default=10)
    p.set_defaults(func=cmd_summary)

    p = sub.add_parser("simulate", help="Write a simulated branch sheet")
    p.add_argument("output")
    p.add_argument("--months", type=int, default=6)
    p.add_argument("--teams", type=int, default=3)
    p.add_argument("--seed", type=int, default=42)
    p.set_defaults(func=cmd_simulate)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=5000)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
