# scripts/import_csv.py

from __future__ import annotations

import argparse
import csv
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from chesscal.config import Settings, configure_logging
from chesscal.db.session import EventStore
from chesscal.errors import ValidationError
from chesscal.services.exports import ExportGenerator
from chesscal.services.mutations import EventService
from chesscal.services.queries import EventQuery

DEBUG = os.getenv("IMPORT_DEBUG") == "1"

# -------------------------------------------------------------------
# Spreadsheet header -> event field. Rows may also use the field names.
# -------------------------------------------------------------------
COLUMN_MAP = {
    "Name": "title",
    "Location": "location",
    "Start date": "start_datetime",
    "End date": "end_datetime",
    "Type": "event_type",
    "Format": "format",
    "Rounds": "rounds",
    "URL": "url",
    "Special": "special",
    "Continent": "continent",
    "Category": "category",
    "Live games": "live_games",
    "Prize Fund": "prize_fund",
    "Description": "description",
    "Venue": "venue",
    "Landing": "landing",
    "Players": "players",
}

MONTHS = {
    name: i
    for i, name in enumerate(
        ["january", "february", "march", "april", "may", "june", "july",
         "august", "september", "october", "november", "december"],
        start=1,
    )
}
_MONTH_DAY = re.compile(r"^([A-Za-z]+)\s+(\d{1,2})$")
_DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%m/%d/%Y")


# -------------------------
# Parsing helpers
# -------------------------
def _to_int(val: str | None) -> int | None:
    if val is None or str(val).strip() == "":
        return None
    try:
        return int(str(val).strip())
    except ValueError:
        return None


def parse_date(value: str | None, year: int) -> Optional[datetime]:
    """Parse "January 2" (sheet style, year implied), ISO dates and a few US forms."""
    v = (value or "").strip()
    if not v:
        return None

    m = _MONTH_DAY.match(v)
    if m:
        month = MONTHS.get(m.group(1).lower())
        if month is None:
            return None
        try:
            return datetime(year, month, int(m.group(2)))
        except ValueError:
            return None

    try:
        return datetime.fromisoformat(v)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt)
        except ValueError:
            continue
    return None


def row_to_fields(row: Dict[str, str], year: int) -> Dict[str, object]:
    """Map one CSV row onto Create fields; blanks are left out."""
    fields: Dict[str, object] = {}
    for header, field in COLUMN_MAP.items():
        raw = row.get(header)
        if raw is None:
            raw = row.get(field)
        raw = (raw or "").strip()
        if not raw:
            continue
        if field in ("start_datetime", "end_datetime"):
            parsed = parse_date(raw, year)
            if parsed is not None:
                fields[field] = parsed
        elif field == "rounds":
            rounds = _to_int(raw)
            if rounds:
                fields[field] = rounds
        else:
            fields[field] = raw

    # "December 28" .. "January 3" runs into the next year
    start, end = fields.get("start_datetime"), fields.get("end_datetime")
    end_raw = (row.get("End date") or row.get("end_datetime") or "").strip()
    if start and end and end < start and _MONTH_DAY.match(end_raw):
        fields["end_datetime"] = end.replace(year=end.year + 1)
    return fields


def load_rows(path: Path) -> List[Dict[str, str]]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        return [
            {(k or "").strip(): (v or "").strip() for k, v in r.items()}
            for r in csv.DictReader(f)
        ]


# -------------------------
# Import
# -------------------------
def import_rows(
    service: EventService,
    queries: EventQuery,
    rows: List[Dict[str, str]],
    year: int,
) -> Tuple[int, int, int]:
    """Feed rows through EventService.create.

    Returns (inserted, skipped, failed). Rows without a start date or already
    present (same title/location/start) are skipped; rows Create rejects fail.
    """
    inserted = skipped = failed = 0
    for i, row in enumerate(rows, start=1):
        fields = row_to_fields(row, year)
        title = str(fields.get("title") or "")
        start = fields.get("start_datetime")

        if start is None:
            if DEBUG:
                print(f"[import] SKIP row {i}: no valid start date for {title!r}")
            skipped += 1
            continue

        if title and queries.exists(title, fields.get("location"), start):
            if DEBUG:
                print(f"[import] SKIP row {i} (exists): {title!r} {start:%Y-%m-%d}")
            skipped += 1
            continue

        try:
            new_id = service.create(fields)
        except ValidationError as exc:
            print(f"⚠️  Row {i} ({title or 'untitled'}): {exc.message}")
            failed += 1
            continue
        inserted += 1
        if DEBUG:
            print(f"[import] ADD: id={new_id} title={title!r}")
        if inserted % 100 == 0:
            print(f"  Imported {inserted} events...")

    return inserted, skipped, failed


# -------------------------
# main
# -------------------------
def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Import chess tournaments from a CSV export")
    parser.add_argument("csv_file", type=Path)
    parser.add_argument("--year", type=int, default=datetime.now().year,
                        help="Year for dates written as 'January 2' (default: current year)")
    parser.add_argument("--no-export", action="store_true", help="Skip JSON export regeneration")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)

    rows = load_rows(args.csv_file)
    if not rows:
        print(f"❌ No rows found in {args.csv_file}")
        return 1
    print(f"Parsed {len(rows)} rows from {args.csv_file}")

    with EventStore(settings.database_url) as store:
        store.create_all()
        service = EventService(store)
        inserted, skipped, failed = import_rows(service, EventQuery(store), rows, args.year)
        total = EventQuery(store).list().total_matching

        if inserted and not args.no_export:
            ExportGenerator(store, settings.export_dir).regenerate()

    print(f"✅ Imported {inserted} events (skipped {skipped}, failed {failed}). Total now: {total}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
