# scripts/export_json.py
from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from chesscal.config import Settings, configure_logging
from chesscal.db.session import EventStore
from chesscal.services.exports import ExportGenerator


def main(argv: Optional[List[str]] = None) -> int:
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Regenerate the category JSON exports")
    parser.add_argument("--out", type=Path, default=settings.export_dir)
    args = parser.parse_args(argv)
    configure_logging(settings.log_level)

    with EventStore(settings.database_url) as store:
        store.create_all()
        totals = ExportGenerator(store, args.out).regenerate()

    for slug, total in totals.items():
        print(f"  {slug + '.json':<32} {total:>5} events")
    print(f"✅ Wrote {len(totals)} files to {args.out.resolve()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
