# scripts/backup_db.py
from __future__ import annotations

import argparse
from typing import List, Optional

from chesscal.config import Settings, configure_logging
from chesscal.db.session import EventStore
from chesscal.errors import CalendarError
from chesscal.services.backups import BackupManager


def _build_parser(default_keep: int) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Snapshot, list and restore the calendar database")
    sub = parser.add_subparsers(dest="command")

    create = sub.add_parser("create", help="take a snapshot (default command)")
    create.add_argument("--reason", default="manual")
    create.add_argument("--keep", type=int, default=default_keep, help="prune to this many afterwards")

    sub.add_parser("list", help="show snapshots, newest first")

    restore = sub.add_parser("restore", help="overwrite the live database from a snapshot")
    restore.add_argument("name")

    delete = sub.add_parser("delete", help="remove a snapshot and its metadata")
    delete.add_argument("name")

    prune = sub.add_parser("prune", help="keep only the newest N snapshots")
    prune.add_argument("--keep", type=int, default=default_keep)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    args = _build_parser(settings.backup_keep).parse_args(argv)
    command = args.command or "create"

    with EventStore(settings.database_url) as store:
        if command != "restore" and not store.database_path.exists():
            print(f"❌ DB not found: {store.database_path}")
            return 1
        mgr = BackupManager(store, settings.backup_dir)
        try:
            if command == "create":
                info = mgr.create_backup(getattr(args, "reason", "manual"))
                print(f"Backup created: {mgr.backup_dir / info.name} ({info.event_count} events)")
                removed = mgr.prune(getattr(args, "keep", settings.backup_keep))
                if removed:
                    print(f"Pruned {len(removed)} old backup(s)")
            elif command == "list":
                items = mgr.list_backups()
                for info in items:
                    count = "?" if info.event_count is None else info.event_count
                    print(f"{info.name:<48} {info.created_at:%Y-%m-%d %H:%M:%S}  {count:>6} events  {info.backup_size:>10} B")
                print(f"{len(items)} backup(s) in {mgr.backup_dir}")
            elif command == "restore":
                result = mgr.restore_backup(args.name)
                print(f"✅ Restored {result.restored} ({result.event_count} events); previous state saved as {result.safety_backup}")
            elif command == "delete":
                mgr.delete_backup(args.name)
                print(f"Deleted {args.name}")
            elif command == "prune":
                removed = mgr.prune(args.keep)
                print(f"Pruned {len(removed)} backup(s)")
        except CalendarError as exc:
            print(f"❌ {exc.message}")
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
