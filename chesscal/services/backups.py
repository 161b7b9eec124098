# chesscal/services/backups.py
"""Point-in-time snapshots of the calendar database.

Each backup is a pair of files in `backup_dir`:

    <reason>_<YYYYmmdd_HHMMSS_ffffff>.sqlite3   snapshot (sqlite3 online backup API)
    <reason>_<YYYYmmdd_HHMMSS_ffffff>.json      metadata sidecar

The backup API copies a consistent image even while the live store is being
written to, and it is synchronous, so metadata is read right after it returns.
Create, restore, delete and prune are serialised by one re-entrant lock.
"""
from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
import threading
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from chesscal.db.session import EventStore
from chesscal.errors import BackupError, NotFoundError, ValidationError
from chesscal.models.event import utcnow
from chesscal.models.schemas import BackupInfo, RestoreResult

logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".sqlite3"
METADATA_SUFFIX = ".json"
STAMP_FORMAT = "%Y%m%d_%H%M%S_%f"
PRE_RESTORE_REASON = "pre-restore"

_NAME_RE = re.compile(r"^(?P<reason>[a-z0-9][a-z0-9-]*)_(?P<stamp>\d{8}_\d{6}_\d{6})\.sqlite3$")


def slugify_reason(reason: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (reason or "").strip().lower()).strip("-")
    if not slug:
        raise ValidationError("backup reason must contain letters or digits", details={"reason": reason})
    return slug


def sqlite_copy(src: Path, dst: Path) -> None:
    """Copy `src` into `dst` with SQLite's online backup API (blocking)."""
    with closing(sqlite3.connect(str(src))) as src_conn, closing(sqlite3.connect(str(dst))) as dst_conn:
        src_conn.backup(dst_conn)


def count_events(db_file: Path) -> Optional[int]:
    """Active events in a database file, or None if it has no events table."""
    with closing(sqlite3.connect(str(db_file))) as conn:
        try:
            row = conn.execute("SELECT COUNT(*) FROM calendar_events WHERE deleted_at IS NULL").fetchone()
        except sqlite3.OperationalError:
            return None
    return int(row[0])


def _write_json_atomic(path: Path, payload: dict) -> None:
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)


class BackupManager:
    def __init__(self, store: EventStore, backup_dir: Path) -> None:
        self.store = store
        self.backup_dir = Path(backup_dir)
        self._lock = threading.RLock()

    # --- paths ---------------------------------------------------------------

    def _snapshot_path(self, name: str) -> Path:
        if not name or Path(name).name != name or name in {".", ".."}:
            raise ValidationError(f"Invalid backup name {name!r}", details={"name": name})
        if not name.endswith(SNAPSHOT_SUFFIX):
            name += SNAPSHOT_SUFFIX
        return self.backup_dir / name

    @staticmethod
    def _metadata_path(snapshot: Path) -> Path:
        return snapshot.with_suffix(METADATA_SUFFIX)

    # --- create --------------------------------------------------------------

    def create_backup(self, reason: str = "manual") -> BackupInfo:
        reason = slugify_reason(reason)
        with self._lock:
            try:
                src = self.store.database_path
            except Exception as exc:
                raise BackupError(f"backup ({reason}): {exc}") from exc
            if not src.is_file():
                raise BackupError(f"backup ({reason}): database file {src} does not exist")

            created = utcnow()
            snapshot = self.backup_dir / f"{reason}_{created.strftime(STAMP_FORMAT)}{SNAPSHOT_SUFFIX}"
            partial = snapshot.with_name(snapshot.name + ".partial")
            try:
                self.backup_dir.mkdir(parents=True, exist_ok=True)
                sqlite_copy(src, partial)
                os.replace(partial, snapshot)
            except (sqlite3.Error, OSError) as exc:
                partial.unlink(missing_ok=True)
                raise BackupError(f"backup ({reason}): snapshot of {src} failed: {exc}") from exc

            try:
                info = BackupInfo(
                    name=snapshot.name,
                    reason=reason,
                    created_at=created,
                    original_size=src.stat().st_size,
                    backup_size=snapshot.stat().st_size,
                    event_count=count_events(snapshot),
                )
                _write_json_atomic(
                    self._metadata_path(snapshot),
                    info.model_dump(mode="json", exclude={"has_metadata"}),
                )
            except (sqlite3.Error, OSError, ValueError) as exc:
                snapshot.unlink(missing_ok=True)
                raise BackupError(f"backup ({reason}): metadata for {snapshot.name} failed: {exc}") from exc

        logger.info("Created backup %s (%s events, %d bytes)", info.name, info.event_count, info.backup_size)
        return info

    # --- list ----------------------------------------------------------------

    def _fallback_info(self, snapshot: Path) -> BackupInfo:
        st = snapshot.stat()
        m = _NAME_RE.match(snapshot.name)
        return BackupInfo(
            name=snapshot.name,
            reason=m.group("reason") if m else "unknown",
            created_at=datetime.fromtimestamp(st.st_mtime, timezone.utc).replace(tzinfo=None),
            backup_size=st.st_size,
            has_metadata=False,
        )

    def _load_info(self, snapshot: Path) -> BackupInfo:
        meta = self._metadata_path(snapshot)
        if not meta.is_file():
            return self._fallback_info(snapshot)
        try:
            data = json.loads(meta.read_text(encoding="utf-8"))
            info = BackupInfo.model_validate({**data, "name": snapshot.name, "has_metadata": True})
        except (OSError, ValueError, TypeError, PydanticValidationError) as exc:
            logger.warning("Ignoring unreadable backup metadata %s: %s", meta.name, exc)
            return self._fallback_info(snapshot)
        return info

    def list_backups(self) -> List[BackupInfo]:
        """All snapshots, newest first. Bad sidecars degrade to file-system metadata."""
        if not self.backup_dir.is_dir():
            return []
        infos = []
        for snapshot in self.backup_dir.glob(f"*{SNAPSHOT_SUFFIX}"):
            try:
                infos.append(self._load_info(snapshot))
            except FileNotFoundError:
                continue  # deleted while listing
        infos.sort(key=lambda i: (i.created_at, i.name), reverse=True)
        return infos

    # --- restore / delete ----------------------------------------------------

    def restore_backup(self, name: str) -> RestoreResult:
        """Overwrite the live database with snapshot `name`.

        A "pre-restore" backup of the current state is always taken first.
        Callers holding pooled connections should `store.reopen()` afterwards.
        """
        snapshot = self._snapshot_path(name)
        with self._lock:
            if not snapshot.is_file():
                raise NotFoundError(f"Backup {snapshot.name} not found", details={"name": snapshot.name})
            try:
                safety = self.create_backup(PRE_RESTORE_REASON)
            except BackupError as exc:
                raise BackupError(f"restore of {snapshot.name} aborted: {exc.message}") from exc
            try:
                sqlite_copy(snapshot, self.store.database_path)
            except sqlite3.Error as exc:
                raise BackupError(
                    f"restore of {snapshot.name} failed: {exc}; current data saved as {safety.name}"
                ) from exc

        result = RestoreResult(
            restored=snapshot.name,
            safety_backup=safety.name,
            event_count=count_events(self.store.database_path),
        )
        logger.warning("Restored database from %s (safety backup %s)", result.restored, result.safety_backup)
        return result

    def delete_backup(self, name: str) -> None:
        snapshot = self._snapshot_path(name)
        meta = self._metadata_path(snapshot)
        with self._lock:
            if not snapshot.exists() and not meta.exists():
                raise NotFoundError(f"Backup {snapshot.name} not found", details={"name": snapshot.name})
            try:
                snapshot.unlink(missing_ok=True)
                meta.unlink(missing_ok=True)
            except OSError as exc:
                raise BackupError(f"delete of backup {snapshot.name} failed: {exc}") from exc
        logger.info("Deleted backup %s", snapshot.name)

    def prune(self, keep: int) -> List[str]:
        """Delete the oldest backups beyond `keep`; return the removed names."""
        if keep < 0:
            raise ValidationError("keep must be non-negative", details={"keep": keep})
        with self._lock:
            stale = self.list_backups()[keep:]
            for info in stale:
                self.delete_backup(info.name)
        return [info.name for info in stale]
