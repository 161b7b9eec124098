# chesscal/services/mutations.py
"""Write side of the calendar: validated create/update/delete/restore and dedupe."""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from chesscal.db.session import EventStore
from chesscal.errors import (
    BackupError,
    DuplicateConstraintError,
    NotFoundError,
    StorageError,
    UnsupportedModeError,
    ValidationError,
)
from chesscal.models.event import Event, utcnow
from chesscal.models.schemas import DuplicateCleanup, DuplicateGroup, EventCreate, EventUpdate

if TYPE_CHECKING:
    from chesscal.services.backups import BackupManager

logger = logging.getLogger(__name__)

# Silently dropped from update payloads
PROTECTED_FIELDS = ("id", "created_at")

DEDUPE_MODES = ("auto",)
DEDUPE_BACKUP_REASON = "duplicate-deletion"


def _error_details(exc: PydanticValidationError) -> List[Dict[str, str]]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]) or "__root__", "message": err["msg"]}
        for err in exc.errors()
    ]


def _validate(model: Type[BaseModel], data: Mapping[str, Any], operation: str) -> BaseModel:
    if not isinstance(data, Mapping):
        raise ValidationError(f"{operation}: expected an object of event fields")
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as exc:
        details = _error_details(exc)
        fields = ", ".join(d["field"] for d in details)
        raise ValidationError(f"{operation}: invalid fields: {fields}", details=details) from None


def _check_window(start: datetime, end: datetime) -> None:
    if end < start:
        raise ValidationError(
            "end_datetime must not be before start_datetime",
            details=[{"field": "end_datetime", "message": "before start_datetime"}],
        )


def _duplicate_key(e: Event) -> Tuple[str, Optional[str], datetime]:
    return (e.title.lower(), e.location, e.start_datetime)


class EventService:
    """Mutation service over an EventStore.

    `on_change` is called with the operation name after every successful write
    (the export queue hooks in here). Its failures are logged, never raised.
    """

    def __init__(
        self,
        store: EventStore,
        backups: Optional["BackupManager"] = None,
        on_change: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.store = store
        self.backups = backups
        self.on_change = on_change

    # --- helpers -------------------------------------------------------------

    def _notify(self, operation: str) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(operation)
        except Exception:
            logger.exception("Export regeneration hook failed after %s", operation)

    def _commit(self, s: Session, operation: str, target: Any) -> None:
        try:
            s.commit()
        except IntegrityError as exc:
            s.rollback()
            msg = str(exc.orig)
            if "UNIQUE" in msg.upper():
                raise DuplicateConstraintError(
                    f"{operation} {target}: duplicate violates a unique constraint",
                    details={"reason": msg},
                ) from exc
            raise StorageError(f"{operation} {target}: constraint failed", details={"reason": msg}) from exc
        except SQLAlchemyError as exc:
            s.rollback()
            raise StorageError(f"{operation} {target}: storage failure", details={"reason": str(exc)}) from exc

    def _build_event(self, fields: Mapping[str, Any], now: datetime, operation: str) -> Event:
        payload: EventCreate = _validate(EventCreate, fields, operation)  # type: ignore[assignment]
        start = payload.start_datetime or now
        end = payload.end_datetime or start
        _check_window(start, end)
        data = payload.model_dump(exclude={"start_datetime", "end_datetime"})
        return Event(**data, start_datetime=start, end_datetime=end, created_at=now, updated_at=now)

    def _active(self, s: Session, event_id: int) -> Event:
        event = s.exec(
            select(Event).where(Event.id == event_id, Event.deleted_at.is_(None))
        ).first()
        if event is None:
            raise NotFoundError(f"Event {event_id} not found", details={"id": event_id})
        return event

    def _any(self, s: Session, event_id: int) -> Event:
        event = s.get(Event, event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found", details={"id": event_id})
        return event

    # --- create / update -----------------------------------------------------

    def create(self, fields: Mapping[str, Any]) -> int:
        event = self._build_event(fields, utcnow(), "create")
        with self.store.session() as s:
            s.add(event)
            self._commit(s, "create", repr(event.title))
            s.refresh(event)
            new_id = event.id
        logger.info("Created event %s (%s)", new_id, event.title)
        self._notify("create")
        return new_id

    def create_many(self, rows: Sequence[Mapping[str, Any]]) -> List[int]:
        """Create all rows in one transaction; one bad row rejects the batch."""
        if not rows:
            raise ValidationError("create_many: events array is required")
        now = utcnow()
        events = []
        for i, row in enumerate(rows):
            try:
                events.append(self._build_event(row, now, "create_many"))
            except ValidationError as exc:
                raise ValidationError(f"event #{i}: {exc.message}", details={"index": i, "errors": exc.details}) from None
        with self.store.session() as s:
            s.add_all(events)
            self._commit(s, "create_many", f"{len(events)} events")
            ids = []
            for e in events:
                s.refresh(e)
                ids.append(e.id)
        logger.info("Created %d events in batch", len(ids))
        self._notify("create_many")
        return ids

    def update(self, event_id: int, fields: Mapping[str, Any]) -> None:
        if not isinstance(fields, Mapping):
            raise ValidationError("update: expected an object of event fields")
        data = {k: v for k, v in fields.items() if k not in PROTECTED_FIELDS}
        if not data:
            raise ValidationError("No fields to update")
        payload = _validate(EventUpdate, data, "update")
        changes = payload.model_dump(exclude_unset=True)

        with self.store.session() as s:
            event = self._active(s, event_id)
            for key, value in changes.items():
                setattr(event, key, value)
            _check_window(event.start_datetime, event.end_datetime)
            event.updated_at = utcnow()
            s.add(event)
            self._commit(s, "update", event_id)
        logger.info("Updated event %s: %s", event_id, ", ".join(sorted(changes)))
        self._notify("update")

    # --- delete / restore ----------------------------------------------------

    def soft_delete(self, event_id: int) -> None:
        with self.store.session() as s:
            event = self._active(s, event_id)
            event.deleted_at = utcnow()
            s.add(event)
            self._commit(s, "soft_delete", event_id)
        logger.info("Soft-deleted event %s", event_id)
        self._notify("delete")

    def restore(self, event_id: int) -> None:
        """Clear deleted_at. Restoring an active event is a no-op success."""
        with self.store.session() as s:
            event = self._any(s, event_id)
            event.deleted_at = None
            s.add(event)
            self._commit(s, "restore", event_id)
        logger.info("Restored event %s", event_id)
        self._notify("restore")

    def permanent_delete(self, event_id: int) -> None:
        with self.store.session() as s:
            event = self._any(s, event_id)
            s.delete(event)
            self._commit(s, "permanent_delete", event_id)
        logger.warning("Permanently deleted event %s", event_id)
        self._notify("delete")

    def delete(self, event_id: int, permanent: bool = False) -> None:
        if permanent:
            self.permanent_delete(event_id)
        else:
            self.soft_delete(event_id)

    # --- duplicates ----------------------------------------------------------

    def _duplicate_groups(self, s: Session) -> List[Tuple[Tuple, List[Event]]]:
        rows = s.exec(
            select(Event)
            .where(Event.deleted_at.is_(None))
            .order_by(Event.created_at, Event.id)
        ).all()
        grouped: Dict[Tuple, List[Event]] = defaultdict(list)
        for e in rows:
            grouped[_duplicate_key(e)].append(e)
        groups = [(key, members) for key, members in grouped.items() if len(members) > 1]
        groups.sort(key=lambda g: (g[0][2], g[0][0], g[0][1] or ""))
        return groups

    def find_duplicates(self) -> List[DuplicateGroup]:
        with self.store.session() as s:
            return [
                DuplicateGroup(
                    title=members[0].title,
                    location=members[0].location,
                    start_datetime=members[0].start_datetime,
                    ids=[m.id for m in members],
                )
                for _, members in self._duplicate_groups(s)
            ]

    def delete_duplicates(self, mode: str = "auto") -> DuplicateCleanup:
        """Soft-delete all but the earliest-created member of each duplicate group.

        A "duplicate-deletion" backup is taken first; if that fails nothing is touched.
        """
        if mode not in DEDUPE_MODES:
            raise UnsupportedModeError(
                f"Unsupported duplicate deletion mode {mode!r}", details={"supported": list(DEDUPE_MODES)}
            )
        if self.backups is None:
            raise BackupError("delete_duplicates: no backup manager configured")
        try:
            backup = self.backups.create_backup(DEDUPE_BACKUP_REASON)
        except BackupError:
            raise
        except Exception as exc:
            raise BackupError(f"delete_duplicates: backup failed: {exc}") from exc

        deleted = 0
        with self.store.session() as s:
            groups = self._duplicate_groups(s)
            now = utcnow()
            for _, members in groups:
                for e in members[1:]:
                    e.deleted_at = now
                    s.add(e)
                    deleted += 1
            self._commit(s, "delete_duplicates", f"{len(groups)} groups")
        logger.info(
            "Removed %d duplicate events across %d groups (backup %s)", deleted, len(groups), backup.name
        )
        self._notify("delete_duplicates")
        return DuplicateCleanup(deleted=deleted, groups=len(groups), backup=backup.name)
