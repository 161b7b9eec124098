# chesscal/services/queries.py
"""Read side of the calendar: filtered, paginated views of active events."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import and_, func, or_
from sqlmodel import Session, select

from chesscal.db.session import EventStore
from chesscal.errors import NotFoundError, ValidationError
from chesscal.models.event import Event, utcnow

DEFAULT_LIMIT = 100


@dataclass
class EventFilter:
    """Optional read filters. Empty filter == every active event."""

    special: bool = False
    continent: Optional[str] = None
    format: Optional[str] = None
    event_type: Optional[str] = None
    location: Optional[str] = None
    search: Optional[str] = None
    players: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit is None or self.limit < 1:
            raise ValidationError("limit must be a positive integer", details={"limit": self.limit})
        if self.offset is None or self.offset < 0:
            raise ValidationError("offset must be a non-negative integer", details={"offset": self.offset})
        # stored datetimes are naive UTC
        for attr in ("start_date", "end_date"):
            value = getattr(self, attr)
            if value is not None and value.tzinfo is not None:
                setattr(self, attr, value.astimezone(timezone.utc).replace(tzinfo=None))


@dataclass
class EventPage:
    records: List[Event]
    total_matching: int

    @property
    def returned(self) -> int:
        return len(self.records)


def _scalar(row):
    # some drivers hand back a 1-tuple
    return row[0] if isinstance(row, tuple) else row


def filter_conditions(f: EventFilter) -> list:
    """SQL predicates for `f`. Soft-deleted rows are always excluded."""
    conds = [Event.deleted_at.is_(None)]

    if f.special:
        conds.append(func.lower(Event.special) == "yes")
    if f.continent:
        conds.append(func.lower(Event.continent) == f.continent.strip().lower())
    if f.format:
        conds.append(func.lower(Event.format) == f.format.strip().lower())
    if f.event_type:
        conds.append(func.lower(Event.event_type) == f.event_type.strip().lower())
    if f.location:
        conds.append(Event.location.icontains(f.location.strip(), autoescape=True))
    if f.search:
        term = f.search.strip()
        conds.append(
            or_(
                Event.title.icontains(term, autoescape=True),
                Event.location.icontains(term, autoescape=True),
                Event.players.icontains(term, autoescape=True),
            )
        )
    if f.players:
        conds.append(Event.players.icontains(f.players.strip(), autoescape=True))
    if f.start_date is not None:
        conds.append(Event.end_datetime >= f.start_date)
    if f.end_date is not None:
        conds.append(Event.start_datetime <= f.end_date)
    return conds


def count_matching(s: Session, conds: list) -> int:
    return _scalar(s.exec(select(func.count()).select_from(Event).where(and_(*conds))).one())


class EventQuery:
    """Query/filter builder bound to an open EventStore."""

    def __init__(self, store: EventStore) -> None:
        self.store = store

    def list(self, f: Optional[EventFilter] = None) -> EventPage:
        f = f or EventFilter()
        conds = filter_conditions(f)
        with self.store.session() as s:
            total = count_matching(s, conds)
            stmt = (
                select(Event)
                .where(and_(*conds))
                .order_by(Event.start_datetime, Event.id)
                .offset(f.offset)
                .limit(f.limit)
            )
            rows = list(s.exec(stmt).all())
        return EventPage(records=rows, total_matching=total)

    def get(self, event_id: int, include_deleted: bool = False) -> Event:
        with self.store.session() as s:
            event = s.get(Event, event_id)
        if event is None or (event.deleted_at is not None and not include_deleted):
            raise NotFoundError(f"Event {event_id} not found", details={"id": event_id})
        return event

    def upcoming(self, days: Optional[int] = None, limit: int = 20, now: Optional[datetime] = None) -> List[Event]:
        """Active events starting today or later, optionally within `days`."""
        today = (now or utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
        conds = [Event.deleted_at.is_(None), Event.start_datetime >= today]
        if days is not None:
            conds.append(Event.start_datetime < today + timedelta(days=days + 1))
        with self.store.session() as s:
            stmt = select(Event).where(and_(*conds)).order_by(Event.start_datetime, Event.id).limit(limit)
            return list(s.exec(stmt).all())

    def stats(self) -> Dict[str, object]:
        with self.store.session() as s:
            total = count_matching(s, [Event.deleted_at.is_(None)])
            out: Dict[str, object] = {"total_events": total}
            for key, column in (
                ("by_continent", Event.continent),
                ("by_type", Event.event_type),
                ("by_format", Event.format),
            ):
                rows = s.exec(
                    select(column, func.count())
                    .where(Event.deleted_at.is_(None), column.is_not(None), column != "")
                    .group_by(column)
                    .order_by(func.count().desc(), column)
                ).all()
                out[key] = [{"value": value, "count": count} for value, count in rows]
        return out

    def exists(self, title: str, location: Optional[str], start_datetime: datetime) -> bool:
        """True if an active event already has this (title, location, start) key."""
        loc = Event.location.is_(None) if location is None else Event.location == location
        stmt = select(Event.title).where(Event.deleted_at.is_(None), loc, Event.start_datetime == start_datetime)
        with self.store.session() as s:
            titles = s.exec(stmt).all()
        # SQLite lower() only folds ASCII, so titles are compared here
        wanted = title.lower()
        return any(_scalar(t).lower() == wanted for t in titles)
