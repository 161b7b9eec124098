# chesscal/services/exports.py
"""Category JSON exports for static serving, and the worker that refreshes them."""
from __future__ import annotations

import json
import logging
import os
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import and_, func, or_
from sqlmodel import select

from chesscal.db.session import EventStore
from chesscal.models.event import CONTINENTS, Event, utcnow
from chesscal.models.schemas import EventOut
from chesscal.services.queries import EventFilter, filter_conditions

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("Classical", "Rapid", "Blitz", "Bullet", "Freestyle")
UPCOMING_DAYS = 30


@dataclass(frozen=True)
class ExportCategory:
    slug: str
    description: str
    # now -> extra predicates on top of "not deleted"
    predicates: Callable[[datetime], list]


def _like_any(column, *patterns: str):
    lowered = func.lower(column)
    return or_(*[lowered.like(f"%{p}%") for p in patterns])


def _matching(f: EventFilter) -> Callable[[datetime], list]:
    return lambda now: filter_conditions(f)


def _upcoming(now: datetime) -> list:
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return [Event.start_datetime >= today, Event.start_datetime < today + timedelta(days=UPCOMING_DAYS + 1)]


def default_categories() -> List[ExportCategory]:
    cats = [
        ExportCategory("events", "All tournaments", lambda now: []),
        ExportCategory("special-events", "Top/Special tournaments only", _matching(EventFilter(special=True))),
        ExportCategory(
            "womens-events",
            "Women's tournaments",
            lambda now: [or_(_like_any(Event.title, "women", "female", "girls"), _like_any(Event.category, "women"))],
        ),
    ]
    for continent in CONTINENTS:
        cats.append(
            ExportCategory(f"{continent.lower()}-events", f"{continent} tournaments", _matching(EventFilter(continent=continent)))
        )
    for fmt in EXPORT_FORMATS:
        cats.append(
            ExportCategory(f"{fmt.lower()}-events", f"{fmt} format tournaments", _matching(EventFilter(format=fmt)))
        )
    cats += [
        ExportCategory(
            "youth-events",
            "Youth/Junior tournaments",
            lambda now: [
                or_(
                    _like_any(Event.title, "youth", "junior", "u20", "u18", "u16", "u14", "u12", "u10", "u8"),
                    _like_any(Event.category, "youth", "junior"),
                )
            ],
        ),
        ExportCategory(
            "world-championships",
            "World Championships & Olympiads",
            lambda now: [_like_any(Event.title, "world championship", "world cup", "candidates", "olympiad")],
        ),
        ExportCategory(
            "online-events",
            "Online tournaments",
            lambda now: [
                or_(
                    _like_any(Event.location, "online"),
                    _like_any(Event.format, "online"),
                    _like_any(Event.title, "online", "chess.com", "lichess"),
                )
            ],
        ),
        ExportCategory("upcoming-events", f"Upcoming tournaments (next {UPCOMING_DAYS} days)", _upcoming),
        ExportCategory(
            "national-championships",
            "National Championships",
            lambda now: [
                or_(
                    _like_any(Event.title, "national championship"),
                    and_(
                        _like_any(Event.title, "championship"),
                        _like_any(Event.title, "usa", "british", "french", "german", "russian", "indian", "chinese"),
                    ),
                )
            ],
        ),
    ]
    return cats


class ExportGenerator:
    """Writes one `<slug>.json` per category into `export_dir`."""

    def __init__(self, store: EventStore, export_dir: Path, categories: Optional[Sequence[ExportCategory]] = None) -> None:
        self.store = store
        self.export_dir = Path(export_dir)
        self.categories = list(categories) if categories is not None else default_categories()

    def _rows(self, category: ExportCategory, now: datetime) -> List[dict]:
        conds = [Event.deleted_at.is_(None), *category.predicates(now)]
        with self.store.session() as s:
            events = s.exec(select(Event).where(and_(*conds)).order_by(Event.start_datetime, Event.id)).all()
            return [EventOut.model_validate(e).model_dump(mode="json") for e in events]

    def _write(self, category: ExportCategory, rows: List[dict], now: datetime) -> Path:
        path = self.export_dir / f"{category.slug}.json"
        tmp = path.with_name(path.name + ".tmp")
        payload = {
            "data": rows,
            "total": len(rows),
            "description": category.description,
            "generated": now.isoformat() + "Z",
        }
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, path)
        return path

    def regenerate(self) -> Dict[str, int]:
        """Rewrite every category file; returns {slug: total}."""
        self.export_dir.mkdir(parents=True, exist_ok=True)
        now = utcnow()
        totals: Dict[str, int] = {}
        for category in self.categories:
            rows = self._rows(category, now)
            self._write(category, rows, now)
            totals[category.slug] = len(rows)
        logger.info("Regenerated %d export files in %s", len(totals), self.export_dir)
        return totals


_STOP = object()


class ExportQueue:
    """Background worker that regenerates exports after mutations.

    Requests that pile up while a regeneration runs are coalesced into one.
    Failures are logged and the worker keeps going.
    """

    def __init__(self, generator: ExportGenerator) -> None:
        self.generator = generator
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.runs = 0
        self.failures = 0

    def start(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name="export-worker", daemon=True)
                self._thread.start()

    def enqueue(self, reason: str = "change") -> None:
        self.start()
        self._queue.put(reason)

    def join(self) -> None:
        """Block until every queued request has been handled."""
        self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None and thread.is_alive():
            self._queue.put(_STOP)
            thread.join(timeout)

    def _drain(self) -> tuple:
        """Pull everything already waiting; returns (count, saw_stop)."""
        count, saw_stop = 0, False
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return count, saw_stop
            count += 1
            if item is _STOP:
                saw_stop = True

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            extra, saw_stop = self._drain()
            try:
                if item is not _STOP:
                    self.generator.regenerate()
                    self.runs += 1
            except Exception:
                self.failures += 1
                logger.exception("Export regeneration failed (triggered by %s)", item)
            finally:
                for _ in range(1 + extra):
                    self._queue.task_done()
            if item is _STOP or saw_stop:
                return
