# chesscal/main.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chesscal.config import Settings, configure_logging
from chesscal.db.session import EventStore
from chesscal.errors import (
    BackupError,
    CalendarError,
    DuplicateConstraintError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    UnsupportedModeError,
    ValidationError,
)
from chesscal.models.event import utcnow
from chesscal.models.schemas import EventOut
from chesscal.services.backups import BackupManager
from chesscal.services.exports import ExportGenerator, ExportQueue
from chesscal.services.mutations import EventService
from chesscal.services.queries import EventFilter, EventQuery

logger = logging.getLogger(__name__)

# Most specific first; lookup walks the exception's MRO.
STATUS_BY_ERROR = {
    ValidationError: 400,
    UnsupportedModeError: 400,
    UnauthorizedError: 401,
    NotFoundError: 404,
    DuplicateConstraintError: 409,
    StorageError: 500,
    BackupError: 500,
    CalendarError: 500,
}

TRUTHY = {"yes", "true", "1"}


def _status_for(exc: CalendarError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


# --- dependencies -------------------------------------------------------------

def queries(request: Request) -> EventQuery:
    return request.app.state.queries


def service(request: Request) -> EventService:
    return request.app.state.service


def backups(request: Request) -> BackupManager:
    return request.app.state.backups


def require_admin(request: Request, authorization: Optional[str] = Header(default=None)) -> None:
    """Bearer-token gate for every write and admin route."""
    expected = request.app.state.settings.admin_token
    supplied = (authorization or "").removeprefix("Bearer ").strip()
    if not expected or not supplied or not secrets.compare_digest(supplied, expected):
        raise UnauthorizedError("Unauthorized")


def _out(events) -> List[EventOut]:
    return [EventOut.model_validate(e) for e in events]


# --- routes: events (public) ----------------------------------------------------

public = APIRouter()


@public.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok", "time": utcnow().isoformat() + "Z"}


@public.get("/api/events")
def list_events(
    special: Optional[str] = Query(default=None, description="'yes' restricts to special events."),
    continent: Optional[str] = Query(default=None, description="Exact continent, case-insensitive."),
    format: Optional[str] = Query(default=None, description="Exact format, case-insensitive."),
    type: Optional[str] = Query(default=None, description="Exact event type, case-insensitive."),
    location: Optional[str] = Query(default=None, description="Partial location match."),
    search: Optional[str] = Query(default=None, description="Partial match on title, location or players."),
    players: Optional[str] = Query(default=None, description="Partial match on players only."),
    start_date: Optional[datetime] = Query(default=None, description="Events ending on/after this date."),
    end_date: Optional[datetime] = Query(default=None, description="Events starting on/before this date."),
    limit: int = Query(default=1000, ge=1, le=5000),
    offset: int = Query(default=0, ge=0),
    q: EventQuery = Depends(queries),
) -> Dict[str, Any]:
    f = EventFilter(
        special=(special or "").strip().lower() in TRUTHY,
        continent=continent,
        format=format,
        event_type=type,
        location=location,
        search=search,
        players=players,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    page = q.list(f)
    return {"success": True, "data": _out(page.records), "total": page.total_matching, "returned": page.returned}


@public.get("/api/events/upcoming")
def upcoming_events(
    days: Optional[int] = Query(default=None, ge=0),
    limit: int = Query(default=20, ge=1, le=500),
    q: EventQuery = Depends(queries),
) -> Dict[str, Any]:
    events = q.upcoming(days=days, limit=limit)
    return {"success": True, "data": _out(events), "returned": len(events)}


@public.get("/api/events/{event_id}")
def get_event(event_id: int, q: EventQuery = Depends(queries)) -> Dict[str, Any]:
    return {"success": True, "data": EventOut.model_validate(q.get(event_id))}


@public.get("/api/players/search")
def search_players(
    name: str = Query(..., min_length=1, description="Partial, case-insensitive player name."),
    limit: int = Query(default=1000, ge=1, le=5000),
    q: EventQuery = Depends(queries),
) -> Dict[str, Any]:
    page = q.list(EventFilter(players=name, limit=limit))
    return {"success": True, "data": _out(page.records), "total": page.total_matching, "returned": page.returned}


@public.get("/api/stats")
def stats(q: EventQuery = Depends(queries)) -> Dict[str, Any]:
    return {"success": True, **q.stats()}


# --- routes: events (admin) -----------------------------------------------------

admin = APIRouter(dependencies=[Depends(require_admin)])


@admin.post("/api/events", status_code=201)
def create_event(payload: Dict[str, Any] = Body(...), svc: EventService = Depends(service)) -> Dict[str, Any]:
    new_id = svc.create(payload)
    return {"success": True, "id": new_id, "message": "Event created successfully"}


@admin.post("/api/events/batch", status_code=201)
def create_events(payload: Dict[str, Any] = Body(...), svc: EventService = Depends(service)) -> Dict[str, Any]:
    rows = payload.get("events")
    if not isinstance(rows, list):
        raise ValidationError("Events array is required")
    ids = svc.create_many(rows)
    return {"success": True, "ids": ids, "message": f"Successfully created {len(ids)} events"}


@admin.put("/api/events/{event_id}")
def update_event(
    event_id: int, payload: Dict[str, Any] = Body(...), svc: EventService = Depends(service)
) -> Dict[str, Any]:
    svc.update(event_id, payload)
    return {"success": True, "message": "Event updated successfully"}


@admin.delete("/api/events/{event_id}")
def delete_event(
    event_id: int,
    permanent: bool = Query(default=False),
    svc: EventService = Depends(service),
) -> Dict[str, Any]:
    svc.delete(event_id, permanent=permanent)
    message = "Event permanently deleted" if permanent else "Event deleted successfully"
    return {"success": True, "message": message}


@admin.post("/api/events/{event_id}/restore")
def restore_event(event_id: int, svc: EventService = Depends(service)) -> Dict[str, Any]:
    svc.restore(event_id)
    return {"success": True, "message": "Event restored successfully"}


# --- routes: duplicates + backups (admin) -----------------------------------------

@admin.get("/api/admin/duplicates")
def list_duplicates(svc: EventService = Depends(service)) -> Dict[str, Any]:
    groups = svc.find_duplicates()
    return {"success": True, "data": groups, "total": len(groups)}


@admin.post("/api/admin/duplicates/delete")
def delete_duplicates(mode: str = Query(default="auto"), svc: EventService = Depends(service)) -> Dict[str, Any]:
    result = svc.delete_duplicates(mode=mode)
    return {"success": True, **result.model_dump()}


@admin.get("/api/admin/backups")
def list_backups(mgr: BackupManager = Depends(backups)) -> Dict[str, Any]:
    items = mgr.list_backups()
    return {"success": True, "data": items, "total": len(items)}


@admin.post("/api/admin/backups", status_code=201)
def create_backup(
    payload: Optional[Dict[str, Any]] = Body(default=None), mgr: BackupManager = Depends(backups)
) -> Dict[str, Any]:
    reason = (payload or {}).get("reason") or "manual"
    return {"success": True, "data": mgr.create_backup(str(reason))}


@admin.post("/api/admin/backups/{name}/restore")
def restore_backup(name: str, request: Request, mgr: BackupManager = Depends(backups)) -> Dict[str, Any]:
    result = mgr.restore_backup(name)
    # pooled connections may still point at the old pages
    request.app.state.store.reopen()
    exports = request.app.state.exports
    if exports is not None:
        exports.enqueue("restore_backup")
    return {"success": True, **result.model_dump()}


@admin.delete("/api/admin/backups/{name}")
def delete_backup(name: str, mgr: BackupManager = Depends(backups)) -> Dict[str, Any]:
    mgr.delete_backup(name)
    return {"success": True, "message": f"Backup {name} deleted"}


# --- app factory ----------------------------------------------------------------

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API around one explicitly opened store.

    uvicorn target: "chesscal.main:create_app" with --factory
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    store = EventStore(settings.database_url, echo=settings.sql_echo).open()
    store.create_all()
    backup_mgr = BackupManager(store, settings.backup_dir)
    exports = ExportQueue(ExportGenerator(store, settings.export_dir)) if settings.exports_enabled else None

    api = FastAPI(title="Chess Calendar API")
    api.state.settings = settings
    api.state.store = store
    api.state.exports = exports
    api.state.backups = backup_mgr
    api.state.queries = EventQuery(store)
    api.state.service = EventService(store, backups=backup_mgr, on_change=exports.enqueue if exports else None)

    @api.exception_handler(CalendarError)
    def _calendar_error(request: Request, exc: CalendarError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status, content=exc.to_dict())

    @api.exception_handler(RequestValidationError)
    def _request_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # malformed query/path/body share the ValidationError envelope
        details = [
            {"field": ".".join(str(p) for p in err["loc"][1:]) or str(err["loc"][0]), "message": err["msg"]}
            for err in exc.errors()
        ]
        body = ValidationError("Invalid request parameters", details=details).to_dict()
        return JSONResponse(status_code=400, content=body)

    @api.on_event("shutdown")
    def _close() -> None:
        if exports is not None:
            exports.stop()
        store.close()

    api.include_router(public)
    api.include_router(admin)
    return api
