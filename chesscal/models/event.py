from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, text
from sqlmodel import SQLModel, Field

CONTINENTS = ("Europe", "Asia", "Americas", "Africa", "Oceania")
FORMATS = ("classical", "rapid", "blitz", "bullet", "freestyle", "other")

ACTIVE_ONLY = text("deleted_at IS NULL")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Event(SQLModel, table=True):
    __tablename__ = "calendar_events"
    __table_args__ = (
        Index("idx_events_start_date", "start_datetime", sqlite_where=ACTIVE_ONLY),
        Index("idx_events_end_date", "end_datetime", sqlite_where=ACTIVE_ONLY),
        Index("idx_events_location", "location", sqlite_where=ACTIVE_ONLY),
        Index("idx_events_type", "event_type", sqlite_where=ACTIVE_ONLY),
        Index("idx_events_continent", "continent", sqlite_where=ACTIVE_ONLY),
        # ids are never handed out twice, even after a permanent delete
        {"sqlite_autoincrement": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    venue: Optional[str] = None
    # every datetime column is a plain naive DateTime holding UTC
    start_datetime: datetime = Field(sa_type=DateTime(timezone=False))
    end_datetime: datetime = Field(sa_type=DateTime(timezone=False))

    event_type: Optional[str] = None
    format: Optional[str] = None
    rounds: Optional[int] = None
    url: Optional[str] = None
    special: Optional[str] = None
    continent: Optional[str] = None
    category: Optional[str] = None
    players: Optional[str] = None
    prize_fund: Optional[str] = None
    landing: Optional[str] = None
    live_games: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=False))
    deleted_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=False))

    @property
    def is_special(self) -> bool:
        return (self.special or "").strip().lower() == "yes"
