from datetime import datetime, timezone
from typing import List, Optional

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    field_validator,
)

_HTTP_URL = TypeAdapter(AnyHttpUrl)

# Columns a caller may write; anything else on update is rejected.
MUTABLE_FIELDS = (
    "title", "description", "location", "venue", "start_datetime", "end_datetime",
    "event_type", "format", "rounds", "url", "special", "continent", "category",
    "players", "prize_fund", "landing", "live_games",
)


def _naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


def _check_url(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not v:
        raise ValueError("url must not be empty")
    try:
        _HTTP_URL.validate_python(v)
    except PydanticValidationError:
        raise ValueError("url must be an absolute http(s) URL") from None
    return v


def _special_flag(v):
    if isinstance(v, bool):
        return "yes" if v else "no"
    return v


class _EventFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    description: Optional[str] = None
    location: Optional[str] = None
    venue: Optional[str] = None
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    event_type: Optional[str] = None
    format: Optional[str] = None
    rounds: Optional[PositiveInt] = None
    special: Optional[str] = None
    continent: Optional[str] = None
    category: Optional[str] = None
    players: Optional[str] = None
    prize_fund: Optional[str] = None
    landing: Optional[str] = None
    live_games: Optional[str] = None

    @field_validator("start_datetime", "end_datetime")
    @classmethod
    def _to_naive_utc(cls, v):
        return _naive_utc(v)

    @field_validator("special", mode="before")
    @classmethod
    def _normalise_special(cls, v):
        return _special_flag(v)


class EventCreate(_EventFields):
    """Payload for a new event. Unknown keys are ignored."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1)
    url: str

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, v):
        return _check_url(v)


class EventUpdate(_EventFields):
    """Partial update. Only MUTABLE_FIELDS are accepted."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1)
    url: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, v):
        return _check_url(v)

    @field_validator("title", "url", "start_datetime", "end_datetime", mode="before")
    @classmethod
    def _not_null(cls, v):
        if v is None:
            raise ValueError("field cannot be cleared")
        return v


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    venue: Optional[str] = None
    start_datetime: datetime
    end_datetime: datetime
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
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class DuplicateGroup(BaseModel):
    title: str
    location: Optional[str] = None
    start_datetime: datetime
    ids: List[int]

    @property
    def canonical_id(self) -> int:
        return self.ids[0]

    @property
    def redundant_ids(self) -> List[int]:
        return self.ids[1:]


class DuplicateCleanup(BaseModel):
    deleted: int
    groups: int
    backup: str


class BackupInfo(BaseModel):
    name: str
    reason: str
    created_at: datetime
    backup_size: int
    original_size: Optional[int] = None
    event_count: Optional[int] = None
    has_metadata: bool = True


class RestoreResult(BaseModel):
    restored: str
    safety_backup: str
    event_count: Optional[int] = None
