"""partial indexes over active (not soft-deleted) events"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "8f4e61b0c2d5"
down_revision: Union[str, Sequence[str], None] = "3c1d2a7e9b10"
branch_labels = None
depends_on = None

TABLE = "calendar_events"

INDEXES = {
    "idx_events_start_date": "start_datetime",
    "idx_events_end_date": "end_datetime",
    "idx_events_location": "location",
    "idx_events_type": "event_type",
    "idx_events_continent": "continent",
}


def _existing_indexes() -> set[str]:
    insp = sa.inspect(op.get_bind())
    return {ix["name"] for ix in insp.get_indexes(TABLE)}


def upgrade() -> None:
    existing = _existing_indexes()
    for name, column in INDEXES.items():
        if name in existing:
            continue
        op.create_index(name, TABLE, [column], sqlite_where=sa.text("deleted_at IS NULL"))


def downgrade() -> None:
    existing = _existing_indexes()
    for name in INDEXES:
        if name in existing:
            op.drop_index(name, table_name=TABLE)
