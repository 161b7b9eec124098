"""create calendar_events"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "3c1d2a7e9b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "calendar_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("venue", sa.String(), nullable=True),
        sa.Column("start_datetime", sa.DateTime(), nullable=False),
        sa.Column("end_datetime", sa.DateTime(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=True),
        sa.Column("format", sa.String(), nullable=True),
        sa.Column("rounds", sa.Integer(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("special", sa.String(), nullable=True),
        sa.Column("continent", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("players", sa.String(), nullable=True),
        sa.Column("prize_fund", sa.String(), nullable=True),
        sa.Column("landing", sa.String(), nullable=True),
        sa.Column("live_games", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        # AUTOINCREMENT: ids are not reused after a permanent delete
        sqlite_autoincrement=True,
    )


def downgrade() -> None:
    op.drop_table("calendar_events")
