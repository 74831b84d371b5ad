from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _json():
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade():
    op.create_table(
        "game_session",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("scoring_mode", sa.String(), nullable=False, server_default="fixed"),
        sa.Column("points_per_match", sa.Integer(), nullable=False, server_default="21"),
        sa.Column("games_to_win", sa.Integer(), nullable=True),
        sa.Column("total_games", sa.Integer(), nullable=True),
        sa.Column("mode", sa.String(), nullable=False, server_default="sequential"),
        sa.Column("court_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("current_round", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("round_data", _json(), nullable=False),
        sa.Column("player_data", _json(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "event_history",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_event_history_session_id", "event_history", ["session_id"])
    op.create_index("ix_event_history_created_at", "event_history", ["created_at"])
    op.create_table(
        "pending_operation",
        sa.Column("seq", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("id", sa.String(), nullable=False, unique=True),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_pending_operation_session_id", "pending_operation", ["session_id"]
    )


def downgrade():
    op.drop_index("ix_pending_operation_session_id", table_name="pending_operation")
    op.drop_table("pending_operation")
    op.drop_index("ix_event_history_created_at", table_name="event_history")
    op.drop_index("ix_event_history_session_id", table_name="event_history")
    op.drop_table("event_history")
    op.drop_table("game_session")
