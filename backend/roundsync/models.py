from sqlalchemy import (
    Column,
    String,
    DateTime,
    JSON,
    Integer,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from .db import Base


class GameSession(Base):
    """Server-side row for one tournament session.

    Rounds are stored as a JSON list in ``round_data`` and are append-only;
    score writes lock this row for the duration of a single update.
    """

    __tablename__ = "game_session"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    scoring_mode = Column(String, nullable=False, default="fixed")
    points_per_match = Column(Integer, nullable=False, default=21)
    games_to_win = Column(Integer, nullable=True)
    total_games = Column(Integer, nullable=True)
    mode = Column(String, nullable=False, default="sequential")
    court_count = Column(Integer, nullable=False, default=1)
    current_round = Column(Integer, nullable=False, default=0)
    round_data = Column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )
    player_data = Column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), nullable=False)


class EventHistory(Base):
    """Append-only audit log of session events."""

    __tablename__ = "event_history"
    id = Column(String, primary_key=True)
    session_id = Column(String, nullable=False)
    event_type = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_event_history_session_id", "session_id"),
        Index("ix_event_history_created_at", "created_at"),
    )


class PendingOperation(Base):
    """Durable offline queue entry, replayed in ``seq`` order."""

    __tablename__ = "pending_operation"
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True)
    kind = Column(String, nullable=False)  # "UPDATE_SCORE" | "GENERATE_ROUND"
    session_id = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    retry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_pending_operation_session_id", "session_id"),
    )
