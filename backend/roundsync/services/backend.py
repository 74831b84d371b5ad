"""Persistence contract for sessions and its SQLAlchemy implementation."""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Hashable,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from .. import config
from ..db import get_sessionmaker
from ..db_errors import is_lock_error, is_timeout_error
from ..exceptions import (
    LockContentionError,
    MatchNotFound,
    RoundNotFound,
    SessionNotFound,
)
from ..models import EventHistory, GameSession
from ..schemas import (
    EventOut,
    GameScore,
    Match,
    Player,
    Round,
    ScoringConfig,
    SessionCreate,
    SessionMode,
    SessionOut,
)
from ..scoring import get_policy
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionBackend(Protocol):
    """What the engine needs from the store that holds a session."""

    async def load_session(self, session_id: str) -> SessionOut: ...

    async def update_score_with_lock(
        self,
        session_id: str,
        round_index: int,
        match_index: int,
        team1_score: int,
        team2_score: int,
        game_scores: Optional[Sequence[GameScore]] = None,
    ) -> Match: ...

    async def save_rounds(
        self,
        session_id: str,
        rounds: Sequence[Round],
        current_round: int,
        players: Optional[Sequence[Player]] = None,
    ) -> None: ...

    async def append_event(
        self,
        session_id: str,
        event_type: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventOut: ...


class KeyedLocks:
    """``asyncio.Lock`` per key, dropped again once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: Hashable, timeout: Optional[float]) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout)
            except asyncio.TimeoutError:
                raise LockContentionError(
                    "timed out waiting for the score lock", timeout=True
                ) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


def _db_now():
    # DateTime columns are naive and hold UTC.
    return utcnow().replace(tzinfo=None)


def _scoring_config(row: GameSession) -> ScoringConfig:
    return ScoringConfig(
        mode=row.scoring_mode,
        points_per_match=row.points_per_match,
        games_to_win=row.games_to_win,
        total_games=row.total_games,
    )


def session_out(row: GameSession) -> SessionOut:
    return SessionOut(
        id=row.id,
        name=row.name,
        scoring=_scoring_config(row),
        mode=SessionMode(row.mode),
        court_count=row.court_count,
        current_round=row.current_round,
        rounds=[Round.model_validate(r) for r in row.round_data or []],
        players=[Player.model_validate(p) for p in row.player_data or []],
    )


def _dump(item: Any) -> Dict[str, Any]:
    if hasattr(item, "to_json"):
        return item.to_json()
    return dict(item)


def merge_rounds(
    stored: List[Dict[str, Any]], incoming: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Combine a client's round list with the stored one.

    Rounds are append-only, so stored rounds missing from ``incoming`` are
    kept. A stored score is kept for any match whose incoming copy carries
    no score, so a stale client list never erases a committed result.
    """

    merged = [copy.deepcopy(r) for r in incoming]
    for r_index, incoming_round in enumerate(merged):
        if r_index >= len(stored):
            break
        stored_matches = stored[r_index].get("matches") or []
        for m_index, match in enumerate(incoming_round.get("matches") or []):
            if m_index >= len(stored_matches):
                break
            previous = stored_matches[m_index]
            if match.get("court") != previous.get("court"):
                continue
            has_score = (
                match.get("team1Score") is not None
                and match.get("team2Score") is not None
            )
            had_score = (
                previous.get("team1Score") is not None
                and previous.get("team2Score") is not None
            )
            if had_score and not has_score:
                match["team1Score"] = previous["team1Score"]
                match["team2Score"] = previous["team2Score"]
                if previous.get("gameScores") is not None:
                    match["gameScores"] = copy.deepcopy(previous["gameScores"])
    merged.extend(copy.deepcopy(r) for r in stored[len(merged):])
    return merged


class SqlSessionBackend:
    """Session store on the tracker database.

    Every read-modify-write of a session's round list (score writes and bulk
    round writes) is serialised per session by an in-process keyed lock and,
    across processes, by a row lock taken for the single write transaction.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        *,
        lock_timeout: Optional[float] = None,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._session_factory = session_factory
        self._lock_timeout = (
            config.LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
        )
        self._locks = locks if locks is not None else KeyedLocks()

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    def _sessions(self) -> sessionmaker:
        return self._session_factory or get_sessionmaker()

    @staticmethod
    async def _get_row(session, session_id: str, *, for_update: bool = False) -> GameSession:
        stmt = select(GameSession).where(GameSession.id == session_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise SessionNotFound(session_id)
        return row

    async def create_session(self, body: SessionCreate) -> SessionOut:
        players = [
            Player(id=p.id or uuid.uuid4().hex, name=p.name, rating=p.rating)
            for p in body.players
        ]
        now = _db_now()
        row = GameSession(
            id=uuid.uuid4().hex,
            name=body.name,
            scoring_mode=body.scoring.mode.value,
            points_per_match=body.scoring.points_per_match,
            games_to_win=body.scoring.games_to_win,
            total_games=body.scoring.total_games,
            mode=body.mode.value,
            court_count=body.court_count,
            current_round=0,
            round_data=[],
            player_data=[p.to_json() for p in players],
            created_at=now,
            updated_at=now,
        )
        async with self._sessions()() as session:
            session.add(row)
            await session.commit()
        logger.info("Created session %s (%s)", row.id, body.scoring.mode.value)
        return session_out(row)

    async def load_session(self, session_id: str) -> SessionOut:
        async with self._sessions()() as session:
            row = await self._get_row(session, session_id)
            return session_out(row)

    async def update_score_with_lock(
        self,
        session_id: str,
        round_index: int,
        match_index: int,
        team1_score: int,
        team2_score: int,
        game_scores: Optional[Sequence[GameScore]] = None,
    ) -> Match:
        """Validate and store one match score, last write wins.

        Raises ``LockContentionError`` when the lock cannot be taken in time
        or the database reports a lock conflict; callers retry those.
        """

        # Rounds live in one JSON document per session, so writes to different
        # matches must not interleave either.
        async with self._locks.hold(session_id, self._lock_timeout):
            try:
                return await self._write_score(
                    session_id,
                    round_index,
                    match_index,
                    team1_score,
                    team2_score,
                    game_scores,
                )
            except OperationalError as exc:
                if is_lock_error(exc):
                    raise LockContentionError() from exc
                if is_timeout_error(exc):
                    raise LockContentionError(timeout=True) from exc
                raise

    async def _write_score(
        self,
        session_id: str,
        round_index: int,
        match_index: int,
        team1_score: int,
        team2_score: int,
        game_scores: Optional[Sequence[GameScore]],
    ) -> Match:
        games = (
            [GameScore.model_validate(g) for g in game_scores]
            if game_scores is not None
            else None
        )
        async with self._sessions()() as session:
            row = await self._get_row(session, session_id, for_update=True)
            rounds = copy.deepcopy(list(row.round_data or []))
            if not 0 <= round_index < len(rounds):
                raise RoundNotFound(round_index)
            matches = rounds[round_index].get("matches") or []
            if not 0 <= match_index < len(matches):
                raise MatchNotFound(match_index)

            get_policy(_scoring_config(row)).check(team1_score, team2_score, games)

            match = Match.model_validate(matches[match_index])
            match.team1_score = team1_score
            match.team2_score = team2_score
            if games is not None:
                match.game_scores = games
            matches[match_index] = match.to_json()
            rounds[round_index]["matches"] = matches

            # Reassign so the JSON column is flagged dirty.
            row.round_data = rounds
            row.updated_at = _db_now()
            await session.commit()

        logger.info(
            "Stored score %d-%d for session %s round %d match %d",
            team1_score,
            team2_score,
            session_id,
            round_index,
            match_index,
        )
        return match

    async def save_rounds(
        self,
        session_id: str,
        rounds: Sequence[Round],
        current_round: int,
        players: Optional[Sequence[Player]] = None,
    ) -> None:
        incoming = [_dump(r) for r in rounds]
        try:
            async with self._locks.hold(session_id, self._lock_timeout):
                async with self._sessions()() as session:
                    row = await self._get_row(session, session_id, for_update=True)
                    stored = list(row.round_data or [])
                    merged = merge_rounds(stored, incoming)
                    if len(stored) > len(incoming):
                        # A stale list cannot move the cursor backwards past
                        # rounds it does not know about.
                        current_round = max(current_round, row.current_round)
                    row.round_data = merged
                    row.current_round = max(0, min(current_round, len(merged) - 1))
                    if players is not None:
                        row.player_data = [_dump(p) for p in players]
                    row.updated_at = _db_now()
                    await session.commit()
        except OperationalError as exc:
            if is_lock_error(exc) or is_timeout_error(exc):
                raise LockContentionError(timeout=is_timeout_error(exc)) from exc
            raise
        logger.info(
            "Saved %d rounds for session %s (current round %d)",
            len(merged),
            session_id,
            row.current_round,
        )

    async def append_event(
        self,
        session_id: str,
        event_type: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventOut:
        event = EventHistory(
            id=uuid.uuid4().hex,
            session_id=session_id,
            event_type=event_type,
            description=description,
            event_metadata=metadata,
            created_at=_db_now(),
        )
        async with self._sessions()() as session:
            await self._get_row(session, session_id)
            session.add(event)
            await session.commit()
        return _event_out(event)

    async def list_events(self, session_id: str) -> List[EventOut]:
        async with self._sessions()() as session:
            await self._get_row(session, session_id)
            rows = (
                await session.execute(
                    select(EventHistory)
                    .where(EventHistory.session_id == session_id)
                    .order_by(EventHistory.created_at, EventHistory.id)
                )
            ).scalars().all()
            return [_event_out(r) for r in rows]


def _event_out(row: EventHistory) -> EventOut:
    return EventOut(
        id=row.id,
        session_id=row.session_id,
        event_type=row.event_type,
        description=row.description,
        metadata=row.event_metadata,
        created_at=row.created_at,
    )
