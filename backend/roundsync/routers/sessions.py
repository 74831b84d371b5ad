from typing import List

from fastapi import APIRouter, Depends, Request

from ..schemas import (
    EventIn,
    EventOut,
    RoundsWriteIn,
    ScoreUpdateIn,
    ScoreUpdateOut,
    SessionCreate,
    SessionOut,
)
from ..config import EVENT_RATE_LIMIT, SCORE_RATE_LIMIT
from ..services.backend import SqlSessionBackend
from ..time_utils import utcnow
from ..utils.rate_limit import limiter

router = APIRouter(prefix="/sessions", tags=["sessions"])

_backend = SqlSessionBackend()


def get_backend() -> SqlSessionBackend:
    """Shared backend so every request sees the same score locks."""

    return _backend


@router.post("", response_model=SessionOut, response_model_by_alias=True)
async def create_session(
    body: SessionCreate, backend: SqlSessionBackend = Depends(get_backend)
):
    return await backend.create_session(body)


@router.get("/{session_id}", response_model=SessionOut, response_model_by_alias=True)
async def get_session_snapshot(
    session_id: str, backend: SqlSessionBackend = Depends(get_backend)
):
    return await backend.load_session(session_id)


@router.post(
    "/{session_id}/rounds/{round_index}/matches/{match_index}/score",
    response_model=ScoreUpdateOut,
    response_model_by_alias=True,
)
@limiter.limit(SCORE_RATE_LIMIT)
async def update_score(
    request: Request,
    session_id: str,
    round_index: int,
    match_index: int,
    body: ScoreUpdateIn,
    backend: SqlSessionBackend = Depends(get_backend),
):
    match = await backend.update_score_with_lock(
        session_id,
        round_index,
        match_index,
        body.team1_score,
        body.team2_score,
        body.game_scores,
    )
    return ScoreUpdateOut(success=True, match=match, timestamp=utcnow())


@router.put("/{session_id}/rounds", status_code=204)
async def save_rounds(
    session_id: str,
    body: RoundsWriteIn,
    backend: SqlSessionBackend = Depends(get_backend),
):
    await backend.save_rounds(
        session_id, body.rounds, body.current_round, body.players
    )


@router.post(
    "/{session_id}/events",
    response_model=EventOut,
    response_model_by_alias=True,
    status_code=201,
)
@limiter.limit(EVENT_RATE_LIMIT)
async def append_event(
    request: Request,
    session_id: str,
    body: EventIn,
    backend: SqlSessionBackend = Depends(get_backend),
):
    return await backend.append_event(
        session_id, body.event_type, body.description, body.metadata
    )


@router.get(
    "/{session_id}/events",
    response_model=List[EventOut],
    response_model_by_alias=True,
)
async def list_events(
    session_id: str, backend: SqlSessionBackend = Depends(get_backend)
):
    return await backend.list_events(session_id)
