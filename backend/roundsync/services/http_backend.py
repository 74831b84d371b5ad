"""Session backend that talks to the roundsync HTTP API with httpx."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from .. import config
from ..exceptions import (
    DomainException,
    LockContentionError,
    MatchNotFound,
    NetworkError,
    RoundNotFound,
    ScoreValidationError,
    SessionNotFound,
)
from ..schemas import (
    EventIn,
    EventOut,
    GameScore,
    Match,
    Player,
    Round,
    RoundsWriteIn,
    ScoreUpdateIn,
    ScoreUpdateOut,
    SessionCreate,
    SessionOut,
)

logger = logging.getLogger(__name__)


def _problem_exception(
    response: httpx.Response,
    *,
    session_id: Optional[str] = None,
    round_index: Optional[int] = None,
    match_index: Optional[int] = None,
) -> DomainException:
    try:
        problem = response.json()
    except ValueError:
        problem = {}
    if not isinstance(problem, dict):
        problem = {}
    code = problem.get("code")
    detail = problem.get("detail") or problem.get("title") or response.reason_phrase

    if code == "score_validation_error":
        return ScoreValidationError(detail)
    if code == "score_lock_contention":
        return LockContentionError(detail)
    if code == "session_not_found":
        return SessionNotFound(session_id or "")
    if code == "round_not_found":
        return RoundNotFound(round_index if round_index is not None else -1)
    if code == "match_not_found":
        return MatchNotFound(match_index if match_index is not None else -1)
    if response.status_code == 429 or response.status_code >= 500:
        return NetworkError(f"request failed with status {response.status_code}: {detail}")
    return DomainException(
        status_code=response.status_code,
        title=problem.get("title") or detail,
        detail=detail,
        code=code or f"http_{response.status_code}",
    )


class HttpSessionBackend:
    """``SessionBackend`` over HTTP.

    ``base_url`` is the API root (for example ``https://host/api``). A
    transport failure raises ``NetworkError``; problem responses are mapped
    back onto the domain exceptions the server raised.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpSessionBackend":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        context = {
            key: kwargs.pop(key)
            for key in ("session_id", "round_index", "match_index")
            if key in kwargs
        }
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(str(exc) or type(exc).__name__) from exc
        if response.status_code >= 400:
            raise _problem_exception(response, **context)
        return response

    async def ping(self) -> bool:
        """Probe for ``NetworkStatus.refresh``."""

        try:
            response = await self._client.get("/healthz")
        except httpx.TransportError:
            return False
        return response.status_code == 200

    async def create_session(self, body: SessionCreate) -> SessionOut:
        response = await self._request("POST", "/v0/sessions", json=body.to_json())
        return SessionOut.model_validate(response.json())

    async def load_session(self, session_id: str) -> SessionOut:
        response = await self._request(
            "GET", f"/v0/sessions/{session_id}", session_id=session_id
        )
        return SessionOut.model_validate(response.json())

    async def update_score_with_lock(
        self,
        session_id: str,
        round_index: int,
        match_index: int,
        team1_score: int,
        team2_score: int,
        game_scores: Optional[Sequence[GameScore]] = None,
    ) -> Match:
        body = ScoreUpdateIn(
            team1_score=team1_score,
            team2_score=team2_score,
            game_scores=list(game_scores) if game_scores is not None else None,
        )
        response = await self._request(
            "POST",
            f"/v0/sessions/{session_id}/rounds/{round_index}"
            f"/matches/{match_index}/score",
            json=body.to_json(),
            session_id=session_id,
            round_index=round_index,
            match_index=match_index,
        )
        return ScoreUpdateOut.model_validate(response.json()).match

    async def save_rounds(
        self,
        session_id: str,
        rounds: Sequence[Round],
        current_round: int,
        players: Optional[Sequence[Player]] = None,
    ) -> None:
        body = RoundsWriteIn(
            rounds=list(rounds),
            current_round=current_round,
            players=list(players) if players is not None else None,
        )
        await self._request(
            "PUT",
            f"/v0/sessions/{session_id}/rounds",
            json=body.to_json(),
            session_id=session_id,
        )

    async def append_event(
        self,
        session_id: str,
        event_type: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventOut:
        body = EventIn(event_type=event_type, description=description, metadata=metadata)
        response = await self._request(
            "POST",
            f"/v0/sessions/{session_id}/events",
            json=body.to_json(),
            session_id=session_id,
        )
        return EventOut.model_validate(response.json())
