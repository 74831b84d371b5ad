"""Validate a score pair and write it online or queue it for later."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from ..exceptions import (
    DomainException,
    LockContentionError,
    NetworkError,
    ScoreValidationError,
)
from ..schemas import GameScore, Match, OperationKind
from ..scoring import ScoringPolicy
from .backend import SessionBackend
from .edit_cache import LocalEditCache, MatchKey
from .network import NetworkStatus
from .notices import Notifier
from .offline_queue import OfflineQueue
from .pairing import PairingEngine
from .retry import RetryPolicy, score_retry_policy
from .state import SessionState

logger = logging.getLogger(__name__)

LOCK_CONTENTION_MESSAGE = "Another user is editing. Please try again."
SAVE_FAILED_MESSAGE = "Failed to save score. Please try again."


class CommitState(str, Enum):
    REJECTED = "rejected"
    COMMITTED = "committed"
    QUEUED = "queued"
    FAILED = "failed"


@dataclass(frozen=True)
class CommitOutcome:
    state: CommitState
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state in (CommitState.COMMITTED, CommitState.QUEUED)


class _InFlight(NamedTuple):
    values: tuple
    task: "asyncio.Future[CommitOutcome]"


def _games_key(game_scores: Optional[Sequence[GameScore]]) -> Optional[tuple]:
    if game_scores is None:
        return None
    return tuple(
        (g.game_number, g.team1_score, g.team2_score, g.completed) for g in game_scores
    )


class CommitPipeline:
    """Validating -> Rejected | Committing -> OnlineCommitted | Queued | Failed.

    Commits run as tasks that outlive the caller: leaving the round or
    cancelling the awaiting coroutine does not cancel the write.
    """

    def __init__(
        self,
        state: SessionState,
        policy: ScoringPolicy,
        cache: LocalEditCache,
        backend: SessionBackend,
        queue: OfflineQueue,
        network: NetworkStatus,
        pairing: Optional[PairingEngine] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._state = state
        self._policy = policy
        self._cache = cache
        self._backend = backend
        self._queue = queue
        self._network = network
        self._pairing = pairing
        self._retry = retry_policy or score_retry_policy()
        self._notifier = notifier or Notifier()
        self._in_flight: Dict[MatchKey, _InFlight] = {}

    def in_flight(self, round_index: Optional[int] = None) -> List["asyncio.Future[CommitOutcome]"]:
        return [
            entry.task
            for key, entry in self._in_flight.items()
            if round_index is None or key.round_index == round_index
        ]

    def is_committing(self, key: MatchKey) -> bool:
        return key in self._in_flight

    async def commit(
        self,
        round_index: int,
        match_index: int,
        team1: Optional[int],
        team2: Optional[int],
        game_scores: Optional[Sequence[GameScore]] = None,
    ) -> CommitOutcome:
        key = MatchKey(round_index, match_index)
        values = (team1, team2, _games_key(game_scores))
        previous = self._in_flight.get(key)
        if previous is not None and previous.values == values:
            return await asyncio.shield(previous.task)

        self._state.match(round_index, match_index)
        try:
            self._policy.check(team1, team2, game_scores)
        except ScoreValidationError as exc:
            logger.info(
                "Rejected score %r-%r for round %d match %d: %s",
                team1,
                team2,
                round_index,
                match_index,
                exc.detail,
            )
            self._notifier.error("Invalid Score", exc.detail)
            self._cache.clear_draft(key)
            return CommitOutcome(CommitState.REJECTED, exc.detail)

        self._cache.confirm(key, team1, team2)
        task = asyncio.ensure_future(
            self._run(key, team1, team2, game_scores, previous)
        )
        entry = _InFlight(values, task)
        self._in_flight[key] = entry

        def _done(_task) -> None:
            if self._in_flight.get(key) is entry:
                del self._in_flight[key]

        task.add_done_callback(_done)
        return await asyncio.shield(task)

    async def _run(
        self,
        key: MatchKey,
        team1: int,
        team2: int,
        game_scores: Optional[Sequence[GameScore]],
        previous: Optional[_InFlight],
    ) -> CommitOutcome:
        if previous is not None:
            # Writes for one match land in the order they were made.
            await asyncio.wait([previous.task])
        self._cache.mark_committing(key)
        if not self._network.is_online:
            return await self._commit_offline(key, team1, team2, game_scores)
        return await self._commit_online(key, team1, team2, game_scores)

    async def _commit_online(
        self,
        key: MatchKey,
        team1: int,
        team2: int,
        game_scores: Optional[Sequence[GameScore]],
    ) -> CommitOutcome:
        session_id = self._state.session_id
        try:
            await self._retry.run(
                lambda: self._backend.update_score_with_lock(
                    session_id,
                    key.round_index,
                    key.match_index,
                    team1,
                    team2,
                    game_scores,
                )
            )
        except LockContentionError:
            logger.warning("Score lock still contended after retries for %s", key)
            return self._fail(key, "Save Failed", LOCK_CONTENTION_MESSAGE)
        except ScoreValidationError as exc:
            self._cache.mark_failed(key, exc.detail)
            self._notifier.error("Invalid Score", exc.detail)
            return CommitOutcome(CommitState.REJECTED, exc.detail)
        except NetworkError as exc:
            logger.warning("Network error saving score for %s: %s", key, exc.detail)
            return self._fail(key, "Save Failed", SAVE_FAILED_MESSAGE)
        except DomainException as exc:
            logger.error("Score write for %s refused: %s", key, exc.detail)
            return self._fail(key, "Save Failed", exc.detail or SAVE_FAILED_MESSAGE)
        except Exception:
            logger.exception("Unexpected error saving score for %s", key)
            return self._fail(key, "Save Failed", SAVE_FAILED_MESSAGE)

        match = self._apply(key, team1, team2, game_scores)
        await self._log_event(match, key)
        self._cache.mark_committed(key, team1, team2)
        self._notifier.success("Score Saved", match.describe())
        return CommitOutcome(CommitState.COMMITTED)

    async def _commit_offline(
        self,
        key: MatchKey,
        team1: int,
        team2: int,
        game_scores: Optional[Sequence[GameScore]],
    ) -> CommitOutcome:
        match = self._state.match(key.round_index, key.match_index)
        payload: Dict[str, Any] = {
            "roundIndex": key.round_index,
            "matchIndex": key.match_index,
            "team1Score": team1,
            "team2Score": team2,
            "description": self._describe(match, key, team1, team2),
        }
        if game_scores is not None:
            payload["gameScores"] = [g.to_json() for g in game_scores]
        try:
            await self._queue.add_operation(
                OperationKind.UPDATE_SCORE, self._state.session_id, payload
            )
        except Exception:
            logger.exception("Could not queue offline score for %s", key)
            return self._fail(key, "Save Failed", SAVE_FAILED_MESSAGE)

        self._apply(key, team1, team2, game_scores)
        self._cache.mark_queued(key, team1, team2)
        self._notifier.info(
            "Saved offline", "Score will sync when you're back online."
        )
        return CommitOutcome(CommitState.QUEUED)

    def _fail(self, key: MatchKey, title: str, message: str) -> CommitOutcome:
        self._cache.mark_failed(key, message)
        self._notifier.error(title, message)
        return CommitOutcome(CommitState.FAILED, message)

    def _apply(
        self,
        key: MatchKey,
        team1: int,
        team2: int,
        game_scores: Optional[Sequence[GameScore]],
    ) -> Match:
        match = self._state.match(key.round_index, key.match_index)
        match.team1_score = team1
        match.team2_score = team2
        if game_scores is not None:
            match.game_scores = list(game_scores)
        if self._pairing is not None:
            try:
                self._pairing.update_ratings(match)
            except Exception:
                logger.exception("Rating update failed for %s", key)
        return match

    @staticmethod
    def _describe(match: Match, key: MatchKey, team1: int, team2: int) -> str:
        team1_names = " & ".join(p.name for p in match.team1)
        team2_names = " & ".join(p.name for p in match.team2)
        return (
            f"Round {key.round_index + 1}, court {match.court}: "
            f"{team1_names} vs {team2_names} {team1}-{team2}"
        )

    async def _log_event(self, match: Match, key: MatchKey) -> None:
        try:
            await self._backend.append_event(
                self._state.session_id,
                "score_updated",
                self._describe(match, key, match.team1_score, match.team2_score),
                {
                    "roundIndex": key.round_index,
                    "matchIndex": key.match_index,
                    "team1Score": match.team1_score,
                    "team2Score": match.team2_score,
                },
            )
        except Exception:
            logger.exception("Could not record score event for %s", key)
