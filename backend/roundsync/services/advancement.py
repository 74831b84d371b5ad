"""Gate moving past a round on every match having a saved, valid score."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..exceptions import (
    IncompleteRoundError,
    NotOnLatestRoundError,
    PairingEngineError,
    ScoresNotSavedError,
)
from ..schemas import OperationKind, Round
from ..scoring import ScoringPolicy, parse_score, round_is_complete
from .backend import SessionBackend
from .commit import CommitOutcome, CommitPipeline
from .edit_cache import LocalEditCache, MatchKey
from .navigator import RoundNavigator
from .network import NetworkStatus
from .offline_queue import OfflineQueue
from .pairing import PairingEngine
from .retry import RetryPolicy, db_retry_policy
from .state import SessionState

logger = logging.getLogger(__name__)

Pair = Tuple[Optional[int], Optional[int]]


@dataclass(frozen=True)
class AdvanceResult:
    round_index: int
    round: Round
    queued: bool = False


def effective_pair(
    state: SessionState, cache: LocalEditCache, round_index: int, match_index: int
) -> Pair:
    """Best current value of each side: local draft, then confirmed, then stored."""

    entry = cache.entry(MatchKey(round_index, match_index))
    stored = state.stored_pair(round_index, match_index)
    pair = []
    for team in (1, 2):
        value = None
        if entry is not None:
            draft = entry.draft(team)
            if draft is not None:
                value = parse_score(draft)
            elif entry.confirmed(team) is not None:
                value = entry.confirmed(team)
            else:
                value = stored[team - 1]
        else:
            value = stored[team - 1]
        pair.append(value)
    return pair[0], pair[1]


class RoundAdvancementGuard:
    def __init__(
        self,
        state: SessionState,
        policy: ScoringPolicy,
        cache: LocalEditCache,
        navigator: RoundNavigator,
        pipeline: CommitPipeline,
        pairing: PairingEngine,
        backend: SessionBackend,
        queue: OfflineQueue,
        network: NetworkStatus,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._state = state
        self._policy = policy
        self._cache = cache
        self._navigator = navigator
        self._pipeline = pipeline
        self._pairing = pairing
        self._backend = backend
        self._queue = queue
        self._network = network
        self._retry = retry_policy or db_retry_policy()
        self._task: Optional["asyncio.Future[AdvanceResult]"] = None
        self.last_error: Optional[PairingEngineError] = None

    @property
    def is_generating(self) -> bool:
        return self._task is not None and not self._task.done()

    def pairs(self, round_index: Optional[int] = None) -> List[Pair]:
        if round_index is None:
            round_index = self._navigator.current_round_index
        matches = self._state.round(round_index).matches
        return [
            effective_pair(self._state, self._cache, round_index, index)
            for index in range(len(matches))
        ]

    def round_complete(self, round_index: Optional[int] = None) -> bool:
        if not self._state.rounds:
            return False
        return round_is_complete(self._policy, self.pairs(round_index))

    async def advance(self) -> AdvanceResult:
        """Save the displayed round and generate the next one.

        With no rounds yet this generates the first round. A second call
        while one is running waits for the same result.
        """

        if self.is_generating:
            return await asyncio.shield(self._task)
        self._task = asyncio.ensure_future(self._advance())
        return await asyncio.shield(self._task)

    async def retry_generation(self) -> AdvanceResult:
        """Ask the pairing engine again after it failed."""

        if self.is_generating:
            return await asyncio.shield(self._task)
        self._task = asyncio.ensure_future(self._generate())
        return await asyncio.shield(self._task)

    def _require_latest_round(self) -> None:
        if not self._navigator.is_last_round:
            raise NotOnLatestRoundError(
                self._navigator.current_round_index, len(self._state.rounds) - 1
            )

    async def _advance(self) -> AdvanceResult:
        self._require_latest_round()
        if self._state.rounds:
            await self._save_round(self._navigator.current_round_index)
        return await self._generate()

    async def _save_round(self, round_index: int) -> None:
        pairs = self.pairs(round_index)
        if not round_is_complete(self._policy, pairs):
            raise IncompleteRoundError(self._policy.requirement())

        commits = []
        for match_index, (team1, team2) in enumerate(pairs):
            if (team1, team2) != self._state.stored_pair(round_index, match_index):
                commits.append(
                    self._pipeline.commit(round_index, match_index, team1, team2)
                )
        commits.extend(asyncio.shield(task) for task in self._pipeline.in_flight(round_index))
        if not commits:
            return

        outcomes: List[CommitOutcome] = await asyncio.gather(*commits)
        failed = [outcome for outcome in outcomes if not outcome.ok]
        if failed:
            logger.warning(
                "%d of %d score saves failed for round %d",
                len(failed),
                len(outcomes),
                round_index,
            )
            raise ScoresNotSavedError()

    async def _generate(self) -> AdvanceResult:
        self._require_latest_round()
        number = len(self._state.rounds) + 1
        try:
            new_round = self._pairing.generate_round(number)
        except PairingEngineError as exc:
            self.last_error = exc
            logger.warning("Pairing engine failed for round %d: %s", number, exc.detail)
            raise
        self.last_error = None

        players = getattr(self._pairing, "players", None)
        if players is not None:
            self._state.players = list(players)
        rounds = [*self._state.rounds, new_round]
        current = len(rounds) - 1
        description = f"Round {number} generated"

        online = self._network.is_online
        if online:
            await self._retry.run(
                lambda: self._backend.save_rounds(
                    self._state.session_id, rounds, current, self._state.players
                )
            )
            try:
                await self._backend.append_event(
                    self._state.session_id,
                    "round_generated",
                    description,
                    {"roundNumber": number, "matches": len(new_round.matches)},
                )
            except Exception:
                logger.exception("Could not record round event for round %d", number)
        else:
            await self._queue.add_operation(
                OperationKind.GENERATE_ROUND,
                self._state.session_id,
                {
                    "rounds": [r.to_json() for r in rounds],
                    "currentRound": current,
                    "players": [p.to_json() for p in self._state.players],
                    "description": description,
                },
            )

        index = self._navigator.append_round(new_round)
        logger.info(
            "Round %d ready for session %s%s",
            number,
            self._state.session_id,
            "" if online else " (queued)",
        )
        return AdvanceResult(index, new_round, queued=not online)
