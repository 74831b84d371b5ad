"""Facade the rounds screen drives: score fields, round paging, generation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..exceptions import (
    DomainException,
    IncompleteRoundError,
    MatchNotFound,
    NotOnLatestRoundError,
    PairingEngineError,
    ScoresNotSavedError,
)
from ..schemas import Match, Round, SessionOut
from ..scoring import ScoreBorder, classify_border, get_policy, parse_score
from .advancement import AdvanceResult, RoundAdvancementGuard
from .backend import SessionBackend
from .commit import CommitOutcome, CommitPipeline
from .edit_cache import CommitStatus, LocalEditCache, MatchEditState, MatchKey
from .navigator import NavigationResult, RoundNavigator
from .network import NetworkStatus
from .notices import NoticeListener, Notifier
from .offline_queue import OfflineQueue
from .pairing import MexicanoPairingEngine, PairingEngine
from .retry import RetryPolicy
from .state import SessionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchView:
    round_index: int
    match_index: int
    court: int
    team1_text: str
    team2_text: str
    team1_border: ScoreBorder
    team2_border: ScoreBorder
    saving: bool = False
    saved: bool = False
    queued: bool = False
    failed: bool = False
    error: Optional[str] = None
    auto_filled: Optional[int] = None


def _other(team: int) -> int:
    return 2 if team == 1 else 1


class RoundsController:
    """Wires the engine together for one open session."""

    def __init__(
        self,
        session: SessionOut,
        backend: SessionBackend,
        queue: OfflineQueue,
        network: NetworkStatus,
        pairing: Optional[PairingEngine] = None,
        *,
        cache: Optional[LocalEditCache] = None,
        notifier: Optional[Notifier] = None,
        score_retry: Optional[RetryPolicy] = None,
        rounds_retry: Optional[RetryPolicy] = None,
    ) -> None:
        self.state = SessionState.from_session(session)
        self.policy = get_policy(session.scoring)
        self.cache = cache or LocalEditCache()
        self.notifier = notifier or Notifier()
        self.pairing = pairing or MexicanoPairingEngine(
            self.state.players, self.state.court_count, self.state.mode
        )
        self.navigator = RoundNavigator(self.state, self.cache)
        self.pipeline = CommitPipeline(
            self.state,
            self.policy,
            self.cache,
            backend,
            queue,
            network,
            self.pairing,
            retry_policy=score_retry,
            notifier=self.notifier,
        )
        self.guard = RoundAdvancementGuard(
            self.state,
            self.policy,
            self.cache,
            self.navigator,
            self.pipeline,
            self.pairing,
            backend,
            queue,
            network,
            retry_policy=rounds_retry,
        )
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @classmethod
    async def open(
        cls,
        session_id: str,
        backend: SessionBackend,
        queue: OfflineQueue,
        network: NetworkStatus,
        pairing: Optional[PairingEngine] = None,
        **kwargs,
    ) -> "RoundsController":
        session = await backend.load_session(session_id)
        return cls(session, backend, queue, network, pairing, **kwargs)

    def subscribe(self, listener: NoticeListener):
        return self.notifier.subscribe(listener)

    @property
    def current_round_index(self) -> int:
        return self.navigator.current_round_index

    @property
    def current_round(self) -> Optional[Round]:
        return self.navigator.current_round

    @property
    def generation_error(self) -> Optional[str]:
        error = self.guard.last_error
        return error.detail if error is not None else None

    def _locate(
        self, match_index: Optional[int], court: Optional[int]
    ) -> Tuple[MatchKey, Match]:
        """Find the match a field belongs to.

        With ``court`` the match is the one played on that court in the round
        the court is showing; ``match_index`` is then ignored.
        """

        round_index = self.navigator.court_round_index(court)
        if court is not None:
            matches = self.state.round(round_index).matches
            found = next(
                (index for index, m in enumerate(matches) if m.court == court), None
            )
            if found is None:
                raise MatchNotFound(match_index if match_index is not None else -1)
            match_index = found
        elif match_index is None:
            raise MatchNotFound(-1)
        match = self.state.match(round_index, match_index)
        return MatchKey(round_index, match_index), match

    def _known(self, entry: Optional[MatchEditState], stored: Optional[int], team: int) -> Optional[int]:
        """Value of one side that counts as explicitly entered.

        An auto-filled suggestion does not count until it is accepted.
        """

        if entry is not None:
            draft = entry.draft(team)
            if draft is not None:
                if entry.auto_filled == team:
                    return None
                value = parse_score(draft)
                return value if value is not None and value >= 0 else None
            if entry.confirmed(team) is not None:
                return entry.confirmed(team)
        return stored

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def match_view(
        self, match_index: Optional[int], court: Optional[int] = None
    ) -> MatchView:
        key, match = self._locate(match_index, court)
        entry = self.cache.entry(key)
        stored = (match.team1_score, match.team2_score)

        texts = []
        borders = []
        for team in (1, 2):
            other = _other(team)
            committed = entry.confirmed(team) if entry is not None else None
            if committed is None:
                committed = stored[team - 1]
            draft = entry.draft(team) if entry is not None else None
            if entry is not None and entry.draft(other) is not None:
                other_value = parse_score(entry.draft(other))
            else:
                other_value = self._known(entry, stored[other - 1], other)
            texts.append(draft if draft is not None else ("" if committed is None else str(committed)))
            borders.append(classify_border(self.policy, draft, other_value, committed))

        status = entry.commit_status if entry is not None else CommitStatus.IDLE
        return MatchView(
            round_index=key.round_index,
            match_index=key.match_index,
            court=match.court,
            team1_text=texts[0],
            team2_text=texts[1],
            team1_border=borders[0],
            team2_border=borders[1],
            saving=status in (CommitStatus.PENDING_LOCAL, CommitStatus.COMMITTING),
            saved=self.cache.saved_marker_active(key),
            queued=status == CommitStatus.QUEUED,
            failed=status == CommitStatus.FAILED,
            error=entry.error if entry is not None else None,
            auto_filled=entry.auto_filled if entry is not None else None,
        )

    def round_complete(self) -> bool:
        return self.guard.round_complete()

    # ------------------------------------------------------------------
    # Score entry
    # ------------------------------------------------------------------
    def _schedule_commit(self, key: MatchKey, team1: int, team2: int) -> asyncio.Task:
        task = asyncio.ensure_future(
            self.pipeline.commit(key.round_index, key.match_index, team1, team2)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def edit_score(
        self,
        match_index: Optional[int],
        team: int,
        text: str,
        *,
        court: Optional[int] = None,
    ) -> bool:
        """Record a keystroke.

        When both sides now form a valid pair that differs from the stored
        score, the pair is confirmed locally (the optimistic checkmark) and
        ``True`` is returned. Nothing is written until the field is left.
        """

        key, match = self._locate(match_index, court)
        entry = self.cache.set_draft(key, team, text)
        stored = (match.team1_score, match.team2_score)
        team1 = self._known(entry, stored[0], 1)
        team2 = self._known(entry, stored[1], 2)
        if team1 is None or team2 is None or not self.policy.is_valid(team1, team2):
            return False
        if (team1, team2) == stored:
            return False
        self.cache.confirm(key, team1, team2)
        return True

    def blur(
        self, match_index: Optional[int], team: int, *, court: Optional[int] = None
    ) -> Optional["asyncio.Task[CommitOutcome]"]:
        """Field lost focus: drop unusable text, auto-fill, or commit."""

        key, match = self._locate(match_index, court)
        entry = self.cache.entry(key)
        if entry is None or entry.draft(team) is None:
            return None

        value = parse_score(entry.draft(team))
        if value is None or value < 0:
            self.cache.set_draft(key, team, None)
            return None
        if self.policy.exceeds_target(value):
            return None

        other = _other(team)
        stored = (match.team1_score, match.team2_score)
        # The field being left is accepted even if it was an auto-fill.
        if entry.auto_filled == team:
            entry.auto_filled = None
        other_value = self._known(entry, stored[other - 1], other)

        if other_value is None:
            suggestion = self.policy.auto_fill(value) if self.policy.auto_fills else None
            if suggestion is not None:
                self.cache.set_draft(key, other, str(suggestion), auto_filled=True)
            return None

        pair = (value, other_value) if team == 1 else (other_value, value)
        if not self.policy.is_valid(*pair):
            return None
        if pair == stored and not self.pipeline.is_committing(key):
            # Retyped the saved score: nothing to write.
            self.cache.clear_draft(key)
            return None
        if self.pipeline.is_committing(key) and (
            entry.confirmed_team1,
            entry.confirmed_team2,
        ) == pair:
            return None
        self.cache.confirm(key, *pair)
        return self._schedule_commit(key, *pair)

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------
    def previous_round(self) -> NavigationResult:
        return self.navigator.previous()

    def page_court(self, court: int, direction: int) -> NavigationResult:
        return self.navigator.page_court(court, direction)

    async def next_round(self) -> NavigationResult:
        result = self.navigator.next()
        if result is not NavigationResult.NEEDS_GENERATION:
            return result
        generated = await self.generate_round()
        return NavigationResult.MOVED if generated is not None else NavigationResult.UNCHANGED

    async def generate_round(self) -> Optional[AdvanceResult]:
        return await self._generate(self.guard.advance)

    async def retry_generation(self) -> Optional[AdvanceResult]:
        return await self._generate(self.guard.retry_generation)

    async def _generate(self, action) -> Optional[AdvanceResult]:
        try:
            result = await action()
        except IncompleteRoundError as exc:
            self.notifier.error("Incomplete Round", exc.detail)
            return None
        except ScoresNotSavedError as exc:
            self.notifier.error("Save Failed", exc.detail)
            return None
        except NotOnLatestRoundError as exc:
            self.notifier.error(exc.title, exc.detail)
            return None
        except PairingEngineError as exc:
            self.notifier.error("Failed to Generate Round", exc.detail)
            return None
        except DomainException as exc:
            logger.warning("Could not store new round: %s", exc.detail)
            self.notifier.error("Failed to Generate Round", exc.detail or exc.title)
            return None

        title = f"Round {result.round.number} Generated"
        if result.queued:
            self.notifier.info(title, "Round will sync when you're back online.")
        else:
            self.notifier.success(title)
        return result

    async def close(self) -> None:
        """Tear down: let in-flight commits settle, then drop local edits."""

        if self._closed:
            return
        self._closed = True
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.cache.clear()
