"""Which round is on screen, globally and per court."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Optional

from ..exceptions import RoundNotFound
from ..schemas import Round, SessionMode
from .edit_cache import LocalEditCache
from .state import SessionState

logger = logging.getLogger(__name__)

RoundListener = Callable[[int], None]


class NavigationResult(str, Enum):
    MOVED = "moved"
    UNCHANGED = "unchanged"
    NEEDS_GENERATION = "needs_generation"


class RoundNavigator:
    """Global round cursor plus optional per-court cursors (parallel mode).

    Changing the global index clears the edit cache and notifies listeners.
    Paging a single court does neither, and a court that was paged keeps its
    own cursor when the global index moves.
    """

    def __init__(
        self,
        state: SessionState,
        cache: LocalEditCache,
        *,
        current_round: Optional[int] = None,
    ) -> None:
        self._state = state
        self._cache = cache
        start = state.current_round if current_round is None else current_round
        self._index = max(0, min(start, len(state.rounds) - 1))
        self._court_cursors: Dict[int, int] = {}
        self._listeners: set[RoundListener] = set()

    @property
    def current_round_index(self) -> int:
        return self._index

    @property
    def current_round(self) -> Optional[Round]:
        if not self._state.rounds:
            return None
        return self._state.rounds[self._index]

    @property
    def round_count(self) -> int:
        return len(self._state.rounds)

    @property
    def is_last_round(self) -> bool:
        return self._index >= len(self._state.rounds) - 1

    @property
    def court_cursors(self) -> Dict[int, int]:
        return dict(self._court_cursors)

    def subscribe(self, listener: RoundListener) -> Callable[[], None]:
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def go_to(self, index: int) -> NavigationResult:
        if not 0 <= index < len(self._state.rounds):
            raise RoundNotFound(index)
        if index == self._index:
            return NavigationResult.UNCHANGED
        logger.debug("Round cursor %d -> %d", self._index, index)
        self._index = index
        self._state.current_round = index
        self._cache.clear()
        for listener in list(self._listeners):
            try:
                listener(index)
            except Exception:
                logger.exception("Round listener failed")
        return NavigationResult.MOVED

    def previous(self) -> NavigationResult:
        if self._index <= 0:
            return NavigationResult.UNCHANGED
        return self.go_to(self._index - 1)

    def next(self) -> NavigationResult:
        if self.is_last_round:
            return NavigationResult.NEEDS_GENERATION
        return self.go_to(self._index + 1)

    def append_round(self, new_round: Round) -> int:
        self._state.rounds.append(new_round)
        index = len(self._state.rounds) - 1
        if self.go_to(index) is NavigationResult.UNCHANGED:
            # First round of a session: the cursor was already at 0.
            self._cache.clear()
        return index

    def court_round_index(self, court: Optional[int]) -> int:
        if court is None:
            return self._index
        cursor = self._court_cursors.get(court, self._index)
        return max(0, min(cursor, len(self._state.rounds) - 1))

    def page_court(self, court: int, direction: int) -> NavigationResult:
        if self._state.mode != SessionMode.PARALLEL or not self._state.rounds:
            return NavigationResult.UNCHANGED
        current = self.court_round_index(court)
        target = max(0, min(current + direction, len(self._state.rounds) - 1))
        if target == current:
            return NavigationResult.UNCHANGED
        self._court_cursors[court] = target
        return NavigationResult.MOVED
