"""Bounded store of in-flight score edits for the displayed round."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, NamedTuple, Optional

from .. import config
from ..scoring import parse_score

logger = logging.getLogger(__name__)


class CommitStatus(str, Enum):
    IDLE = "idle"
    PENDING_LOCAL = "pending_local"
    COMMITTING = "committing"
    COMMITTED = "committed"
    QUEUED = "queued"
    FAILED = "failed"


class MatchKey(NamedTuple):
    round_index: int
    match_index: int


class ScoreRead(NamedTuple):
    draft_team1: Optional[str] = None
    draft_team2: Optional[str] = None
    confirmed_team1: Optional[int] = None
    confirmed_team2: Optional[int] = None


@dataclass
class MatchEditState:
    """Everything the score fields of one match show, in one record."""

    draft_team1: Optional[str] = None
    draft_team2: Optional[str] = None
    confirmed_team1: Optional[int] = None
    confirmed_team2: Optional[int] = None
    # Team whose draft was suggested by auto-fill rather than typed.
    auto_filled: Optional[int] = None
    commit_status: CommitStatus = CommitStatus.IDLE
    saved_until: Optional[float] = None
    error: Optional[str] = None

    def draft(self, team: int) -> Optional[str]:
        return self.draft_team1 if team == 1 else self.draft_team2

    def confirmed(self, team: int) -> Optional[int]:
        return self.confirmed_team1 if team == 1 else self.confirmed_team2

    @property
    def has_draft(self) -> bool:
        return self.draft_team1 is not None or self.draft_team2 is not None

    def as_read(self) -> ScoreRead:
        return ScoreRead(
            self.draft_team1,
            self.draft_team2,
            self.confirmed_team1,
            self.confirmed_team2,
        )


def _check_team(team: int) -> None:
    if team not in (1, 2):
        raise ValueError(f"team must be 1 or 2, got {team!r}")


class LocalEditCache:
    """Drafts and just-saved values keyed by ``(round_index, match_index)``.

    The store is a bounded FIFO: inserting a new key at capacity evicts the
    oldest inserted key. Entries are short-lived, so insertion order is a
    good enough proxy for recency.
    """

    def __init__(
        self,
        max_entries: int = config.LOCAL_EDIT_CACHE_MAX_ENTRIES,
        saved_seconds: float = config.SAVED_INDICATOR_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._saved_seconds = saved_seconds
        self._clock = clock
        self._entries: dict[MatchKey, MatchEditState] = {}

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        for key in list(self._entries):
            self.entry(key)
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, tuple) and self.entry(MatchKey(*key)) is not None

    def keys(self) -> Iterator[MatchKey]:
        return iter(list(self._entries))

    def entry(self, key: MatchKey) -> Optional[MatchEditState]:
        state = self._entries.get(key)
        if state is None:
            return None
        if state.saved_until is not None and state.saved_until <= self._clock():
            state.saved_until = None
            if not state.has_draft and state.commit_status in (
                CommitStatus.COMMITTED,
                CommitStatus.QUEUED,
            ):
                self._entries.pop(key, None)
                return None
        return state

    def _ensure(self, key: MatchKey) -> MatchEditState:
        state = self.entry(key)
        if state is not None:
            return state
        if len(self._entries) >= self._max_entries:
            oldest = next(iter(self._entries))
            self._entries.pop(oldest)
            logger.debug("Edit cache full; evicted %s", oldest)
        state = MatchEditState()
        self._entries[key] = state
        return state

    def read(self, key: MatchKey) -> ScoreRead:
        state = self.entry(key)
        return state.as_read() if state is not None else ScoreRead()

    def set_draft(
        self, key: MatchKey, team: int, text: Optional[str], *, auto_filled: bool = False
    ) -> MatchEditState:
        _check_team(team)
        state = self._ensure(key)
        if team == 1:
            state.draft_team1 = text
        else:
            state.draft_team2 = text
        if auto_filled:
            state.auto_filled = team
        elif state.auto_filled == team:
            state.auto_filled = None
        state.error = None
        state.saved_until = None
        # A pair confirmed but never sent is withdrawn by further typing.
        if state.commit_status == CommitStatus.PENDING_LOCAL:
            state.confirmed_team1 = None
            state.confirmed_team2 = None
        # A commit already on the wire keeps its status until it settles.
        if state.commit_status != CommitStatus.COMMITTING:
            state.commit_status = CommitStatus.IDLE
        return state

    def clear_draft(self, key: MatchKey) -> None:
        self._entries.pop(key, None)

    def confirm(self, key: MatchKey, team1: int, team2: int) -> MatchEditState:
        """Record a valid pair the instant it is detected (optimistic checkmark)."""

        state = self._ensure(key)
        state.confirmed_team1 = team1
        state.confirmed_team2 = team2
        if state.commit_status != CommitStatus.COMMITTING:
            state.commit_status = CommitStatus.PENDING_LOCAL
        return state

    def mark_committing(self, key: MatchKey) -> None:
        state = self._entries.get(key)
        if state is None:
            return
        state.commit_status = CommitStatus.COMMITTING
        state.error = None

    def mark_committed(
        self, key: MatchKey, team1: int, team2: int, *, queued: bool = False
    ) -> None:
        # The round may have been left (and the cache cleared) while the write
        # was in flight; do not resurrect entries for it.
        state = self._entries.get(key)
        if state is None:
            return
        state.confirmed_team1 = team1
        state.confirmed_team2 = team2
        if parse_score(state.draft_team1) == team1:
            state.draft_team1 = None
        if parse_score(state.draft_team2) == team2:
            state.draft_team2 = None
        if state.auto_filled is not None and state.draft(state.auto_filled) is None:
            state.auto_filled = None
        state.commit_status = CommitStatus.QUEUED if queued else CommitStatus.COMMITTED
        state.saved_until = self._clock() + self._saved_seconds
        state.error = None

    def mark_queued(self, key: MatchKey, team1: int, team2: int) -> None:
        self.mark_committed(key, team1, team2, queued=True)

    def mark_failed(self, key: MatchKey, message: str) -> None:
        state = self._entries.get(key)
        if state is None:
            return
        state.commit_status = CommitStatus.FAILED
        state.saved_until = None
        state.error = message

    def saved_marker_active(self, key: MatchKey) -> bool:
        state = self.entry(key)
        return state is not None and state.saved_until is not None

    def clear(self) -> None:
        if self._entries:
            logger.debug("Clearing %d edit cache entries", len(self._entries))
        self._entries.clear()
